from __future__ import annotations

import asyncio
import errno
from array import array
from typing import Any, List, Tuple

import pytest
import usb.core

from billboard.config import DeviceConfig
from billboard.errors import TransferError, TransferErrorKind, classify_usb_error
from billboard.protocol import (
    AsyncProtocolClient,
    ProtocolClient,
    console_command_request,
    init_log_request,
    poll_log_request,
    read_register_request,
    write_register_request,
)


class _RecordingTransport:
    """Control transport that records setup packets and replays responses."""

    def __init__(self, responses: List[Any] | None = None) -> None:
        self.calls: List[Tuple[int, int, int, int, Any, Any]] = []
        self.responses = list(responses or [])

    def ctrl_transfer(self, bmRequestType, bRequest, wValue=0, wIndex=0, data_or_wLength=None, timeout=None):
        self.calls.append((bmRequestType, bRequest, wValue, wIndex, data_or_wLength, timeout))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return array("B")


@pytest.mark.parametrize(
    "request_, expected",
    [
        (init_log_request(), (0x41, 0x22, 0, 0, 0)),
        (console_command_request(b"status\r"), (0x41, 0x22, 0, 0, 7)),
        (poll_log_request(8), (0xC0, 0x10, 0, 0, 8)),
        (poll_log_request(64), (0xC0, 0x10, 0, 0, 64)),
        (read_register_request(0x10, 0x0004), (0xC0, 0x12, 0x10, 0x0004, 8)),
        (write_register_request(0x10, 0x0000, 0xFF), (0xC0, 0x11, 0x10FF, 0x0000, 0)),
    ],
)
def test_request_builders_match_wire_table(request_, expected) -> None:
    assert (
        request_.request_type,
        request_.request,
        request_.value,
        request_.index,
        request_.length,
    ) == expected


def test_write_register_packing_ignores_upper_address_bits() -> None:
    assert write_register_request(0x1210, 0x20, 0x5A).value == 0x105A
    assert write_register_request(0xFF10, 0x20, 0x5A).value == write_register_request(0x10, 0x20, 0x5A).value
    assert write_register_request(0x01, 0x00, 0x00).value == 0x0100


def test_console_command_request_rejects_empty_payload() -> None:
    with pytest.raises(ValueError):
        console_command_request(b"")


def test_client_sends_console_payload_and_init_without_data() -> None:
    transport = _RecordingTransport()
    client = ProtocolClient(transport, DeviceConfig())

    client.init_log()
    client.send_console_command(b"help\r")

    init_call, send_call = transport.calls
    assert init_call[:4] == (0x41, 0x22, 0, 0)
    assert init_call[4] is None
    assert send_call[4] == b"help\r"
    assert send_call[5] == 500


def test_client_poll_uses_frame_size_and_poll_timeout() -> None:
    transport = _RecordingTransport([array("B", b"abc\x00\x00\x00\x00\x00")])
    client = ProtocolClient(transport, DeviceConfig(log_frame_size=64, poll_timeout_ms=100))

    frame = client.poll_log()

    assert frame == b"abc\x00\x00\x00\x00\x00"
    assert transport.calls[0][4] == 64
    assert transport.calls[0][5] == 100


def test_client_read_and_write_register() -> None:
    transport = _RecordingTransport([array("B", range(8)), array("B")])
    client = ProtocolClient(transport)

    data = client.read_register(0x10, 0x4)
    client.write_register(0x10, 0x0, 0xFF)

    assert data == bytes(range(8))
    assert transport.calls[1][:5] == (0xC0, 0x11, 0x10FF, 0x0000, 0)


def test_client_wraps_usb_errors_with_kind() -> None:
    transport = _RecordingTransport(
        [
            usb.core.USBTimeoutError("Operation timed out", errno=errno.ETIMEDOUT),
            usb.core.USBError("No such device", errno=errno.ENODEV),
            usb.core.USBError("Input/Output Error", errno=errno.EIO),
        ]
    )
    client = ProtocolClient(transport)

    with pytest.raises(TransferError) as timeout:
        client.poll_log()
    assert timeout.value.is_timeout
    assert timeout.value.request == "poll_log"

    with pytest.raises(TransferError) as gone:
        client.read_register(0, 0)
    assert gone.value.is_fatal
    assert isinstance(gone.value.original, usb.core.USBError)

    with pytest.raises(TransferError) as other:
        client.write_register(0, 0, 0)
    assert other.value.kind is TransferErrorKind.OTHER
    assert not other.value.is_fatal


@pytest.mark.parametrize(
    "error, kind",
    [
        (usb.core.USBTimeoutError("Operation timed out"), TransferErrorKind.TIMEOUT),
        (usb.core.USBError("timeout", errno=errno.ETIMEDOUT), TransferErrorKind.TIMEOUT),
        (usb.core.USBError("timeout", error_code=-7), TransferErrorKind.TIMEOUT),
        (usb.core.USBError("no device", error_code=-4), TransferErrorKind.DISCONNECTED),
        (usb.core.USBError("pipe", errno=errno.EPIPE), TransferErrorKind.DISCONNECTED),
        (usb.core.USBError("aborted", errno=errno.ECONNABORTED), TransferErrorKind.DISCONNECTED),
        (usb.core.USBError("not connected", errno=errno.ENOTCONN), TransferErrorKind.DISCONNECTED),
        (usb.core.USBError("busy", errno=errno.EBUSY), TransferErrorKind.OTHER),
        (usb.core.USBError("unknown"), TransferErrorKind.OTHER),
    ],
)
def test_classify_usb_error(error, kind) -> None:
    assert classify_usb_error(error) is kind


def test_async_client_serialises_calls_on_worker() -> None:
    transport = _RecordingTransport([array("B", b"hi\x00\x00\x00\x00\x00\x00")])
    client = AsyncProtocolClient(ProtocolClient(transport))

    async def _exercise() -> bytes:
        frame = await client.poll_log()
        await client.send_console_command(b"x\r")
        return frame

    try:
        frame = asyncio.run(_exercise())
    finally:
        client.close()

    assert frame.startswith(b"hi")
    assert [call[1] for call in transport.calls] == [0x10, 0x22]


def test_async_client_aclose_drains_worker_from_the_loop() -> None:
    transport = _RecordingTransport([array("B", b"ok\x00\x00\x00\x00\x00\x00")])
    client = AsyncProtocolClient(ProtocolClient(transport))

    async def _exercise() -> bytes:
        frame = await client.poll_log()
        await client.aclose()
        return frame

    frame = asyncio.run(_exercise())

    assert frame.startswith(b"ok")
    with pytest.raises(RuntimeError):
        asyncio.run(client.read_register(0x10, 0))
