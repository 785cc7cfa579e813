"""Vendor control requests understood by the Billboard debug firmware."""
from __future__ import annotations

import asyncio
import functools
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Optional

import usb.core
import usb.util

from ..config import DeviceConfig
from ..constants import (
    REGISTER_READ_LENGTH,
    REQ_GET_DBG_MSG,
    REQ_GET_RD_REG,
    REQ_GET_WR_REG,
    REQ_SET_DBG_MSG,
)
from ..errors import TransferError
from ..hardware import ControlTransport


@dataclass(frozen=True, slots=True)
class ControlRequest:
    """Setup-packet parameters of one vendor control transfer."""

    name: str
    direction: int
    recipient: int
    request: int
    value: int = 0
    index: int = 0
    length: int = 0
    payload: Optional[bytes] = None

    @property
    def request_type(self) -> int:
        return usb.util.build_request_type(self.direction, usb.util.CTRL_TYPE_VENDOR, self.recipient)

    @property
    def is_in(self) -> bool:
        return self.direction == usb.util.CTRL_IN

    @property
    def data_or_length(self) -> Any:
        if self.is_in:
            return self.length
        return self.payload


def init_log_request() -> ControlRequest:
    return ControlRequest(
        name="init_log",
        direction=usb.util.CTRL_OUT,
        recipient=usb.util.CTRL_RECIPIENT_INTERFACE,
        request=REQ_SET_DBG_MSG,
    )


def console_command_request(data: bytes) -> ControlRequest:
    payload = bytes(data)
    if not payload:
        raise ValueError("Console command payload must not be empty")
    return ControlRequest(
        name="send_console_command",
        direction=usb.util.CTRL_OUT,
        recipient=usb.util.CTRL_RECIPIENT_INTERFACE,
        request=REQ_SET_DBG_MSG,
        length=len(payload),
        payload=payload,
    )


def poll_log_request(frame_size: int) -> ControlRequest:
    return ControlRequest(
        name="poll_log",
        direction=usb.util.CTRL_IN,
        recipient=usb.util.CTRL_RECIPIENT_DEVICE,
        request=REQ_GET_DBG_MSG,
        length=frame_size,
    )


def read_register_request(addr: int, offset: int) -> ControlRequest:
    return ControlRequest(
        name="read_register",
        direction=usb.util.CTRL_IN,
        recipient=usb.util.CTRL_RECIPIENT_DEVICE,
        request=REQ_GET_RD_REG,
        value=addr & 0xFFFF,
        index=offset & 0xFFFF,
        length=REGISTER_READ_LENGTH,
    )


def write_register_request(addr: int, offset: int, value: int) -> ControlRequest:
    """Build the register write request.

    The firmware implements writes as a zero-length IN transfer with the
    target address in the high byte of wValue and the new value in the low
    byte; only the low 8 bits of *addr* are representable.
    """

    return ControlRequest(
        name="write_register",
        direction=usb.util.CTRL_IN,
        recipient=usb.util.CTRL_RECIPIENT_DEVICE,
        request=REQ_GET_WR_REG,
        value=((addr & 0xFF) << 8) | (value & 0xFF),
        index=offset & 0xFFFF,
        length=0,
    )


class ProtocolClient:
    """Blocking client for the four debug requests on an opened session."""

    def __init__(self, transport: ControlTransport, config: Optional[DeviceConfig] = None) -> None:
        self._transport = transport
        self._config = config or DeviceConfig()

    @property
    def config(self) -> DeviceConfig:
        return self._config

    def execute(self, request: ControlRequest, timeout_ms: Optional[int] = None) -> bytes:
        timeout = timeout_ms if timeout_ms is not None else self._config.control_timeout_ms
        try:
            result = self._transport.ctrl_transfer(
                request.request_type,
                request.request,
                request.value,
                request.index,
                request.data_or_length,
                timeout,
            )
        except usb.core.USBError as exc:
            raise TransferError.from_usb_error(request.name, exc) from exc
        if not request.is_in:
            return b""
        return bytes(result) if result is not None else b""

    def init_log(self) -> None:
        self.execute(init_log_request())

    def poll_log(self) -> bytes:
        request = poll_log_request(self._config.log_frame_size)
        return self.execute(request, self._config.poll_timeout_ms)

    def send_console_command(self, data: bytes) -> None:
        self.execute(console_command_request(data))

    def read_register(self, addr: int, offset: int) -> bytes:
        return self.execute(read_register_request(addr, offset))

    def write_register(self, addr: int, offset: int, value: int) -> None:
        self.execute(write_register_request(addr, offset, value))


class AsyncProtocolClient:
    """Run :class:`ProtocolClient` calls on a private single-thread worker.

    All transfers of one session go through the same worker, so the log
    poller and the command sender never overlap on the control endpoint.
    ``aclose`` waits for an in-flight transfer before the session is released
    without blocking the event loop.
    """

    def __init__(self, client: ProtocolClient) -> None:
        self._client = client
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="usb-transfer")

    @property
    def client(self) -> ProtocolClient:
        return self._client

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(func, *args))

    async def init_log(self) -> None:
        await self._call(self._client.init_log)

    async def poll_log(self) -> bytes:
        return await self._call(self._client.poll_log)

    async def send_console_command(self, data: bytes) -> None:
        await self._call(self._client.send_console_command, data)

    async def read_register(self, addr: int, offset: int) -> bytes:
        return await self._call(self._client.read_register, addr, offset)

    async def write_register(self, addr: int, offset: int, value: int) -> None:
        await self._call(self._client.write_register, addr, offset, value)

    def close(self) -> None:
        self._executor.shutdown(wait=True, cancel_futures=True)

    async def aclose(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.close)
