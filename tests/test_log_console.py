from __future__ import annotations

import asyncio
import io
from collections import deque
from typing import Callable, Deque, List, Optional, Tuple

import pytest

from billboard.config import ConsoleConfig, DeviceConfig
from billboard.console import LogConsole
from billboard.errors import TransferError, TransferErrorKind
from billboard.hardware import SimulatedFirmware, SimulatedSession
from billboard.protocol import AsyncProtocolClient, ProtocolClient


def _timeout() -> TransferError:
    return TransferError("poll_log", TransferErrorKind.TIMEOUT, "Operation timed out")


def _unplugged(request: str = "poll_log") -> TransferError:
    return TransferError(request, TransferErrorKind.DISCONNECTED, "No such device")


class _ScriptedClient:
    """Async protocol client stub replaying log frames and recording commands."""

    def __init__(
        self,
        frames: List[object] | None = None,
        *,
        init_error: Optional[TransferError] = None,
        send_error: Optional[TransferError] = None,
        hold_until_sent: bool = False,
    ) -> None:
        self.frames: Deque[object] = deque(frames or [])
        self.init_error = init_error
        self.send_error = send_error
        self.hold_until_sent = hold_until_sent
        self.init_calls = 0
        self.polls = 0
        self.sent: List[bytes] = []
        self.suppressing_at_send: List[bool] = []
        self.console: Optional[LogConsole] = None

    async def init_log(self) -> None:
        self.init_calls += 1
        if self.init_error is not None:
            raise self.init_error

    async def poll_log(self) -> bytes:
        await asyncio.sleep(0)
        self.polls += 1
        if self.hold_until_sent and not self.sent:
            raise _timeout()
        if not self.frames:
            raise _unplugged()
        item = self.frames.popleft()
        if isinstance(item, BaseException):
            raise item
        return item  # type: ignore[return-value]

    async def send_console_command(self, data: bytes) -> None:
        if self.console is not None:
            self.suppressing_at_send.append(self.console.decoder.suppressing)
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)


class _Lines:
    """Line source yielding scripted lines, then either EOF or blocking forever."""

    def __init__(self, lines: List[str] | None = None, *, hold: bool = True) -> None:
        self.lines: Deque[str] = deque(lines or [])
        self.hold = hold

    async def readline(self) -> Optional[str]:
        if self.lines:
            return self.lines.popleft()
        if self.hold:
            await asyncio.Event().wait()
        return None


class _GatedLines:
    """Deliver each line only once *predicate* holds; ``None`` means EOF."""

    def __init__(self, steps: List[Tuple[Callable[[], bool], Optional[str]]]) -> None:
        self.steps = deque(steps)

    async def readline(self) -> Optional[str]:
        predicate, line = self.steps.popleft()
        while not predicate():
            await asyncio.sleep(0.01)
        return line


async def _no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


def _console(client, lines, output: io.StringIO, errors: Optional[io.StringIO] = None) -> LogConsole:
    console = LogConsole(
        client,
        lines,
        ConsoleConfig(poll_interval_s=0.0, show_banner=False),
        output=output,
        errors=errors or io.StringIO(),
        sleep=_no_sleep,
    )
    if isinstance(client, _ScriptedClient):
        client.console = console
    return console


def test_split_log_frames_print_once_and_unplug_ends_session() -> None:
    client = _ScriptedClient([b"boot \x00\x00\x00", b"ok\n\x00\x00\x00\x00\x00"])
    output = io.StringIO()
    console = _console(client, _Lines(), output)

    with pytest.raises(TransferError) as exc_info:
        asyncio.run(console.run())

    assert exc_info.value.is_fatal
    assert output.getvalue() == "boot ok\n"
    assert client.init_calls == 1


def test_command_echo_is_hidden_and_printing_resumes() -> None:
    client = _ScriptedClient([b"status\r\n", b"ok\r\n\x00\x00\x00\x00"], hold_until_sent=True)
    output = io.StringIO()
    console = _console(client, _Lines(["status\n"]), output)

    with pytest.raises(TransferError):
        asyncio.run(console.run())

    assert client.sent == [b"status\r"]
    assert client.suppressing_at_send == [True]
    assert output.getvalue() == "ok\r\n"
    assert console.decoder.suppressing is False


def test_command_trailing_whitespace_is_trimmed() -> None:
    client = _ScriptedClient(hold_until_sent=True)
    console = _console(client, _Lines(["  reset  \t\n"]), io.StringIO())

    with pytest.raises(TransferError):
        asyncio.run(console.run())

    assert client.sent == [b"  reset\r"]


def test_timeouts_are_retried_until_input_ends() -> None:
    client = _ScriptedClient([_timeout() for _ in range(50)])
    console = _console(client, _Lines(["a", "b"], hold=False), io.StringIO())

    asyncio.run(console.run())

    assert client.sent == [b"a\r", b"b\r"]


def test_end_of_input_ends_session_cleanly() -> None:
    client = _ScriptedClient([_timeout() for _ in range(10)])
    console = _console(client, _Lines(hold=False), io.StringIO())

    assert asyncio.run(console.run()) is None


def test_init_failure_is_reported_but_not_fatal() -> None:
    client = _ScriptedClient(
        [b"hello\x00\x00\x00"],
        init_error=TransferError("init_log", TransferErrorKind.OTHER, "Pipe error"),
    )
    output = io.StringIO()
    errors = io.StringIO()
    console = _console(client, _Lines(), output, errors)

    with pytest.raises(TransferError):
        asyncio.run(console.run())

    assert "Warning: log channel init failed" in errors.getvalue()
    assert output.getvalue() == "hello"


def test_other_poll_errors_end_the_session() -> None:
    failure = TransferError("poll_log", TransferErrorKind.OTHER, "Input/Output Error")
    client = _ScriptedClient([b"x\x00\x00\x00\x00\x00\x00\x00", failure])
    console = _console(client, _Lines(), io.StringIO())

    with pytest.raises(TransferError) as exc_info:
        asyncio.run(console.run())

    assert exc_info.value.kind is TransferErrorKind.OTHER


def test_send_failure_ends_the_session() -> None:
    client = _ScriptedClient(
        [_timeout() for _ in range(1000)],
        send_error=_unplugged("send_console_command"),
    )
    console = _console(client, _Lines(["status"]), io.StringIO())

    with pytest.raises(TransferError) as exc_info:
        asyncio.run(console.run())

    assert exc_info.value.request == "send_console_command"


def test_each_frame_is_decoded_on_its_own() -> None:
    text = "temp 25°C\n".encode("utf-8")
    client = _ScriptedClient([text[:8], text[8:]])
    output = io.StringIO()
    console = _console(client, _Lines(), output)

    with pytest.raises(TransferError):
        asyncio.run(console.run())

    assert output.getvalue() == "temp 25\ufffd\ufffdC\n"


def test_truncated_sequence_before_disconnect_is_still_written() -> None:
    client = _ScriptedClient([b"abc\xe2\x00\x00\x00\x00"])
    output = io.StringIO()
    console = _console(client, _Lines(), output)

    with pytest.raises(TransferError):
        asyncio.run(console.run())

    assert output.getvalue() == "abc\ufffd"


def test_console_against_simulated_firmware() -> None:
    config = DeviceConfig(transport="sim")
    firmware = SimulatedFirmware()
    session = SimulatedSession(config, firmware)
    session.open()
    client = AsyncProtocolClient(ProtocolClient(session.transport, config))
    output = io.StringIO()
    lines = _GatedLines(
        [
            (lambda: "ready" in output.getvalue(), "status\n"),
            (lambda: "ok status" in output.getvalue(), None),
        ]
    )
    console = _console(client, lines, output)

    try:
        asyncio.run(asyncio.wait_for(console.run(), timeout=5.0))
    finally:
        client.close()
        session.close()

    assert firmware.commands == [b"status"]
    assert output.getvalue() == "billboard sim ready\r\nok status\r\n"
