"""Live log console with an inline command sender."""
from __future__ import annotations

import asyncio
import sys
from typing import Awaitable, Callable, Optional, TextIO

from ..config import ConsoleConfig
from ..constants import COMMAND_TERMINATOR
from ..errors import TransferError
from ..protocol import AsyncProtocolClient
from .echo import EchoDecoder
from .input import LineSource

Sleeper = Callable[[float], Awaitable[None]]


class LogConsole:
    """Stream the firmware log while forwarding operator commands.

    Log polling and command input run as two tasks that share this session's
    :class:`EchoDecoder`. Whichever task finishes first ends the session: a
    clean return means the operator closed the input, an exception is a
    transport failure for the supervisor to handle.
    """

    def __init__(
        self,
        client: AsyncProtocolClient,
        lines: LineSource,
        config: Optional[ConsoleConfig] = None,
        output: Optional[TextIO] = None,
        errors: Optional[TextIO] = None,
        sleep: Optional[Sleeper] = None,
    ) -> None:
        self._client = client
        self._lines = lines
        self._config = config or ConsoleConfig()
        self._output = output if output is not None else sys.stdout
        self._errors = errors if errors is not None else sys.stderr
        self._sleep = sleep or asyncio.sleep
        self._decoder = EchoDecoder()

    @property
    def decoder(self) -> EchoDecoder:
        return self._decoder

    async def run(self) -> None:
        try:
            await self._client.init_log()
        except TransferError as exc:
            print(f"Warning: log channel init failed ({exc})", file=self._errors)

        if self._config.show_banner:
            print("--- Log Console ---", file=self._output)
            print(" [hint] type a command and press Enter to send, Ctrl+C to exit", file=self._output)
            print("-" * 39, file=self._output, flush=True)

        log_task = asyncio.create_task(self._log_loop(), name="log-poll")
        input_task = asyncio.create_task(self._input_loop(), name="console-input")
        try:
            done, _pending = await asyncio.wait({log_task, input_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (log_task, input_task):
                task.cancel()
            await asyncio.gather(log_task, input_task, return_exceptions=True)
        failed = [task for task in done if task.exception() is not None]
        if failed:
            failed[0].result()

    async def _log_loop(self) -> None:
        while True:
            try:
                frame = await self._client.poll_log()
            except TransferError as exc:
                if exc.is_timeout:
                    await self._sleep(self._config.poll_interval_s)
                    continue
                raise
            visible, _ = self._decoder.feed(frame)
            if visible:
                self._write(visible)

    async def _input_loop(self) -> None:
        while True:
            line = await self._lines.readline()
            if line is None:
                return
            command = line.rstrip().encode("utf-8") + COMMAND_TERMINATOR
            self._decoder.begin_suppression()
            await self._client.send_console_command(command)

    def _write(self, data: bytes) -> None:
        # one write per frame; a sequence split across frames is replaced
        self._output.write(data.decode("utf-8", errors="replace"))
        self._output.flush()
