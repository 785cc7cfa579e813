"""Reconnect supervisor wrapping the console and shell sessions."""
from __future__ import annotations

import asyncio
import enum
import sys
from typing import Awaitable, Callable, Optional, TextIO

from ..config import AppConfig
from ..errors import DeviceOpenError, TransferError
from ..hardware import Session, open_session
from ..protocol import AsyncProtocolClient, ProtocolClient

ModeRunner = Callable[[AsyncProtocolClient], Awaitable[None]]
SessionFactory = Callable[[], Session]
Sleeper = Callable[[float], Awaitable[None]]


class SupervisorState(enum.Enum):
    DISCONNECTED = "disconnected"
    ACTIVE = "active"


class ReconnectSupervisor:
    """Keep a debug session alive across unplug/replug events.

    Each attempt opens a fresh session and protocol client and hands them to
    *mode*. A clean return from the mode ends the program; a
    :class:`TransferError` drops the session and goes back to discovery,
    which retries every ``reconnect_delay_s`` without limit.
    """

    def __init__(
        self,
        config: AppConfig,
        mode: ModeRunner,
        *,
        session_factory: Optional[SessionFactory] = None,
        sleep: Optional[Sleeper] = None,
        output: Optional[TextIO] = None,
        errors: Optional[TextIO] = None,
    ) -> None:
        self._config = config
        self._mode = mode
        self._session_factory = session_factory or (lambda: open_session(config.device))
        self._sleep = sleep or asyncio.sleep
        self._output = output if output is not None else sys.stdout
        self._errors = errors if errors is not None else sys.stderr
        self.state = SupervisorState.DISCONNECTED
        self.attempts = 0
        self.sessions = 0

    async def run(self) -> int:
        """Run until the operator ends a session; return the exit code."""

        options = self._config.supervisor
        waiting_reported = False
        while True:
            self.attempts += 1
            try:
                session = self._session_factory()
            except DeviceOpenError as exc:
                if not options.reconnect:
                    print(f"Error: {exc}", file=self._errors)
                    return 1
                if not waiting_reported and not options.quiet:
                    print(
                        f"Waiting for device {self._config.device.label} ({exc})...",
                        file=self._output,
                        flush=True,
                    )
                    waiting_reported = True
                await self._sleep(options.reconnect_delay_s)
                continue

            waiting_reported = False
            self.sessions += 1
            self.state = SupervisorState.ACTIVE
            if not options.quiet:
                print("Device connected!", file=self._output, flush=True)
            client = AsyncProtocolClient(ProtocolClient(session.transport, self._config.device))
            try:
                await self._mode(client)
            except TransferError as exc:
                if not options.reconnect:
                    print(f"\nDevice connection lost: {exc}", file=self._errors)
                    return 1
                print(f"\nDevice connection lost ({exc}). Waiting to reconnect...", file=self._errors)
                continue
            finally:
                try:
                    await client.aclose()
                finally:
                    session.close()
                    self.state = SupervisorState.DISCONNECTED

            if not options.quiet:
                print("Session ended.", file=self._output)
            return 0
