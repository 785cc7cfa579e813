"""Operator line input for the console and register shell."""
from __future__ import annotations

import asyncio
import sys
import threading
from typing import IO, Optional, Protocol


class LineSource(Protocol):
    """Asynchronous source of operator input lines."""

    async def readline(self) -> Optional[str]:  # pragma: no cover - protocol signature
        """Return the next line, or ``None`` once input has ended."""
        ...


class StdinLineReader(LineSource):
    """Read lines from *stream* on a daemon thread and hand them to asyncio.

    A single reader is meant to live for the whole process so that lines
    typed while the device is reconnecting are delivered to the next session.
    """

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream if stream is not None else sys.stdin
        self._queue: Optional[asyncio.Queue[Optional[str]]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._eof = False

    def start(self) -> None:
        if self._thread is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._thread = threading.Thread(target=self._run, name="stdin-reader", daemon=True)
        self._thread.start()

    async def readline(self) -> Optional[str]:
        if self._eof:
            return None
        self.start()
        assert self._queue is not None
        line = await self._queue.get()
        if line is None:
            self._eof = True
        return line

    def _run(self) -> None:
        assert self._loop is not None and self._queue is not None
        while True:
            try:
                line = self._stream.readline()
            except (OSError, ValueError):
                line = ""
            if not line:
                self._deliver(None)
                return
            self._deliver(line)

    def _deliver(self, line: Optional[str]) -> None:
        assert self._loop is not None and self._queue is not None
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, line)
        except RuntimeError:  # event loop already closed during shutdown
            pass
