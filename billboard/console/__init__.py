"""Log console exports."""
from __future__ import annotations

from .echo import EchoDecoder, EchoState, valid_length
from .input import LineSource, StdinLineReader
from .log_console import LogConsole

__all__ = [
    "EchoDecoder",
    "EchoState",
    "LineSource",
    "LogConsole",
    "StdinLineReader",
    "valid_length",
]
