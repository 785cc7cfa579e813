"""Register shell exports."""
from __future__ import annotations

from .register_shell import (
    Command,
    ExitCommand,
    InvalidCommand,
    ReadCommand,
    RegisterShell,
    WriteCommand,
    format_read,
    parse_command,
)

__all__ = [
    "Command",
    "ExitCommand",
    "InvalidCommand",
    "ReadCommand",
    "RegisterShell",
    "WriteCommand",
    "format_read",
    "parse_command",
]
