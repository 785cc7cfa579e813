"""Vendor request encoding and client exports."""
from __future__ import annotations

from .client import (
    AsyncProtocolClient,
    ControlRequest,
    ProtocolClient,
    console_command_request,
    init_log_request,
    poll_log_request,
    read_register_request,
    write_register_request,
)

__all__ = [
    "AsyncProtocolClient",
    "ControlRequest",
    "ProtocolClient",
    "console_command_request",
    "init_log_request",
    "poll_log_request",
    "read_register_request",
    "write_register_request",
]
