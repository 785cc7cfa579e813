"""Shared constants for the Billboard debug firmware protocol."""
from __future__ import annotations

USB_VID = 0x343C
USB_PID = 0x5361
USB_INTERFACE = 0

# IN requests
REQ_GET_DBG_MSG = 0x10
REQ_GET_WR_REG = 0x11
REQ_GET_RD_REG = 0x12

# OUT requests
REQ_SET_DBG_MSG = 0x22

LOG_FRAME_SIZE = 8  # 64 on the newer firmware generation
REGISTER_READ_LENGTH = 8

CONTROL_TIMEOUT_MS = 500
POLL_TIMEOUT_MS = 100

COMMAND_TERMINATOR = b"\r"
CR = 0x0D
LF = 0x0A
