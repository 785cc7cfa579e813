"""Hardware abstraction helpers."""
from __future__ import annotations

from .device_manager import (
    ControlTransport,
    ListedDevice,
    Session,
    SimulatedFirmware,
    SimulatedSession,
    UsbSession,
    list_devices,
    open_session,
)

__all__ = [
    "ControlTransport",
    "ListedDevice",
    "Session",
    "SimulatedFirmware",
    "SimulatedSession",
    "UsbSession",
    "list_devices",
    "open_session",
]
