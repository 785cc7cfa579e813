"""Session lifecycle helpers."""
from __future__ import annotations

from .supervisor import ReconnectSupervisor, SupervisorState

__all__ = [
    "ReconnectSupervisor",
    "SupervisorState",
]
