"""Top-level package for the USB Billboard debug client."""
from __future__ import annotations

from .config import AppConfig, DeviceConfig, load_config

__all__ = ["AppConfig", "DeviceConfig", "load_config"]
