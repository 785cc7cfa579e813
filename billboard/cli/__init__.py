"""Command-line helpers."""
from __future__ import annotations

from .common import apply_device_overrides, parse_hex, parse_hex_u16

__all__ = ["apply_device_overrides", "parse_hex", "parse_hex_u16"]
