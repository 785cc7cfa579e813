"""Shared CLI helpers for operator tooling."""
from __future__ import annotations

import string
from argparse import Namespace

from ..config import DeviceConfig

_HEX_DIGITS = frozenset(string.hexdigits)


def parse_hex(text: str, bits: int = 16) -> int:
    """Parse *text* as hexadecimal with an optional ``0x``/``0X`` prefix."""

    value = text.strip()
    if not value:
        raise ValueError("empty input")
    digits = value[2:] if value[:2].lower() == "0x" else value
    if not digits or not _HEX_DIGITS.issuperset(digits):
        raise ValueError(f"cannot parse '{value}' as a hexadecimal number")
    number = int(digits, 16)
    if number >= 1 << bits:
        raise ValueError(f"'{value}' does not fit in {bits} bits")
    return number


def parse_hex_u16(text: str) -> int:
    return parse_hex(text, 16)


def apply_device_overrides(device: DeviceConfig, args: Namespace) -> DeviceConfig:
    """Return *device* with command-line overrides stored in *args* applied."""

    overrides = {}
    if getattr(args, "vid", None) is not None:
        overrides["vendor_id"] = args.vid
    if getattr(args, "pid", None) is not None:
        overrides["product_id"] = args.pid
    if getattr(args, "transport", None):
        overrides["transport"] = args.transport
    if getattr(args, "interface", None) is not None:
        overrides["interface"] = args.interface
    if getattr(args, "frame_size", None) is not None:
        overrides["log_frame_size"] = args.frame_size
    if not overrides:
        return device
    return device.with_overrides(**overrides)
