"""Configuration management for the USB Billboard debug client."""
from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from .constants import (
    CONTROL_TIMEOUT_MS,
    LOG_FRAME_SIZE,
    POLL_TIMEOUT_MS,
    USB_INTERFACE,
    USB_PID,
    USB_VID,
)

SUPPORTED_TRANSPORTS = {"usb", "sim"}
SUPPORTED_FRAME_SIZES = {8, 64}


def _coerce_int(value: Any, default: int) -> int:
    """Return *value* as an int, accepting ``0x`` prefixed strings."""

    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _coerce_float(value: Any, default: float, minimum: float = 0.0) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        result = default
    return max(result, minimum)


@dataclass(slots=True)
class DeviceConfig:
    """USB identity and transfer parameters for the debug firmware."""

    vendor_id: int = USB_VID
    product_id: int = USB_PID
    transport: str = "usb"
    interface: int = USB_INTERFACE
    detach_kernel_driver: bool = True
    control_timeout_ms: int = CONTROL_TIMEOUT_MS
    poll_timeout_ms: int = POLL_TIMEOUT_MS
    log_frame_size: int = LOG_FRAME_SIZE

    def __post_init__(self) -> None:
        self.vendor_id = _coerce_int(self.vendor_id, USB_VID)
        self.product_id = _coerce_int(self.product_id, USB_PID)
        for label, value in (("vendor_id", self.vendor_id), ("product_id", self.product_id)):
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"{label} must fit in 16 bits, got {value:#x}")
        self.transport = (self.transport or "usb").strip().lower()
        if self.transport not in SUPPORTED_TRANSPORTS:
            allowed = ", ".join(sorted(SUPPORTED_TRANSPORTS))
            raise ValueError(f"transport must be one of {allowed}")
        self.interface = max(_coerce_int(self.interface, USB_INTERFACE), 0)
        self.control_timeout_ms = max(_coerce_int(self.control_timeout_ms, CONTROL_TIMEOUT_MS), 1)
        self.poll_timeout_ms = max(_coerce_int(self.poll_timeout_ms, POLL_TIMEOUT_MS), 1)
        self.log_frame_size = _coerce_int(self.log_frame_size, LOG_FRAME_SIZE)
        if self.log_frame_size not in SUPPORTED_FRAME_SIZES:
            allowed = ", ".join(str(size) for size in sorted(SUPPORTED_FRAME_SIZES))
            raise ValueError(f"log_frame_size must be one of {allowed}")

    def with_overrides(self, **overrides: Any) -> "DeviceConfig":
        return replace(self, **overrides)

    @property
    def label(self) -> str:
        return f"{self.vendor_id:04X}:{self.product_id:04X}"


@dataclass(slots=True)
class ConsoleConfig:
    """Behaviour of the live log console."""

    poll_interval_s: float = 0.1
    show_banner: bool = True

    def __post_init__(self) -> None:
        self.poll_interval_s = _coerce_float(self.poll_interval_s, 0.1)


@dataclass(slots=True)
class ShellConfig:
    """Behaviour of the interactive register shell."""

    prompt: str = "> "
    show_banner: bool = True


@dataclass(slots=True)
class SupervisorConfig:
    '''Reconnect policy for the session supervisor.'''

    reconnect: bool = True
    reconnect_delay_s: float = 1.0
    quiet: bool = False

    def __post_init__(self) -> None:
        self.reconnect_delay_s = _coerce_float(self.reconnect_delay_s, 1.0)

    def with_overrides(self, **overrides: Any) -> "SupervisorConfig":
        return replace(self, **overrides)


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration bundle."""

    device: DeviceConfig = field(default_factory=DeviceConfig)
    console: ConsoleConfig = field(default_factory=ConsoleConfig)
    shell: ShellConfig = field(default_factory=ShellConfig)
    supervisor: SupervisorConfig = field(default_factory=SupervisorConfig)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        """Create a configuration instance from a nested dictionary."""

        if payload and not isinstance(payload, dict):
            raise TypeError(f"Expected a mapping at the top level, got {type(payload).__name__}")

        def _section(name: str, factory: Any) -> Any:
            data = payload.get(name, {}) if payload else {}
            if isinstance(data, dict):
                return factory(**data)
            raise TypeError(f"Expected mapping for section '{name}', got {type(data).__name__}")

        return cls(
            device=_section("device", DeviceConfig),
            console=_section("console", ConsoleConfig),
            shell=_section("shell", ShellConfig),
            supervisor=_section("supervisor", SupervisorConfig),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation of the configuration."""

        def _asdict(obj: Any) -> Dict[str, Any]:
            return {field: getattr(obj, field) for field in obj.__dataclass_fields__}  # type: ignore[attr-defined]

        return {
            'device': _asdict(self.device),
            'console': _asdict(self.console),
            'shell': _asdict(self.shell),
            'supervisor': _asdict(self.supervisor),
        }

    def with_overrides(self, **overrides: Any) -> "AppConfig":
        return replace(self, **overrides)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _read_toml(path: Path) -> Any:
    return tomllib.loads(path.read_text(encoding="utf-8"))


def _read_yaml(path: Path) -> Any:
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


_READERS: Dict[str, Callable[[Path], Any]] = {
    ".json": _read_json,
    ".toml": _read_toml,
    ".yaml": _read_yaml,
    ".yml": _read_yaml,
}


def load_config(path: Optional[Path]) -> AppConfig:
    """Read *path* into an :class:`AppConfig`.

    A missing path yields the defaults. The reader is picked by suffix.
    """

    if path is None:
        return AppConfig()
    resolved = Path(path).expanduser()
    if not resolved.exists():
        return AppConfig()
    reader = _READERS.get(resolved.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported configuration format: {resolved.suffix or resolved.name}")
    return AppConfig.from_dict(reader(resolved))
