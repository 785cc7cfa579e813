"""Hardware session layer for the Billboard debug firmware."""
from __future__ import annotations

import errno
from array import array
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional, Protocol, Tuple, Union

import usb.core
import usb.util

from ..config import DeviceConfig
from ..constants import (
    REGISTER_READ_LENGTH,
    REQ_GET_DBG_MSG,
    REQ_GET_RD_REG,
    REQ_GET_WR_REG,
    REQ_SET_DBG_MSG,
)
from ..errors import DeviceOpenError

DataOrLength = Union[None, int, bytes, bytearray, array]


class ControlTransport(Protocol):
    """Anything that can issue a USB control transfer the way pyusb does."""

    def ctrl_transfer(
        self,
        bmRequestType: int,
        bRequest: int,
        wValue: int = 0,
        wIndex: int = 0,
        data_or_wLength: DataOrLength = None,
        timeout: Optional[int] = None,
    ) -> Any:  # pragma: no cover - protocol signature
        ...


class Session(Protocol):
    """An opened device with its debug interface claimed."""

    @property
    def transport(self) -> ControlTransport:  # pragma: no cover - protocol signature
        ...

    @property
    def device(self) -> Optional["ListedDevice"]:  # pragma: no cover - protocol signature
        ...

    def open(self) -> "ListedDevice":  # pragma: no cover - protocol signature
        ...

    def close(self) -> None:  # pragma: no cover - protocol signature
        ...


@dataclass(slots=True)
class ListedDevice:
    """Metadata describing a connected debug target."""

    vendor_id: int
    product_id: int
    bus: Optional[int] = None
    address: Optional[int] = None
    description: Optional[str] = None
    transport: str = "usb"

    @property
    def label(self) -> str:
        location = ""
        if self.bus is not None and self.address is not None:
            location = f"Bus {self.bus:03d} Device {self.address:03d}: "
        return f"{location}ID {self.vendor_id:04x}:{self.product_id:04x}"


def list_devices(config: DeviceConfig) -> list[ListedDevice]:
    """Enumerate devices matching the VID/PID in *config*."""

    if config.transport == "sim":
        return [_simulated_listing(config)]
    try:
        found = usb.core.find(
            find_all=True,
            idVendor=config.vendor_id,
            idProduct=config.product_id,
        )
        devices = list(found or [])
    except usb.core.USBError as exc:
        raise DeviceOpenError(f"USB enumeration failed: {exc}") from exc
    return [_listing_for(device) for device in devices]


def _listing_for(device: Any) -> ListedDevice:
    return ListedDevice(
        vendor_id=device.idVendor,
        product_id=device.idProduct,
        bus=getattr(device, "bus", None),
        address=getattr(device, "address", None),
        transport="usb",
    )


class UsbSession:
    """Own one pyusb device handle with the debug interface claimed."""

    def __init__(self, config: DeviceConfig):
        self._config = config
        self._handle: Any = None
        self._device: Optional[ListedDevice] = None

    @property
    def device(self) -> Optional[ListedDevice]:
        return self._device

    @property
    def transport(self) -> ControlTransport:
        if self._handle is None:
            raise RuntimeError("USB session is not open")
        return self._handle

    def open(self) -> ListedDevice:
        if self._handle is not None:
            assert self._device is not None
            return self._device
        try:
            handle = usb.core.find(idVendor=self._config.vendor_id, idProduct=self._config.product_id)
        except usb.core.USBError as exc:
            raise DeviceOpenError(f"USB enumeration failed: {exc}") from exc
        if handle is None:
            raise DeviceOpenError(f"USB device {self._config.label} not found")
        interface = self._config.interface
        try:
            if self._config.detach_kernel_driver:
                _detach_kernel_driver(handle, interface)
            try:
                handle.get_active_configuration()
            except usb.core.USBError:
                handle.set_configuration()
            usb.util.claim_interface(handle, interface)
        except usb.core.USBError as exc:
            usb.util.dispose_resources(handle)
            raise DeviceOpenError(f"Failed to claim interface {interface} on {self._config.label}: {exc}") from exc
        self._handle = handle
        self._device = _listing_for(handle)
        return self._device

    def close(self) -> None:
        if self._handle is None:
            return
        try:
            usb.util.release_interface(self._handle, self._config.interface)
        except usb.core.USBError:  # pragma: no cover - device already gone
            pass
        finally:
            usb.util.dispose_resources(self._handle)
            self._handle = None
            self._device = None

    def __enter__(self) -> "UsbSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _detach_kernel_driver(handle: Any, interface: int) -> None:
    try:
        if handle.is_kernel_driver_active(interface):
            handle.detach_kernel_driver(interface)
    except NotImplementedError:  # pragma: no cover - not supported on Windows/macOS backends
        pass


class SimulatedFirmware(ControlTransport):
    """In-memory model of the debug firmware for bench runs and tests.

    Console commands are echoed back into the log stream followed by
    ``\\r\\n`` and an ``ok`` line, the same way the real firmware's command
    interpreter answers. Registers live in a sparse ``(addr, offset)`` bank.
    """

    def __init__(self, frame_size: int = 8, banner: str = "billboard sim ready\r\n") -> None:
        self.frame_size = frame_size
        self.banner = banner
        self.connected = True
        self.log_armed = False
        self.registers: Dict[Tuple[int, int], int] = {}
        self.commands: list[bytes] = []
        self.requests: list[Tuple[int, int, int, int, Any]] = []
        self._log: Deque[int] = deque()

    def emit(self, text: Union[str, bytes]) -> None:
        payload = text.encode("utf-8") if isinstance(text, str) else bytes(text)
        self._log.extend(payload)

    def unplug(self) -> None:
        self.connected = False

    def replug(self) -> None:
        self.connected = True
        self.log_armed = False
        self._log.clear()

    def ctrl_transfer(
        self,
        bmRequestType: int,
        bRequest: int,
        wValue: int = 0,
        wIndex: int = 0,
        data_or_wLength: DataOrLength = None,
        timeout: Optional[int] = None,
    ) -> Any:
        self.requests.append((bmRequestType, bRequest, wValue, wIndex, data_or_wLength))
        if not self.connected:
            raise usb.core.USBError("No such device (it may have been disconnected)", errno=errno.ENODEV)
        is_in = bool(bmRequestType & usb.util.CTRL_IN)
        if not is_in and bRequest == REQ_SET_DBG_MSG:
            payload = bytes(data_or_wLength or b"")
            return self._handle_console(payload)
        if is_in and bRequest == REQ_GET_DBG_MSG:
            return self._next_frame(int(data_or_wLength or self.frame_size))
        if is_in and bRequest == REQ_GET_RD_REG:
            return array("B", (self.registers.get((wValue, wIndex + i), 0) for i in range(REGISTER_READ_LENGTH)))
        if is_in and bRequest == REQ_GET_WR_REG:
            self.registers[((wValue >> 8) & 0xFF, wIndex)] = wValue & 0xFF
            return array("B")
        raise usb.core.USBError("Input/Output Error", errno=errno.EIO)

    def _handle_console(self, payload: bytes) -> int:
        if not payload:
            if not self.log_armed:
                self.log_armed = True
                self.emit(self.banner)
            return 0
        command = payload.rstrip(b"\r")
        self.commands.append(command)
        self.emit(command + b"\r\n")
        self.emit(b"ok " + command + b"\r\n")
        return len(payload)

    def _next_frame(self, length: int) -> array:
        if not self._log:
            raise usb.core.USBTimeoutError("Operation timed out", errno=errno.ETIMEDOUT)
        chunk = bytearray()
        while self._log and len(chunk) < length:
            chunk.append(self._log.popleft())
        chunk.extend(b"\x00" * (length - len(chunk)))
        return array("B", chunk)


class SimulatedSession:
    """Session over a :class:`SimulatedFirmware` instance."""

    def __init__(self, config: DeviceConfig, firmware: Optional[SimulatedFirmware] = None) -> None:
        self._config = config
        self._firmware = firmware or SimulatedFirmware(frame_size=config.log_frame_size)
        self._device: Optional[ListedDevice] = None

    @property
    def firmware(self) -> SimulatedFirmware:
        return self._firmware

    @property
    def device(self) -> Optional[ListedDevice]:
        return self._device

    @property
    def transport(self) -> ControlTransport:
        if self._device is None:
            raise RuntimeError("Simulated session is not open")
        return self._firmware

    def open(self) -> ListedDevice:
        if not self._firmware.connected:
            raise DeviceOpenError(f"USB device {self._config.label} not found")
        self._device = _simulated_listing(self._config)
        return self._device

    def close(self) -> None:
        self._device = None

    def __enter__(self) -> "SimulatedSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _simulated_listing(config: DeviceConfig) -> ListedDevice:
    return ListedDevice(
        vendor_id=config.vendor_id,
        product_id=config.product_id,
        description="Simulated Billboard firmware",
        transport="sim",
    )


def open_session(
    config: DeviceConfig,
    *,
    firmware: Optional[SimulatedFirmware] = None,
) -> Session:
    """Discover, open and claim the device described by *config*."""

    if config.transport == "sim":
        session: Session = SimulatedSession(config, firmware)
    elif config.transport == "usb":
        session = UsbSession(config)
    else:
        raise ValueError(f"Unsupported transport '{config.transport}'")
    session.open()
    return session
