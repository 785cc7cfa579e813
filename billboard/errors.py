"""Error taxonomy for vendor control transfers and device discovery."""
from __future__ import annotations

import enum
import errno
from typing import Optional

import usb.core

# libusb-1.0 error codes surfaced through ``USBError.backend_error_code``.
LIBUSB_ERROR_NO_DEVICE = -4
LIBUSB_ERROR_TIMEOUT = -7

TIMEOUT_ERRNOS = frozenset({errno.ETIMEDOUT})

DISCONNECT_ERRNOS = frozenset(
    {
        errno.EPIPE,
        errno.ECONNABORTED,
        errno.ENOTCONN,
        errno.ENODEV,
        errno.ESHUTDOWN,
        errno.ECONNRESET,
    }
)


class TransferErrorKind(enum.Enum):
    """How a failed control transfer affects the running session."""

    TIMEOUT = "timeout"
    DISCONNECTED = "disconnected"
    OTHER = "other"


class TransferError(RuntimeError):
    """A vendor control transfer failed.

    ``kind`` drives the fatality decision of the caller: log polling treats a
    timeout as "no data yet", while ``DISCONNECTED`` always means the session
    handle is gone and the supervisor has to reconnect.
    """

    def __init__(
        self,
        request: str,
        kind: TransferErrorKind,
        message: str,
        original: Optional[BaseException] = None,
    ) -> None:
        super().__init__(f"{request}: {message}")
        self.request = request
        self.kind = kind
        self.original = original

    @property
    def is_timeout(self) -> bool:
        return self.kind is TransferErrorKind.TIMEOUT

    @property
    def is_fatal(self) -> bool:
        return self.kind is TransferErrorKind.DISCONNECTED

    @classmethod
    def from_usb_error(cls, request: str, exc: BaseException) -> "TransferError":
        return cls(request, classify_usb_error(exc), _describe(exc), original=exc)


class DeviceOpenError(RuntimeError):
    """Discovery, open or interface claim failed for the target device."""


def classify_usb_error(exc: BaseException) -> TransferErrorKind:
    """Map a pyusb (or OS) error onto :class:`TransferErrorKind`."""

    if isinstance(exc, usb.core.USBTimeoutError):
        return TransferErrorKind.TIMEOUT
    if isinstance(exc, TimeoutError):
        return TransferErrorKind.TIMEOUT
    code = getattr(exc, "backend_error_code", None)
    if code == LIBUSB_ERROR_TIMEOUT:
        return TransferErrorKind.TIMEOUT
    if code == LIBUSB_ERROR_NO_DEVICE:
        return TransferErrorKind.DISCONNECTED
    err = getattr(exc, "errno", None)
    if err in TIMEOUT_ERRNOS:
        return TransferErrorKind.TIMEOUT
    if err in DISCONNECT_ERRNOS:
        return TransferErrorKind.DISCONNECTED
    return TransferErrorKind.OTHER


def _describe(exc: BaseException) -> str:
    text = getattr(exc, "strerror", None) or str(exc)
    return text or exc.__class__.__name__


__all__ = [
    "DeviceOpenError",
    "TransferError",
    "TransferErrorKind",
    "classify_usb_error",
]
