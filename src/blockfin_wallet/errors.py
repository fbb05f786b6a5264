"""Exception hierarchy for the wallet core."""
from __future__ import annotations


class WalletError(Exception):
    """Base class for every error raised or reported by the wallet core."""


class ScanError(WalletError):
    """A camera session could not be started or kept running."""


class PermissionDenied(ScanError):
    """The user or the platform refused access to the camera."""


class DeviceUnavailable(ScanError):
    """No camera could be opened (missing, busy or unsupported)."""


class DeviceFailed(ScanError):
    """The camera failed while a session was active."""


class FetchFailed(WalletError):
    """The wallet provider could not return a balance snapshot."""


class InvalidRate(WalletError, ValueError):
    """An exchange rate that is not strictly positive was supplied."""


class ClipboardUnavailable(WalletError, RuntimeError):
    """The system clipboard cannot be written to."""


__all__ = [
    "WalletError",
    "ScanError",
    "PermissionDenied",
    "DeviceUnavailable",
    "DeviceFailed",
    "FetchFailed",
    "InvalidRate",
    "ClipboardUnavailable",
]
