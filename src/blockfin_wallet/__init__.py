"""BlockFin wallet core package."""
from __future__ import annotations

from .balances import Balance, BalanceLoader, WalletProvider
from .camera import CameraSession, OpenCVCamera
from .clipboard import ClipboardFeedback, QtClipboard
from .config import AppConfig, CameraConfig
from .errors import (
    ClipboardUnavailable,
    DeviceFailed,
    DeviceUnavailable,
    FetchFailed,
    InvalidRate,
    PermissionDenied,
    ScanError,
    WalletError,
)
from .qr import QRCodeManager
from .quote import PaymentQuote, quote
from .state import BalanceState, CopyFeedbackState, LoadStatus, ScanState

__all__ = [
    "AppConfig",
    "CameraConfig",
    "Balance",
    "BalanceLoader",
    "BalanceState",
    "WalletProvider",
    "CameraSession",
    "OpenCVCamera",
    "ClipboardFeedback",
    "QtClipboard",
    "CopyFeedbackState",
    "LoadStatus",
    "ScanState",
    "QRCodeManager",
    "PaymentQuote",
    "quote",
    "WalletError",
    "ScanError",
    "PermissionDenied",
    "DeviceUnavailable",
    "DeviceFailed",
    "FetchFailed",
    "InvalidRate",
    "ClipboardUnavailable",
]

__version__ = "1.0"
