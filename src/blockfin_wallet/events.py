"""Semantic notification events emitted by the wallet core.

Components never format user-facing text.  They emit one of the events below
to an injected sink and the UI layer decides how to render it (toast, status
bar, nothing at all).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AddressCopied:
    value: str


@dataclass(frozen=True, slots=True)
class ScanPermissionDenied:
    reason: str


@dataclass(frozen=True, slots=True)
class ScanDeviceUnavailable:
    reason: str


@dataclass(frozen=True, slots=True)
class ScanFailed:
    reason: str


@dataclass(frozen=True, slots=True)
class BalanceLoadFailed:
    reason: str


WalletEvent = Union[
    AddressCopied,
    ScanPermissionDenied,
    ScanDeviceUnavailable,
    ScanFailed,
    BalanceLoadFailed,
]

NotificationSink = Callable[[WalletEvent], None]


def log_event(event: WalletEvent) -> None:
    """Default sink: record the event in the log and do nothing else."""

    logger.info("%s: %s", type(event).__name__, event)


__all__ = [
    "AddressCopied",
    "ScanPermissionDenied",
    "ScanDeviceUnavailable",
    "ScanFailed",
    "BalanceLoadFailed",
    "WalletEvent",
    "NotificationSink",
    "log_event",
]
