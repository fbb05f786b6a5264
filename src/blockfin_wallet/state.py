"""Runtime state containers observed by the UI layer."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple


class LoadStatus(enum.Enum):
    IDLE = "idle"
    NOT_CONNECTED = "not_connected"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ScanState(enum.Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    ACTIVE = "active"
    STOPPED = "stopped"
    DENIED = "denied"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class BalanceState:
    """Snapshot published by :class:`~blockfin_wallet.balances.BalanceLoader`."""

    status: LoadStatus = LoadStatus.IDLE
    balances: Tuple["Balance", ...] = ()
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CopyFeedbackState:
    """Value last copied and when; ``copied_at`` is ``None`` once the window closes."""

    value: str = ""
    copied_at: Optional[float] = None

    @property
    def copied(self) -> bool:
        return self.copied_at is not None


# ``Balance`` lives in ``balances`` which itself imports this module, so the
# name is only resolved for static type checking.
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported for static type checking only
    from .balances import Balance


__all__ = ["LoadStatus", "ScanState", "BalanceState", "CopyFeedbackState"]
