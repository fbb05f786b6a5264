"""Asynchronous wallet balance loading."""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from .errors import FetchFailed
from .events import BalanceLoadFailed, NotificationSink, log_event
from .state import BalanceState, LoadStatus

logger = logging.getLogger(__name__)

_FIELD_ALIASES = {
    "asset_symbol": ("asset_symbol", "crypto", "symbol"),
    "crypto_amount": ("crypto_amount", "cryptoAmount", "amount"),
    "fiat_amount": ("fiat_amount", "fiat"),
    "fiat_currency_symbol": ("fiat_currency_symbol", "currency"),
}


def _parse_amount(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise FetchFailed(f"{name} is not a valid decimal: {value!r}") from exc
    if not amount.is_finite():
        raise FetchFailed(f"{name} must be finite")
    return amount


@dataclass(frozen=True, slots=True)
class Balance:
    """Holdings of one asset as reported by the wallet provider."""

    asset_symbol: str
    crypto_amount: Decimal
    fiat_amount: Decimal
    fiat_currency_symbol: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Balance":
        """Build a balance from the provider's wire format.

        Both the provider's camelCase keys (``crypto``, ``cryptoAmount``,
        ``fiat``, ``currency``) and the attribute names are accepted.  A
        missing crypto amount is read as zero.
        """

        values = {}
        for attr, aliases in _FIELD_ALIASES.items():
            for key in aliases:
                if key in data:
                    values[attr] = data[key]
                    break

        for required in ("asset_symbol", "fiat_amount", "fiat_currency_symbol"):
            if required not in values:
                raise FetchFailed(f"Missing field in balance: {required}")

        symbol = str(values["asset_symbol"]).strip()
        if not symbol:
            raise FetchFailed("Balance has an empty asset symbol")

        return cls(
            asset_symbol=symbol,
            crypto_amount=_parse_amount(values.get("crypto_amount", "0"), "crypto_amount"),
            fiat_amount=_parse_amount(values["fiat_amount"], "fiat_amount"),
            fiat_currency_symbol=str(values["fiat_currency_symbol"]),
        )


def build_snapshot(items: Iterable[Union[Balance, Mapping[str, Any]]]) -> Tuple[Balance, ...]:
    """Normalise a provider response, rejecting repeated asset symbols."""

    if items is None:
        raise FetchFailed("Wallet provider returned no balances")

    snapshot: List[Balance] = []
    seen = set()
    for item in items:
        balance = item if isinstance(item, Balance) else Balance.from_mapping(item)
        if balance.asset_symbol in seen:
            raise FetchFailed(f"Duplicate asset symbol in balances: {balance.asset_symbol}")
        seen.add(balance.asset_symbol)
        snapshot.append(balance)
    return tuple(snapshot)


class WalletProvider(Protocol):
    is_connected: bool

    async def get_balances(self) -> Sequence[Union[Balance, Mapping[str, Any]]]:
        ...

    def switch_chain(self, chain_id: str) -> Any:
        ...


StateListener = Callable[[BalanceState], None]


class BalanceLoader:
    """Fetch balances and publish a :class:`BalanceState`.

    Every call to :meth:`load` takes a new token and supersedes the fetch
    already in flight, so at most one fetch runs per loader.  A fetch only
    writes state while its token is still the newest one; anything older is
    dropped, including results from a provider that ignores cancellation.
    """

    def __init__(self, provider: WalletProvider, *, notify: NotificationSink | None = None) -> None:
        self._provider = provider
        self._notify = notify or log_event
        self._state = BalanceState()
        self._token = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []
        self._closed = False
        self.last_error: FetchFailed | None = None

    @property
    def state(self) -> BalanceState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` on every state change; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: BalanceState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Balance state listener failed")

    def _emit(self, event: BalanceLoadFailed) -> None:
        try:
            self._notify(event)
        except Exception:
            logger.exception("Notification sink failed for %s", type(event).__name__)

    def load(self, connected: bool) -> Optional[asyncio.Task]:
        """Start loading balances; returns the fetch task, or ``None`` when not connected."""

        if self._closed:
            raise RuntimeError("BalanceLoader has been closed")

        self._token += 1
        token = self._token
        self._cancel_in_flight()

        if not connected:
            logger.debug("Wallet not connected; skipping balance fetch")
            self._set_state(BalanceState(status=LoadStatus.NOT_CONNECTED))
            return None

        self._set_state(BalanceState(status=LoadStatus.LOADING))
        task = asyncio.get_running_loop().create_task(self._fetch(token))
        self._task = task
        return task

    async def _fetch(self, token: int) -> None:
        try:
            snapshot = build_snapshot(await self._provider.get_balances())
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if token != self._token:
                logger.debug("Dropping failure from superseded balance fetch %d", token)
                return
            reason = str(exc) or type(exc).__name__
            self.last_error = exc if isinstance(exc, FetchFailed) else FetchFailed(reason)
            logger.warning("Balance fetch failed: %s", reason)
            self._set_state(BalanceState(status=LoadStatus.FAILED, reason=reason))
            self._emit(BalanceLoadFailed(reason))
            return
        finally:
            if self._task is asyncio.current_task():
                self._task = None

        if token != self._token:
            logger.debug("Dropping result from superseded balance fetch %d", token)
            return

        self.last_error = None
        logger.info("Loaded %d balances", len(snapshot))
        self._set_state(BalanceState(status=LoadStatus.LOADED, balances=snapshot))

    def _cancel_in_flight(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    async def refresh(self) -> BalanceState:
        """Load according to the provider's connection flag and wait for the outcome."""

        task = self.load(bool(self._provider.is_connected))
        if task is not None:
            await asyncio.wait({task})
        return self._state

    async def switch_chain(self, chain_id: str) -> BalanceState:
        """Switch the provider to ``chain_id`` and reload balances for it."""

        result = self._provider.switch_chain(chain_id)
        if inspect.isawaitable(result):
            await result
        logger.info("Switched wallet provider to chain %s", chain_id)
        return await self.refresh()

    def close(self) -> None:
        self._token += 1
        self._cancel_in_flight()
        self._closed = True

    async def __aenter__(self) -> "BalanceLoader":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        self.close()


__all__ = ["Balance", "BalanceLoader", "WalletProvider", "build_snapshot"]
