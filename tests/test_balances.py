from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from blockfin_wallet.balances import Balance, BalanceLoader, build_snapshot
from blockfin_wallet.errors import FetchFailed
from blockfin_wallet.events import BalanceLoadFailed
from blockfin_wallet.state import LoadStatus


def btc(amount: str) -> dict:
    return {"crypto": "BTC", "cryptoAmount": amount, "fiat": "6500.00", "currency": "$"}


class FakeProvider:
    """Wallet provider whose responses are released one gate at a time."""

    def __init__(self, *, connected: bool = True) -> None:
        self.is_connected = connected
        self.calls = 0
        self.chain: str | None = None
        self._responses: list[tuple] = []

    def respond(self, result=None, *, error: Exception | None = None, stubborn: bool = False) -> asyncio.Event:
        gate = asyncio.Event()
        self._responses.append((gate, result, error, stubborn))
        return gate

    async def get_balances(self):
        gate, result, error, stubborn = self._responses[self.calls]
        self.calls += 1
        if stubborn:
            # Simulates a provider that finishes its request even when cancelled.
            try:
                await gate.wait()
            except asyncio.CancelledError:
                await gate.wait()
        else:
            await gate.wait()
        if error is not None:
            raise error
        return result

    def switch_chain(self, chain_id: str) -> None:
        self.chain = chain_id


@pytest.fixture()
def events() -> list:
    return []


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture()
def loader(provider, events) -> BalanceLoader:
    return BalanceLoader(provider, notify=events.append)


def test_initial_state_is_idle(loader):
    assert loader.state.status is LoadStatus.IDLE
    assert loader.state.balances == ()


@pytest.mark.asyncio
async def test_not_connected_never_fetches(loader, provider):
    assert loader.load(False) is None

    assert provider.calls == 0
    assert loader.state.status is LoadStatus.NOT_CONNECTED
    assert loader.state.status not in (LoadStatus.LOADING, LoadStatus.FAILED)
    assert not loader.in_flight


@pytest.mark.asyncio
async def test_load_publishes_loading_then_loaded(loader, provider):
    gate = provider.respond([btc("0.1")])

    task = loader.load(True)
    assert loader.state.status is LoadStatus.LOADING
    assert loader.in_flight

    gate.set()
    await task

    assert loader.state.status is LoadStatus.LOADED
    assert loader.state.balances == (
        Balance(
            asset_symbol="BTC",
            crypto_amount=Decimal("0.1"),
            fiat_amount=Decimal("6500.00"),
            fiat_currency_symbol="$",
        ),
    )
    assert not loader.in_flight


@pytest.mark.asyncio
async def test_newer_load_wins_when_it_finishes_first(loader, provider):
    first_gate = provider.respond([btc("0.1")])
    second_gate = provider.respond([btc("0.2")])

    first = loader.load(True)
    await asyncio.sleep(0)
    second = loader.load(True)
    await asyncio.sleep(0)

    second_gate.set()
    await second
    first_gate.set()
    await asyncio.wait({first})

    assert first.cancelled()
    assert provider.calls == 2
    assert loader.state.status is LoadStatus.LOADED
    assert loader.state.balances[0].crypto_amount == Decimal("0.2")


@pytest.mark.asyncio
async def test_stale_result_is_dropped_even_if_provider_ignores_cancel(loader, provider):
    seen = []
    loader.subscribe(seen.append)
    first_gate = provider.respond([btc("0.1")], stubborn=True)
    second_gate = provider.respond([btc("0.2")])

    first = loader.load(True)
    await asyncio.sleep(0)
    second = loader.load(True)
    await asyncio.sleep(0)

    second_gate.set()
    await second
    first_gate.set()
    await asyncio.wait({first})

    assert loader.state.balances[0].crypto_amount == Decimal("0.2")
    loaded = [state for state in seen if state.status is LoadStatus.LOADED]
    assert [state.balances[0].crypto_amount for state in loaded] == [Decimal("0.2")]


@pytest.mark.asyncio
async def test_fetch_failure_becomes_failed_state(loader, provider, events):
    gate = provider.respond(error=ConnectionError("gateway timeout"))
    gate.set()

    await loader.load(True)

    assert loader.state.status is LoadStatus.FAILED
    assert loader.state.reason == "gateway timeout"
    assert isinstance(loader.last_error, FetchFailed)
    assert events == [BalanceLoadFailed("gateway timeout")]


@pytest.mark.asyncio
async def test_stale_failure_is_dropped(loader, provider, events):
    first_gate = provider.respond(error=ConnectionError("late failure"), stubborn=True)
    second_gate = provider.respond([btc("0.2")])

    first = loader.load(True)
    await asyncio.sleep(0)
    second = loader.load(True)
    await asyncio.sleep(0)

    second_gate.set()
    await second
    first_gate.set()
    await asyncio.wait({first})

    assert loader.state.status is LoadStatus.LOADED
    assert events == []


@pytest.mark.asyncio
async def test_disconnect_supersedes_in_flight_fetch(loader, provider):
    gate = provider.respond([btc("0.1")])
    task = loader.load(True)
    await asyncio.sleep(0)

    loader.load(False)
    gate.set()
    await asyncio.wait({task})

    assert task.cancelled()
    assert loader.state.status is LoadStatus.NOT_CONNECTED


@pytest.mark.asyncio
async def test_duplicate_symbols_fail_the_snapshot(loader, provider, events):
    provider.respond([btc("0.1"), btc("0.2")]).set()

    await loader.load(True)

    assert loader.state.status is LoadStatus.FAILED
    assert "Duplicate asset symbol" in loader.state.reason
    assert len(events) == 1


@pytest.mark.asyncio
async def test_refresh_follows_provider_connection(events):
    provider = FakeProvider(connected=False)
    loader = BalanceLoader(provider, notify=events.append)

    state = await loader.refresh()

    assert state.status is LoadStatus.NOT_CONNECTED
    assert provider.calls == 0

    provider.is_connected = True
    provider.respond([btc("0.3")]).set()
    state = await loader.refresh()

    assert state.status is LoadStatus.LOADED


@pytest.mark.asyncio
async def test_switch_chain_reloads(loader, provider):
    provider.respond([{"crypto": "MATIC", "cryptoAmount": "12", "fiat": "8.40", "currency": "$"}]).set()

    state = await loader.switch_chain("137")

    assert provider.chain == "137"
    assert state.balances[0].asset_symbol == "MATIC"


@pytest.mark.asyncio
async def test_close_cancels_and_rejects_new_loads(provider, events):
    gate = provider.respond([btc("0.1")])

    async with BalanceLoader(provider, notify=events.append) as loader:
        task = loader.load(True)
        await asyncio.sleep(0)

    gate.set()
    await asyncio.wait({task})

    assert task.cancelled()
    assert loader.state.status is LoadStatus.LOADING
    with pytest.raises(RuntimeError):
        loader.load(True)


@pytest.mark.asyncio
async def test_unsubscribe_stops_notifications(loader):
    seen = []
    unsubscribe = loader.subscribe(seen.append)

    loader.load(False)
    unsubscribe()
    loader.load(False)

    assert len(seen) == 1


@pytest.mark.asyncio
async def test_failing_listener_does_not_break_the_load(loader, provider, caplog):
    seen = []

    def broken(_state):
        raise RuntimeError("widget gone")

    loader.subscribe(broken)
    loader.subscribe(seen.append)
    gate = provider.respond([btc("0.1")])
    gate.set()

    await loader.load(True)

    assert loader.state.status is LoadStatus.LOADED
    assert [state.status for state in seen] == [LoadStatus.LOADING, LoadStatus.LOADED]
    assert "Balance state listener failed" in caplog.text


@pytest.mark.asyncio
async def test_failing_sink_does_not_break_the_load(provider, caplog):
    def broken_sink(_event):
        raise RuntimeError("toast queue full")

    loader = BalanceLoader(provider, notify=broken_sink)
    gate = provider.respond(error=ConnectionError("gateway timeout"))
    gate.set()

    await loader.load(True)

    assert loader.state.status is LoadStatus.FAILED
    assert loader.state.reason == "gateway timeout"
    assert "Notification sink failed for BalanceLoadFailed" in caplog.text


def test_balance_from_mapping_accepts_attribute_names():
    balance = Balance.from_mapping(
        {"asset_symbol": "ETH", "crypto_amount": 1.5, "fiat_amount": "5250", "fiat_currency_symbol": "€"}
    )

    assert balance.crypto_amount == Decimal("1.5")
    assert balance.fiat_currency_symbol == "€"


def test_balance_from_mapping_rejects_missing_fields():
    with pytest.raises(FetchFailed) as excinfo:
        Balance.from_mapping({"crypto": "BTC", "fiat": "1"})

    assert "fiat_currency_symbol" in str(excinfo.value)


def test_balance_from_mapping_rejects_bad_amount():
    with pytest.raises(FetchFailed):
        Balance.from_mapping({"crypto": "BTC", "fiat": "lots", "currency": "$"})


def test_build_snapshot_keeps_balance_objects():
    balance = Balance("BTC", Decimal("0.1"), Decimal("6500"), "$")

    assert build_snapshot([balance]) == (balance,)
