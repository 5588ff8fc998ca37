# /test/test_gas_price.py
import asyncio
from decimal import Decimal

import pytest

from amm_connector.core.gas_price import GasPriceRefresher
from amm_connector.connectors.defikingdoms import DfkCrystalvale


class ScriptedFetch:
    """Returns the scripted values in order, then repeats the last one."""
    def __init__(self, *values):
        self.values = list(values)
        self.calls = 0

    async def __call__(self):
        value = self.values[min(self.calls, len(self.values) - 1)]
        self.calls += 1
        if isinstance(value, Exception):
            raise value
        return value


async def wait_for_calls(fetch, count, timeout=1.0):
    async def poll():
        while fetch.calls < count:
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout)


def test_no_interval_never_schedules():
    fetch = ScriptedFetch(Decimal("50"))
    refresher = GasPriceRefresher(fetch, Decimal("2"), None, owner="test")
    assert refresher.start() is False
    assert not refresher.running
    assert fetch.calls == 0
    assert refresher.gas_price == Decimal("2")


def test_start_without_event_loop_is_deferred():
    refresher = GasPriceRefresher(ScriptedFetch(Decimal("50")), Decimal("2"), 0.01, owner="test")
    assert refresher.start() is False
    assert not refresher.running


@pytest.mark.asyncio
async def test_usable_value_replaces_price():
    refresher = GasPriceRefresher(ScriptedFetch(Decimal("7.5")), Decimal("2"), 0.01, owner="test")
    assert await refresher.refresh_once() == Decimal("7.5")
    assert refresher.gas_price == Decimal("7.5")


@pytest.mark.asyncio
async def test_unusable_value_keeps_previous_price_and_loop_continues():
    fetch = ScriptedFetch(Decimal("9"), None, Decimal("-1"), RuntimeError("rpc down"), Decimal("11"))
    refresher = GasPriceRefresher(fetch, Decimal("2"), 0.01, owner="test")

    assert refresher.start() is True
    await wait_for_calls(fetch, 2)
    assert refresher.gas_price == Decimal("9")
    await wait_for_calls(fetch, 4)
    # None, a negative value and an exception all leave the price alone
    assert refresher.gas_price in (Decimal("9"), Decimal("11"))
    await wait_for_calls(fetch, 5)
    assert refresher.running
    await refresher.stop()
    assert refresher.gas_price == Decimal("11")


@pytest.mark.asyncio
async def test_stop_prevents_further_refreshes():
    fetch = ScriptedFetch(Decimal("3"))
    refresher = GasPriceRefresher(fetch, Decimal("2"), 0.01, owner="test")
    refresher.start()
    await wait_for_calls(fetch, 1)

    await refresher.stop()
    calls = fetch.calls
    await asyncio.sleep(0.05)

    assert fetch.calls == calls
    assert not refresher.running
    # closed refreshers cannot be restarted
    assert refresher.start() is False


@pytest.mark.asyncio
async def test_start_is_idempotent():
    refresher = GasPriceRefresher(ScriptedFetch(Decimal("3")), Decimal("2"), 10, owner="test")
    assert refresher.start() is True
    task = refresher._task
    assert refresher.start() is True
    assert refresher._task is task
    await refresher.stop()


@pytest.mark.asyncio
async def test_connector_refreshes_from_chain_and_stops_on_close(chain, connector_config, w3):
    chain.config = chain.config.model_copy(update={"gas_price_refresh_interval": 0.01})
    w3.eth.gas_price_value = 25 * 10**9

    connector = DfkCrystalvale.get_instance("dfkchain", "mainnet", gateway=chain, config=connector_config)
    try:
        assert connector.gas_price == Decimal("2")
        for _ in range(100):
            if connector.gas_price == Decimal("25"):
                break
            await asyncio.sleep(0.005)
        assert connector.gas_price == Decimal("25")
    finally:
        await connector.close()
    assert not connector._gas_price_refresher.running


@pytest.mark.asyncio
async def test_connector_without_interval_keeps_manual_price(connector, w3):
    w3.eth.gas_price_value = 25 * 10**9
    assert connector.update_gas_price() is False
    await asyncio.sleep(0.02)
    assert connector.gas_price == Decimal("2")
