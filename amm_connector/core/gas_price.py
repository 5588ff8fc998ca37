# /amm_connector/core/gas_price.py
# Background refresh of the gas price a connector signs swaps with.

import asyncio
from decimal import Decimal
from typing import Awaitable, Callable

from amm_connector.core.logger import get_logger, GAS_PRICE_REFRESH_FAILURES

log = get_logger(__name__)


class GasPriceRefresher:
    """
    Keeps a last-known-good gas price (gwei). The loop re-arms `interval`
    seconds after each refresh completes, so the cadence drifts with RPC
    latency. Without an interval the manual price is used forever.
    """
    def __init__(self, fetch: Callable[[], Awaitable[Decimal | None]], initial_price: Decimal,
                 interval: float | None, owner: str):
        self._fetch = fetch
        self._gas_price = Decimal(initial_price)
        self.interval = interval
        self.owner = owner
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def gas_price(self) -> Decimal:
        return self._gas_price

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Schedules the loop on the running event loop. Returns whether a loop is active."""
        if self.interval is None or self._closed:
            return False
        if self.running:
            return True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("GAS_PRICE_REFRESH_DEFERRED", owner=self.owner)
            return False
        self._task = loop.create_task(self._run(), name=f"gas-price-refresh:{self.owner}")
        log.info("GAS_PRICE_REFRESH_STARTED", owner=self.owner, interval=self.interval)
        return True

    async def refresh_once(self) -> Decimal:
        try:
            gas_price = await self._fetch()
        except Exception as e:
            GAS_PRICE_REFRESH_FAILURES.labels(self.owner).inc()
            log.warning("GAS_PRICE_FETCH_FAILED", owner=self.owner, error=str(e), kept=str(self._gas_price))
            return self._gas_price

        if gas_price is None or gas_price < 0:
            GAS_PRICE_REFRESH_FAILURES.labels(self.owner).inc()
            log.info("GAS_PRICE_UNUSABLE", owner=self.owner, value=gas_price, kept=str(self._gas_price))
            return self._gas_price

        self._gas_price = Decimal(gas_price)
        log.debug("GAS_PRICE_UPDATED", owner=self.owner, gas_price=str(self._gas_price))
        return self._gas_price

    async def _run(self):
        while not self._closed:
            await self.refresh_once()
            if self._closed:
                break
            await asyncio.sleep(self.interval)

    async def stop(self):
        self._closed = True
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        log.info("GAS_PRICE_REFRESH_STOPPED", owner=self.owner)
