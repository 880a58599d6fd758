"""Background reconciliation of cached stock with the warehouse system."""

import asyncio
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Optional

from cached_inventory.exceptions import SyncError
from cached_inventory.stock_cache import StockCache
from cached_inventory.warehouse import WarehouseClient

_logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL = 2.5


class SyncState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SyncReport:
    """Outcome of a single reconciliation pass."""

    pushed: list[int] = field(default_factory=list)
    mismatched: dict[int, tuple[int, int]] = field(default_factory=dict)
    failed: dict[int, str] = field(default_factory=dict)
    cancelled: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.failed and not self.cancelled


class StockSyncService:
    """
    Periodically pushes every cached quantity to the warehouse system.

    The push is one-directional: warehouse quantities are read back only to
    verify and log the update, never copied into the cache. A failure for
    one product is logged and does not stop the pass or later passes; there
    is no retry within a pass, the next tick simply pushes again.

    Ticks are fixed-rate starting immediately on `start()`. At most one
    pass runs at a time; ticks that fall due while a pass is still running
    are skipped. `stop()` lets the in-flight pass finish the product it is
    working on and prevents further ticks.
    """

    def __init__(
        self,
        cache: StockCache,
        client: WarehouseClient,
        interval: float = DEFAULT_SYNC_INTERVAL,
        stop_timeout: float = 5.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._cache = cache
        self._client = client
        self.interval = interval
        self._stop_timeout = stop_timeout
        self._stopping = asyncio.Event()
        self._pass_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._state = SyncState.IDLE
        self.last_report: Optional[SyncReport] = None
        self.ticks = 0

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Starts the background task. The first pass runs right away."""
        if self._state is SyncState.STOPPED:
            raise RuntimeError("A stopped sync service cannot be restarted")
        if self.is_running:
            return
        _logger.info("Stock sync service starting (interval=%.2fs)", self.interval)
        self._task = asyncio.create_task(self._run(), name="stock-sync")

    async def stop(self) -> None:
        """Stops ticking and waits for an in-flight pass to wind down."""
        if self._state is SyncState.STOPPED:
            return
        _logger.info("Stock sync service stopping")
        self._stopping.set()
        task, self._task = self._task, None
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=self._stop_timeout)
            except asyncio.TimeoutError:
                _logger.warning(
                    "Sync pass did not finish within %.1fs, cancelled", self._stop_timeout
                )
        self._state = SyncState.STOPPED

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while not self._stopping.is_set():
            await self.run_once()

            next_tick += self.interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // self.interval) + 1
                _logger.warning("Sync pass overran the interval, skipping %d tick(s)", missed)
                next_tick += missed * self.interval

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=next_tick - now)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> Optional[SyncReport]:
        """
        Runs a single reconciliation pass.

        Returns:
            SyncReport: Outcome of the pass, or None if another pass was
            already in progress and this one was skipped.
        """
        if self._state is SyncState.STOPPED:
            return None
        if self._pass_lock.locked():
            _logger.debug("Sync pass already in progress, skipping tick")
            return None

        async with self._pass_lock:
            self._state = SyncState.RUNNING
            self.ticks += 1
            started = time.perf_counter()
            report = SyncReport()
            try:
                product_ids = self._cache.list_product_ids()
                _logger.info("Product IDs found: %s", ", ".join(map(str, product_ids)))

                for product_id in product_ids:
                    if self._stopping.is_set():
                        report.cancelled = True
                        _logger.info("Sync pass interrupted by shutdown")
                        break
                    try:
                        await self._sync_product(product_id, report)
                    except SyncError as exc:
                        report.failed[product_id] = str(exc)
                        _logger.error("Error syncing product %d: %s", product_id, exc)
                    except Exception as exc:
                        # Any other client failure is still scoped to this product.
                        report.failed[product_id] = f"{type(exc).__name__}: {exc}"
                        _logger.exception("Unexpected error syncing product %d", product_id)
            finally:
                report.duration = time.perf_counter() - started
                self.last_report = report
                if self._state is SyncState.RUNNING:
                    self._state = SyncState.IDLE
            return report

    async def _sync_product(self, product_id: int, report: SyncReport) -> None:
        quantity = self._cache.get_quantity(product_id)
        _logger.debug("Cached stock for product %d: %d", product_id, quantity)

        await self._client.update_stock(product_id, quantity)
        _logger.info("Updated warehouse stock for product %d to %d", product_id, quantity)

        observed = await self._client.get_stock(product_id)
        if observed != quantity:
            report.mismatched[product_id] = (quantity, observed)
            _logger.warning(
                "Warehouse stock for product %d reads %d after pushing %d",
                product_id,
                observed,
                quantity,
            )
        else:
            _logger.info("Verified warehouse stock for product %d: %d", product_id, observed)
        report.pushed.append(product_id)
