"""In-memory stock cache with per-product atomic operations."""

import asyncio
import logging
from typing import Optional

from cached_inventory.exceptions import InsufficientStock, PersistenceError
from cached_inventory.storage import SnapshotStore

_logger = logging.getLogger(__name__)


class StockCache:
    """
    Product id -> quantity map backed by a SnapshotStore.

    Compound operations (retrieve, restock) run as a single read, compare
    and write under a per-product lock, so concurrent requests for the same
    product serialize while different products never contend. Mutations
    only mark the cache dirty; a single background writer task saves the
    full snapshot, coalescing bursts of changes into one write. `flush()`
    waits for pending changes to reach disk.

    Persistence failures are logged and never surfaced: the in-memory state
    is authoritative for reads regardless of what is on disk.
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._stock: dict[int, int] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._persist_lock = asyncio.Lock()
        self._dirty = asyncio.Event()
        self._writer: Optional[asyncio.Task] = None
        self._closing = False
        self._version = 0
        self._saved_version = 0

    def __len__(self) -> int:
        return len(self._stock)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._stock

    def _lock_for(self, product_id: int) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = self._locks.setdefault(product_id, asyncio.Lock())
        return lock

    async def load(self) -> None:
        """
        Populates the cache from the snapshot.

        Any failure (corrupt file, permission error, ...) results in a cold
        start with an empty cache rather than a startup failure.
        """
        _logger.info("Trying to load cache from %s", self._store.path)
        try:
            stock = await asyncio.to_thread(self._store.load)
        except PersistenceError as exc:
            _logger.error("Starting with an empty cache: %s", exc)
            stock = {}
        self._stock = dict(stock)
        self._version = 0
        self._saved_version = 0

    def get_quantity(self, product_id: int) -> int:
        """Returns the cached quantity, 0 for unknown products."""
        return self._stock.get(product_id, 0)

    def list_product_ids(self) -> list[int]:
        """Returns a point-in-time copy of the known product ids."""
        return list(self._stock)

    def snapshot(self) -> dict[int, int]:
        return dict(self._stock)

    async def set_quantity(self, product_id: int, quantity: int) -> None:
        """Overwrites the cached quantity and schedules a snapshot save."""
        async with self._lock_for(product_id):
            self._write(product_id, quantity)

    async def retrieve(self, product_id: int, amount: int) -> int:
        """
        Takes `amount` units of a product out of stock.

        Returns:
            int: The remaining quantity.

        Raises:
            InsufficientStock: `amount` exceeds the cached quantity. The
                cache is left unchanged.
        """
        async with self._lock_for(product_id):
            current = self.get_quantity(product_id)
            if amount > current:
                raise InsufficientStock(product_id, amount, current)
            remaining = current - amount
            self._write(product_id, remaining)
            return remaining

    async def restock(self, product_id: int, amount: int) -> int:
        """
        Adds `amount` units of a product to stock.

        Negative amounts are applied as-is.

        Returns:
            int: The new quantity.
        """
        async with self._lock_for(product_id):
            updated = self.get_quantity(product_id) + amount
            self._write(product_id, updated)
            return updated

    async def flush(self) -> bool:
        """
        Waits until every mutation so far is on disk, saving if needed.

        Returns:
            bool: False if the save failed; the changes stay in memory and
            are retried on the next mutation or flush.
        """
        return await self._persist()

    async def close(self) -> bool:
        """Stops the background writer and performs the final save."""
        self._closing = True
        self._dirty.set()
        writer, self._writer = self._writer, None
        if writer is not None:
            await writer
        return await self._persist()

    def _write(self, product_id: int, quantity: int) -> None:
        self._stock[product_id] = quantity
        self._version += 1
        self._dirty.set()
        if self._writer is None and not self._closing:
            self._writer = asyncio.create_task(self._run_writer(), name="stock-cache-writer")

    async def _run_writer(self) -> None:
        while True:
            await self._dirty.wait()
            self._dirty.clear()
            if self._closing:
                return
            await self._persist()

    async def _persist(self) -> bool:
        async with self._persist_lock:
            # Saves that ran while we waited may already cover everything.
            if self._saved_version >= self._version:
                return True
            version = self._version
            stock = dict(self._stock)
            try:
                await asyncio.to_thread(self._store.save, stock)
            except PersistenceError as exc:
                _logger.error("Keeping unsaved changes in memory: %s", exc)
                return False
            self._saved_version = version
            return True
