from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Mapping

from cached_inventory.exceptions import PersistenceError
from cached_inventory.stock_cache import StockCache
from cached_inventory.storage import SnapshotStore

OpenCache = Callable[[SnapshotStore], Awaitable[StockCache]]


class RecordingStore(SnapshotStore):
    """Snapshot store that records every save and can slow down or fail."""

    def __init__(self, path: Path, *, save_delay: float = 0.0, fail_saves: bool = False) -> None:
        super().__init__(path)
        self.save_delay = save_delay
        self.fail_saves = fail_saves
        self.saved: list[dict[int, int]] = []

    def save(self, stock: Mapping[int, int]) -> None:
        # Runs in a worker thread, so a blocking sleep keeps the caller suspended.
        if self.save_delay:
            time.sleep(self.save_delay)
        if self.fail_saves:
            raise PersistenceError("disk full", path=str(self.path))
        self.saved.append(dict(stock))
        super().save(stock)
