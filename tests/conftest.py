from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from cached_inventory.stock_cache import StockCache
from cached_inventory.storage import SnapshotStore

from ._stores import OpenCache, RecordingStore


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "stockCache.json"


@pytest.fixture
def recording_store(snapshot_path: Path) -> RecordingStore:
    return RecordingStore(snapshot_path)


@pytest_asyncio.fixture
async def open_cache() -> AsyncIterator[OpenCache]:
    """Loads caches for a test and stops their background writers afterwards."""
    caches: list[StockCache] = []

    async def _open(store: SnapshotStore) -> StockCache:
        cache = StockCache(store)
        await cache.load()
        caches.append(cache)
        return cache

    yield _open

    for cache in caches:
        await cache.close()
