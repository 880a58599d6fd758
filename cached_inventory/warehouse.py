"""Clients for the external warehouse stock system."""

import asyncio
import logging
import random
from typing import Any, Optional, Protocol

import aiohttp

from cached_inventory.exceptions import WarehouseError

_logger = logging.getLogger(__name__)


class WarehouseClient(Protocol):
    """Remote authority for stock quantities."""

    async def get_stock(self, product_id: int) -> int:
        ...

    async def update_stock(self, product_id: int, quantity: int) -> None:
        ...

    async def close(self) -> None:
        ...


class HttpWarehouseClient:
    """
    Warehouse client speaking JSON over HTTP.

    `GET {base_url}/stock/{id}` returns the quantity as a bare integer and
    `POST {base_url}/stock/{id}` with `{"quantity": n}` overwrites it.

    Usage::

        async with HttpWarehouseClient("http://warehouse:8080") as client:
            await client.update_stock(1, 10)
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 5.0,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._external_session = session is not None
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    async def __aenter__(self) -> "HttpWarehouseClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._external_session = False
        return self._session

    async def close(self) -> None:
        """Closes the HTTP session unless it was provided by the caller."""
        if not self._external_session and self._session is not None:
            await self._session.close()
        self._session = None

    async def get_stock(self, product_id: int) -> int:
        url = f"{self._base_url}/stock/{product_id}"
        _logger.debug("GET %s", url)
        try:
            async with self._http().get(url, timeout=self._timeout) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise WarehouseError(
                        f"HTTP {resp.status} reading stock of product {product_id}: {text[:200]}",
                        product_id=product_id,
                        status_code=resp.status,
                    )
        except aiohttp.ClientError as exc:
            raise WarehouseError(
                f"Reading stock of product {product_id} failed: {exc}",
                product_id=product_id,
            ) from exc
        except asyncio.TimeoutError as exc:
            raise WarehouseError(
                f"Reading stock of product {product_id} timed out",
                product_id=product_id,
            ) from exc

        try:
            return int(text.strip())
        except ValueError as exc:
            raise WarehouseError(
                f"Invalid stock value for product {product_id}: {text[:64]!r}",
                product_id=product_id,
            ) from exc

    async def update_stock(self, product_id: int, quantity: int) -> None:
        url = f"{self._base_url}/stock/{product_id}"
        _logger.debug("POST %s quantity=%d", url, quantity)
        try:
            async with self._http().post(
                url, json={"quantity": quantity}, timeout=self._timeout
            ) as resp:
                if resp.status >= 300:
                    text = await resp.text()
                    raise WarehouseError(
                        f"HTTP {resp.status} updating stock of product {product_id}: {text[:200]}",
                        product_id=product_id,
                        status_code=resp.status,
                    )
        except aiohttp.ClientError as exc:
            raise WarehouseError(
                f"Updating stock of product {product_id} failed: {exc}",
                product_id=product_id,
            ) from exc
        except asyncio.TimeoutError as exc:
            raise WarehouseError(
                f"Updating stock of product {product_id} timed out",
                product_id=product_id,
            ) from exc


class SimulatedWarehouseClient:
    """
    In-process stand-in for the slow warehouse system.

    Every call sleeps for `latency` seconds. Calls fail with WarehouseError
    for products registered through `fail_updates_for` / `fail_reads_for`,
    and at random with probability `failure_rate`.
    """

    def __init__(
        self,
        latency: float = 0.1,
        failure_rate: float = 0.0,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.latency = latency
        self.failure_rate = failure_rate
        self.stock: dict[int, int] = {}
        self.update_calls: list[tuple[int, int]] = []
        self.read_calls: list[int] = []
        self._failing_updates: set[int] = set()
        self._failing_reads: set[int] = set()
        self._rng = rng or random.Random()

    def fail_updates_for(self, *product_ids: int) -> None:
        self._failing_updates.update(product_ids)

    def fail_reads_for(self, *product_ids: int) -> None:
        self._failing_reads.update(product_ids)

    def clear_failures(self) -> None:
        self._failing_updates.clear()
        self._failing_reads.clear()

    async def _delay(self) -> None:
        if self.latency > 0:
            await asyncio.sleep(self.latency)

    def _roll_failure(self) -> bool:
        return self.failure_rate > 0 and self._rng.random() < self.failure_rate

    async def get_stock(self, product_id: int) -> int:
        await self._delay()
        self.read_calls.append(product_id)
        if product_id in self._failing_reads or self._roll_failure():
            raise WarehouseError(
                f"Simulated read failure for product {product_id}",
                product_id=product_id,
            )
        return self.stock.get(product_id, 0)

    async def update_stock(self, product_id: int, quantity: int) -> None:
        await self._delay()
        self.update_calls.append((product_id, quantity))
        if product_id in self._failing_updates or self._roll_failure():
            raise WarehouseError(
                f"Simulated update failure for product {product_id}",
                product_id=product_id,
            )
        self.stock[product_id] = quantity

    async def close(self) -> None:
        return None
