from __future__ import annotations

import random

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from cached_inventory.exceptions import SyncError, WarehouseError
from cached_inventory.warehouse import HttpWarehouseClient, SimulatedWarehouseClient


def _warehouse_app(stock: dict[int, int], *, broken: bool = False, garbage: bool = False) -> web.Application:
    async def get_stock(request: web.Request) -> web.Response:
        if broken:
            return web.Response(status=503, text="maintenance")
        if garbage:
            return web.Response(text="lots")
        product_id = int(request.match_info["product_id"])
        return web.Response(text=str(stock.get(product_id, 0)))

    async def update_stock(request: web.Request) -> web.Response:
        if broken:
            return web.Response(status=500, text="boom")
        body = await request.json()
        stock[int(request.match_info["product_id"])] = int(body["quantity"])
        return web.Response(status=204)

    app = web.Application()
    app.router.add_get("/stock/{product_id}", get_stock)
    app.router.add_post("/stock/{product_id}", update_stock)
    return app


async def _serve(app: web.Application) -> tuple[TestServer, str]:
    server = TestServer(app)
    await server.start_server()
    return server, str(server.make_url("/"))


@pytest.mark.asyncio
async def test_http_client_update_then_get() -> None:
    stock: dict[int, int] = {}
    server, url = await _serve(_warehouse_app(stock))
    try:
        async with HttpWarehouseClient(url) as client:
            await client.update_stock(3, 17)
            assert await client.get_stock(3) == 17
            assert await client.get_stock(4) == 0
    finally:
        await server.close()

    assert stock == {3: 17}


@pytest.mark.asyncio
async def test_http_client_non_2xx_raises_warehouse_error() -> None:
    server, url = await _serve(_warehouse_app({}, broken=True))
    try:
        async with HttpWarehouseClient(url) as client:
            with pytest.raises(WarehouseError) as update_exc:
                await client.update_stock(1, 1)
            with pytest.raises(WarehouseError) as get_exc:
                await client.get_stock(1)
    finally:
        await server.close()

    assert update_exc.value.status_code == 500
    assert update_exc.value.product_id == 1
    assert get_exc.value.status_code == 503


@pytest.mark.asyncio
async def test_http_client_rejects_non_integer_body() -> None:
    server, url = await _serve(_warehouse_app({}, garbage=True))
    try:
        async with HttpWarehouseClient(url) as client:
            with pytest.raises(WarehouseError, match="Invalid stock value"):
                await client.get_stock(1)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_http_client_connection_failure_is_a_sync_error() -> None:
    server, url = await _serve(_warehouse_app({}))
    await server.close()

    async with HttpWarehouseClient(url, timeout=1.0) as client:
        with pytest.raises(SyncError):
            await client.update_stock(1, 1)


@pytest.mark.asyncio
async def test_simulated_client_tracks_calls_and_failures() -> None:
    client = SimulatedWarehouseClient(latency=0)
    client.fail_updates_for(2)

    await client.update_stock(1, 5)
    with pytest.raises(WarehouseError):
        await client.update_stock(2, 5)

    assert await client.get_stock(1) == 5
    assert client.update_calls == [(1, 5), (2, 5)]
    assert client.stock == {1: 5}

    client.clear_failures()
    await client.update_stock(2, 6)
    assert client.stock == {1: 5, 2: 6}


@pytest.mark.asyncio
async def test_simulated_client_random_failures() -> None:
    client = SimulatedWarehouseClient(latency=0, failure_rate=1.0, rng=random.Random(0))

    with pytest.raises(WarehouseError):
        await client.get_stock(1)
