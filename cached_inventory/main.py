"""FastAPI application entry point for the cached inventory service."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from cached_inventory.config import Settings
from cached_inventory.exceptions import InsufficientStock
from cached_inventory.schemas import RestockRequest, RetrieveStockRequest
from cached_inventory.stock_cache import StockCache
from cached_inventory.storage import SnapshotStore
from cached_inventory.sync_service import StockSyncService
from cached_inventory.warehouse import (
    HttpWarehouseClient,
    SimulatedWarehouseClient,
    WarehouseClient,
)

_logger = logging.getLogger(__name__)

NOT_ENOUGH_STOCK = "Not enough stock."

router = APIRouter()


def build_warehouse_client(settings: Settings) -> WarehouseClient:
    """Returns an HTTP client when a warehouse URL is configured, else a simulated one."""
    if settings.warehouse_url:
        _logger.info("Using warehouse system at %s", settings.warehouse_url)
        return HttpWarehouseClient(settings.warehouse_url, timeout=settings.warehouse_timeout)
    _logger.info("No WAREHOUSE_URL configured, using simulated warehouse")
    return SimulatedWarehouseClient(latency=settings.simulated_latency)


def create_app(
    settings: Optional[Settings] = None,
    warehouse: Optional[WarehouseClient] = None,
) -> FastAPI:
    """
    Builds the application.

    Startup loads the snapshot into the cache and starts the sync service;
    shutdown stops the sync service, saves the cache one last time and
    closes the warehouse client if the application created it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or Settings.from_env()
        cache = StockCache(SnapshotStore(cfg.cache_path))
        await cache.load()

        client = warehouse if warehouse is not None else build_warehouse_client(cfg)
        sync_service = StockSyncService(
            cache,
            client,
            interval=cfg.sync_interval,
            stop_timeout=cfg.sync_stop_timeout,
        )

        app.state.settings = cfg
        app.state.stock_cache = cache
        app.state.warehouse = client
        app.state.sync_service = sync_service

        if cfg.sync_enabled:
            sync_service.start()
        try:
            yield
        finally:
            await sync_service.stop()
            await cache.close()
            if warehouse is None:
                await client.close()

    app = FastAPI(
        title="Cached Inventory",
        description="Low-latency stock cache in front of a slower warehouse system.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(InsufficientStock, insufficient_stock_handler)
    app.include_router(router)
    return app


async def insufficient_stock_handler(request: Request, exc: InsufficientStock) -> JSONResponse:
    _logger.info("Rejected retrieve: %s", exc)
    return JSONResponse(status_code=400, content=NOT_ENOUGH_STOCK)


def get_stock_cache(request: Request) -> StockCache:
    """Dependency returning the process-wide stock cache."""
    return request.app.state.stock_cache


def get_sync_service(request: Request) -> StockSyncService:
    return request.app.state.sync_service


@router.get("/health")
async def health_check(
    cache: StockCache = Depends(get_stock_cache),
    sync_service: StockSyncService = Depends(get_sync_service),
):
    """Health check endpoint for Docker/Kubernetes probes."""
    return {
        "status": "healthy",
        "products": len(cache),
        "sync": sync_service.state.value,
    }


@router.get("/stock/{product_id}", response_model=int)
async def get_stock(product_id: int, cache: StockCache = Depends(get_stock_cache)) -> int:
    """Returns the cached quantity of a product, 0 if unknown."""
    return cache.get_quantity(product_id)


@router.post("/stock/retrieve")
async def retrieve_stock(
    req: RetrieveStockRequest,
    cache: StockCache = Depends(get_stock_cache),
) -> Response:
    """
    Takes stock out of the cache.

    Responds 400 "Not enough stock." when the amount exceeds the cached
    quantity; the check and the update happen atomically per product.
    """
    await cache.retrieve(req.product_id, req.amount)
    return Response(status_code=200)


@router.post("/stock/restock")
async def restock(
    req: RestockRequest,
    cache: StockCache = Depends(get_stock_cache),
) -> Response:
    """Adds stock to the cache."""
    await cache.restock(req.product_id, req.amount)
    return Response(status_code=200)


app = create_app()


if __name__ == "__main__":
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
