"""Exception hierarchy for the cached inventory service."""

from typing import Optional


class CachedInventoryError(Exception):
    """Base exception for all cached inventory errors."""


class InsufficientStock(CachedInventoryError):
    """Requested amount exceeds the cached quantity for a product.

    This is the only failure an API caller ever observes. The cache state
    is left unchanged when it is raised.
    """

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class PersistenceError(CachedInventoryError):
    """Snapshot could not be read from or written to disk."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class SyncError(CachedInventoryError):
    """Reconciliation of a single product with the warehouse failed."""

    def __init__(self, message: str, *, product_id: Optional[int] = None) -> None:
        self.product_id = product_id
        super().__init__(message)


class WarehouseError(SyncError):
    """Warehouse system call failed (network, non-2xx, malformed body)."""

    def __init__(
        self,
        message: str,
        *,
        product_id: Optional[int] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.status_code = status_code
        super().__init__(message, product_id=product_id)
