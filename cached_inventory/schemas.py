"""Request bodies for the stock endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class StockChangeRequest(BaseModel):
    """Product id and amount; accepts `productId` or `product_id`."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: int = Field(alias="productId")
    amount: int


class RetrieveStockRequest(StockChangeRequest):
    pass


class RestockRequest(StockChangeRequest):
    pass
