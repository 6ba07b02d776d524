"""Super order schemas.

A super order bundles an entry leg with a target leg and a trailing
stop-loss leg, placed together.
"""

from typing import Optional

from pydantic import Field

from .orders import (
    ExchangeSegment,
    LegName,
    OrderType,
    Price,
    ProductType,
    TransactionType,
    WireModel,
)


class PlaceSuperOrderRequest(WireModel):
    """Validated super order placement request."""

    dhan_client_id: str = Field(..., min_length=1)
    correlation_id: Optional[str] = None
    transaction_type: TransactionType
    exchange_segment: ExchangeSegment
    product_type: ProductType
    order_type: OrderType
    security_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    price: Price = Field(..., gt=0)
    target_price: Price = Field(..., gt=0)
    stop_loss_price: Price = Field(..., gt=0)
    trailing_jump: Price = Field(..., gt=0)


class ModifySuperOrderRequest(WireModel):
    """Validated super order leg modification request."""

    dhan_client_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    leg_name: LegName
    order_type: Optional[OrderType] = None
    quantity: Optional[int] = Field(default=None, gt=0)
    price: Optional[Price] = Field(default=None, gt=0)
    target_price: Optional[Price] = Field(default=None, gt=0)
    stop_loss_price: Optional[Price] = Field(default=None, gt=0)
    trailing_jump: Optional[Price] = Field(default=None, gt=0)


__all__ = [
    "ModifySuperOrderRequest",
    "PlaceSuperOrderRequest",
]
