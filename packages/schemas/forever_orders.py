"""Forever order schemas.

Forever orders persist across sessions until triggered or cancelled.
OCO (one-cancels-other) forever orders carry a second, target leg in the
``price1``/``triggerPrice1``/``quantity1`` fields.
"""

from enum import Enum
from typing import Optional

from pydantic import Field

from .orders import (
    ExchangeSegment,
    LegName,
    OrderType,
    Price,
    ProductType,
    TransactionType,
    Validity,
    WireModel,
)


class ForeverOrderFlag(str, Enum):
    """Forever order flavour."""

    SINGLE = "SINGLE"
    OCO = "OCO"


class PlaceForeverOrderRequest(WireModel):
    """Validated forever order placement request."""

    dhan_client_id: str = Field(..., min_length=1)
    correlation_id: Optional[str] = None
    order_flag: ForeverOrderFlag
    transaction_type: TransactionType
    exchange_segment: ExchangeSegment
    product_type: ProductType
    order_type: OrderType
    validity: Validity
    security_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    disclosed_quantity: Optional[int] = Field(default=None, ge=0)
    price: Price = Field(..., gt=0)
    trigger_price: Price = Field(..., gt=0)
    price1: Optional[Price] = Field(default=None, gt=0)
    trigger_price1: Optional[Price] = Field(default=None, gt=0)
    quantity1: Optional[int] = Field(default=None, gt=0)


class ModifyForeverOrderRequest(WireModel):
    """Validated forever order modification request."""

    dhan_client_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    order_flag: ForeverOrderFlag
    order_type: OrderType
    leg_name: LegName
    validity: Validity
    quantity: int = Field(..., gt=0)
    price: Price = Field(..., gt=0)
    trigger_price: Price = Field(..., gt=0)
    disclosed_quantity: Optional[int] = Field(default=None, ge=0)


__all__ = [
    "ForeverOrderFlag",
    "ModifyForeverOrderRequest",
    "PlaceForeverOrderRequest",
]
