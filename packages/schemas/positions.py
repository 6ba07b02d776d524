"""Position conversion schema."""

from enum import Enum
from typing import Optional

from pydantic import Field

from .orders import ExchangeSegment, ProductType, WireModel


class PositionType(str, Enum):
    """Direction of an open position."""

    LONG = "LONG"
    SHORT = "SHORT"
    CLOSED = "CLOSED"


class ConvertPositionRequest(WireModel):
    """Validated request to move a position between product types."""

    dhan_client_id: str = Field(..., min_length=1)
    from_product_type: ProductType
    exchange_segment: ExchangeSegment
    position_type: PositionType
    security_id: str = Field(..., min_length=1)
    trading_symbol: Optional[str] = None
    convert_qty: int = Field(..., gt=0)
    to_product_type: ProductType


__all__ = ["ConvertPositionRequest", "PositionType"]
