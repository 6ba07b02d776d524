"""Order schemas for the Dhan trading console.

Wire payloads use Dhan's camelCase keys. Models expose snake_case
attributes and serialize back to camelCase with ``to_wire()``.
"""

from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel


# Dhan expects JSON numbers, not strings, for money fields
Price = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


class TransactionType(str, Enum):
    """Order side."""

    BUY = "BUY"
    SELL = "SELL"


class ExchangeSegment(str, Enum):
    """Venue / instrument class codes."""

    IDX_I = "IDX_I"  # Index
    NSE_EQ = "NSE_EQ"
    NSE_FNO = "NSE_FNO"
    NSE_CURRENCY = "NSE_CURRENCY"
    BSE_EQ = "BSE_EQ"
    BSE_FNO = "BSE_FNO"
    BSE_CURRENCY = "BSE_CURRENCY"
    MCX_COMM = "MCX_COMM"


class ProductType(str, Enum):
    """Product type enum."""

    CNC = "CNC"  # Cash & Carry (delivery)
    INTRADAY = "INTRADAY"
    MARGIN = "MARGIN"
    MTF = "MTF"  # Margin Trading Facility
    CO = "CO"  # Cover Order
    BO = "BO"  # Bracket Order


class OrderType(str, Enum):
    """Order type enum."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP_LOSS = "STOP_LOSS"
    STOP_LOSS_MARKET = "STOP_LOSS_MARKET"


class Validity(str, Enum):
    """Order lifetime policy."""

    DAY = "DAY"  # Expires end of session
    IOC = "IOC"  # Immediate or cancel


class AmoTime(str, Enum):
    """When an after-market order is released to the exchange."""

    PRE_OPEN = "PRE_OPEN"
    OPEN = "OPEN"
    OPEN_30 = "OPEN_30"
    OPEN_60 = "OPEN_60"


class LegName(str, Enum):
    """Component order of a multi-leg order."""

    ENTRY_LEG = "ENTRY_LEG"
    TARGET_LEG = "TARGET_LEG"
    STOP_LOSS_LEG = "STOP_LOSS_LEG"


class WireModel(BaseModel):
    """Base for request models exchanged with Dhan."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize to the camelCase JSON body Dhan expects."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PlaceOrderRequest(WireModel):
    """Validated order placement request."""

    dhan_client_id: str = Field(..., min_length=1)
    correlation_id: Optional[str] = None
    transaction_type: TransactionType
    exchange_segment: ExchangeSegment
    product_type: ProductType
    order_type: OrderType
    validity: Validity
    security_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    disclosed_quantity: Optional[int] = Field(default=None, ge=0)
    price: Optional[Price] = Field(default=None, ge=0)
    trigger_price: Optional[Price] = Field(default=None, ge=0)
    after_market_order: bool = False
    amo_time: Optional[AmoTime] = None
    bo_profit_value: Optional[Price] = Field(default=None, gt=0)
    bo_stop_loss_value: Optional[Price] = Field(default=None, gt=0)


class ModifyOrderRequest(WireModel):
    """Validated order modification request."""

    dhan_client_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)
    order_type: OrderType
    validity: Validity
    leg_name: Optional[LegName] = None
    quantity: Optional[int] = Field(default=None, gt=0)
    price: Optional[Price] = Field(default=None, ge=0)
    disclosed_quantity: Optional[int] = Field(default=None, ge=0)
    trigger_price: Optional[Price] = Field(default=None, ge=0)


__all__ = [
    "AmoTime",
    "ExchangeSegment",
    "LegName",
    "ModifyOrderRequest",
    "OrderType",
    "PlaceOrderRequest",
    "Price",
    "ProductType",
    "TransactionType",
    "Validity",
    "WireModel",
]
