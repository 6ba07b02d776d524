"""Schemas package for the Dhan trading console.

This package contains Pydantic models for all request payloads sent to
Dhan and for the API response envelope.
"""

from .envelope import ApiEnvelope, error_envelope, success_envelope
from .forever_orders import (
    ForeverOrderFlag,
    ModifyForeverOrderRequest,
    PlaceForeverOrderRequest,
)
from .orders import (
    AmoTime,
    ExchangeSegment,
    LegName,
    ModifyOrderRequest,
    OrderType,
    PlaceOrderRequest,
    ProductType,
    TransactionType,
    Validity,
)
from .positions import ConvertPositionRequest, PositionType
from .super_orders import ModifySuperOrderRequest, PlaceSuperOrderRequest

__all__ = [
    # Envelope
    "ApiEnvelope",
    "error_envelope",
    "success_envelope",
    # Orders
    "AmoTime",
    "ExchangeSegment",
    "LegName",
    "ModifyOrderRequest",
    "OrderType",
    "PlaceOrderRequest",
    "ProductType",
    "TransactionType",
    "Validity",
    # Positions
    "ConvertPositionRequest",
    "PositionType",
    # Super orders
    "ModifySuperOrderRequest",
    "PlaceSuperOrderRequest",
    # Forever orders
    "ForeverOrderFlag",
    "ModifyForeverOrderRequest",
    "PlaceForeverOrderRequest",
]
