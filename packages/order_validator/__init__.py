"""
Order validation for Dhan order requests.

Rejects malformed order payloads before they reach the broker, with one
precise, field-addressable error per request. Rules are checked in a fixed
order and the first failing rule wins, so a given bad payload always
produces the same error.

Check order for order placement:
1. Body is a JSON object
2. Unconditionally-required fields present and correctly typed
3. Enumerated fields hold a known value
4. Quantity is a positive integer
5. price when orderType is LIMIT or STOP_LOSS
6. triggerPrice when orderType is STOP_LOSS or STOP_LOSS_MARKET
7. disclosedQuantity within [0, quantity)
8. correlationId shape, after-market and bracket-order extras
"""

import math
import re
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, NoReturn, Optional, Type

from pydantic import ValidationError

from packages.schemas import (
    AmoTime,
    ConvertPositionRequest,
    ExchangeSegment,
    ForeverOrderFlag,
    LegName,
    ModifyForeverOrderRequest,
    ModifyOrderRequest,
    ModifySuperOrderRequest,
    OrderType,
    PlaceForeverOrderRequest,
    PlaceOrderRequest,
    PlaceSuperOrderRequest,
    PositionType,
    ProductType,
    TransactionType,
    Validity,
)
from packages.structured_logging import get_logger


logger = get_logger(__name__)


MAX_ID_LENGTH = 50
ORDER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
CORRELATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9 _-]+$")

PRICE_REQUIRED_ORDER_TYPES = frozenset({OrderType.LIMIT.value, OrderType.STOP_LOSS.value})
TRIGGER_REQUIRED_ORDER_TYPES = frozenset(
    {OrderType.STOP_LOSS.value, OrderType.STOP_LOSS_MARKET.value}
)
MODIFIABLE_FIELDS = ("quantity", "price", "disclosedQuantity", "triggerPrice")
DERIVATIVE_CONVERSION_PRODUCTS = frozenset({"MARGIN", "INTRADAY"})
EQUITY_CONVERSION_PRODUCTS = frozenset({"CNC", "MARGIN", "INTRADAY"})

_PLACE_REQUIRED = (
    ("dhanClientId", str),
    ("transactionType", str),
    ("exchangeSegment", str),
    ("productType", str),
    ("orderType", str),
    ("validity", str),
    ("securityId", str),
    ("quantity", int),
)
_PLACE_ENUMS = (
    ("transactionType", TransactionType),
    ("exchangeSegment", ExchangeSegment),
    ("productType", ProductType),
    ("orderType", OrderType),
    ("validity", Validity),
)


class OrderValidationError(Exception):
    """Raised when an order request fails validation.

    Attributes:
        field: Wire name of the offending field
        reason: What is wrong with it
    """

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason


class OrderIdMismatchError(Exception):
    """Raised when the body orderId differs from the order the route is bound to."""

    def __init__(self, path_order_id: str, body_order_id: str):
        super().__init__("Order ID mismatch")
        self.path_order_id = path_order_id
        self.body_order_id = body_order_id


def _fail(field: str, reason: str) -> NoReturn:
    logger.warning("order_validation_failed", field=field, reason=reason)
    raise OrderValidationError(field, reason)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, Decimal)):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _is_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _type_name(expected: type) -> str:
    return "an integer" if expected is int else "a string"


class OrderValidator:
    """Rule checks shared by every order flavour.

    Each ``validate_*`` method raises ``OrderValidationError`` on the first
    violated rule and returns ``None`` otherwise.
    """

    @staticmethod
    def validate_order_id(order_id: Any) -> None:
        """Validate a broker-assigned order ID.

        Order IDs are opaque; only non-emptiness and the broker charset
        are enforced.
        """
        OrderValidator._validate_identifier("orderId", order_id, ORDER_ID_PATTERN)

    @staticmethod
    def validate_correlation_id(correlation_id: Any) -> None:
        """Validate a client-supplied correlation ID."""
        OrderValidator._validate_identifier(
            "correlationId", correlation_id, CORRELATION_ID_PATTERN
        )

    @staticmethod
    def _validate_identifier(field: str, value: Any, pattern: re.Pattern) -> None:
        if not isinstance(value, str) or not value.strip():
            _fail(field, "cannot be empty")
        if value != value.strip():
            _fail(field, "cannot have leading or trailing whitespace")
        if len(value) > MAX_ID_LENGTH:
            _fail(field, f"cannot exceed {MAX_ID_LENGTH} characters")
        if not pattern.match(value):
            _fail(field, "contains unsupported characters")

    @staticmethod
    def validate_leg_name(leg_name: Any) -> None:
        """Validate a multi-leg order component name."""
        OrderValidator.validate_required(
            {"legName": leg_name}, (("legName", str),)
        )
        OrderValidator.validate_enum({"legName": leg_name}, "legName", LegName)

    @staticmethod
    def validate_required(
        payload: Mapping[str, Any], fields: tuple[tuple[str, type], ...]
    ) -> None:
        """Check presence and JSON type of required fields, in order."""
        for field, expected in fields:
            value = payload.get(field)
            if _is_missing(value):
                _fail(field, "is required")
            if expected is int:
                if not _is_integer(value):
                    _fail(field, f"must be {_type_name(expected)}")
            elif not isinstance(value, expected):
                _fail(field, f"must be {_type_name(expected)}")

    @staticmethod
    def validate_enum(
        payload: Mapping[str, Any], field: str, enum_cls: Type[Enum]
    ) -> None:
        """Check that a field holds one of the enum's values."""
        allowed = [member.value for member in enum_cls]
        if payload.get(field) not in allowed:
            _fail(field, f"must be one of: {', '.join(allowed)}")

    @staticmethod
    def validate_positive_quantity(payload: Mapping[str, Any], field: str = "quantity") -> None:
        """Check that a quantity field is an integer greater than zero."""
        value = payload.get(field)
        if not _is_integer(value) or value <= 0:
            _fail(field, "must be a positive integer")

    @staticmethod
    def validate_positive_amount(
        payload: Mapping[str, Any], field: str, context: str = ""
    ) -> None:
        """Check that a money field is present and greater than zero."""
        value = payload.get(field)
        if not _is_number(value) or value <= 0:
            suffix = f" for {context}" if context else ""
            _fail(field, f"is required and must be greater than 0{suffix}")

    @staticmethod
    def validate_optional_amount(payload: Mapping[str, Any], field: str) -> None:
        """Check an optional money field: absent, or a number >= 0."""
        value = payload.get(field)
        if value is None:
            return
        if not _is_number(value) or value < 0:
            _fail(field, "must be a number greater than or equal to 0")

    @staticmethod
    def validate_price_rules(payload: Mapping[str, Any]) -> None:
        """Apply the orderType-conditional price and triggerPrice rules."""
        order_type = payload.get("orderType")

        if order_type in PRICE_REQUIRED_ORDER_TYPES:
            OrderValidator.validate_positive_amount(
                payload, "price", f"{order_type} orders"
            )
        else:
            OrderValidator.validate_optional_amount(payload, "price")

        if order_type in TRIGGER_REQUIRED_ORDER_TYPES:
            OrderValidator.validate_positive_amount(
                payload, "triggerPrice", "stop loss orders"
            )
        else:
            OrderValidator.validate_optional_amount(payload, "triggerPrice")

    @staticmethod
    def validate_disclosed_quantity(payload: Mapping[str, Any]) -> None:
        """Check 0 <= disclosedQuantity < quantity when disclosedQuantity is sent."""
        disclosed = payload.get("disclosedQuantity")
        if disclosed is None:
            return
        if not _is_integer(disclosed) or disclosed < 0:
            _fail("disclosedQuantity", "must be an integer greater than or equal to 0")
        quantity = payload.get("quantity")
        if _is_integer(quantity) and disclosed >= quantity:
            _fail("disclosedQuantity", "must be less than quantity")

    @staticmethod
    def validate_after_market_order(payload: Mapping[str, Any]) -> None:
        """Check the afterMarketOrder flag and its amoTime companion."""
        amo = payload.get("afterMarketOrder")
        if amo is None:
            return
        if not isinstance(amo, bool):
            _fail("afterMarketOrder", "must be a boolean")
        if amo:
            if _is_missing(payload.get("amoTime")):
                _fail("amoTime", "is required when afterMarketOrder is true")
            OrderValidator.validate_enum(payload, "amoTime", AmoTime)

    @staticmethod
    def validate_bracket_order(payload: Mapping[str, Any]) -> None:
        """Bracket orders need both profit and stop-loss distances."""
        if payload.get("productType") != ProductType.BO.value:
            return
        OrderValidator.validate_positive_amount(payload, "boProfitValue", "BO orders")
        OrderValidator.validate_positive_amount(payload, "boStopLossValue", "BO orders")

    @staticmethod
    def validate_place_order(order: Mapping[str, Any]) -> None:
        """Validate an order placement payload."""
        OrderValidator.validate_required(order, _PLACE_REQUIRED)
        for field, enum_cls in _PLACE_ENUMS:
            OrderValidator.validate_enum(order, field, enum_cls)
        OrderValidator.validate_positive_quantity(order)
        OrderValidator.validate_price_rules(order)
        OrderValidator.validate_disclosed_quantity(order)
        if order.get("correlationId") is not None:
            OrderValidator.validate_correlation_id(order["correlationId"])
        OrderValidator.validate_after_market_order(order)
        OrderValidator.validate_bracket_order(order)

    @staticmethod
    def validate_modify_order(modify: Mapping[str, Any]) -> None:
        """Validate an order modification payload."""
        OrderValidator.validate_required(
            modify,
            (
                ("dhanClientId", str),
                ("orderId", str),
                ("orderType", str),
                ("validity", str),
            ),
        )
        OrderValidator.validate_order_id(modify["orderId"])
        OrderValidator.validate_enum(modify, "orderType", OrderType)
        OrderValidator.validate_enum(modify, "validity", Validity)
        if modify.get("legName") is not None:
            OrderValidator.validate_enum(modify, "legName", LegName)

        if all(modify.get(field) is None for field in MODIFIABLE_FIELDS):
            _fail(
                "modification",
                "at least one of the following fields must be provided: "
                + ", ".join(MODIFIABLE_FIELDS),
            )

        if modify.get("quantity") is not None:
            OrderValidator.validate_positive_quantity(modify)
        OrderValidator.validate_price_rules(modify)
        OrderValidator.validate_disclosed_quantity(modify)

    @staticmethod
    def validate_super_order(order: Mapping[str, Any]) -> None:
        """Validate a super order placement payload."""
        OrderValidator.validate_required(
            order,
            (
                ("dhanClientId", str),
                ("transactionType", str),
                ("exchangeSegment", str),
                ("productType", str),
                ("orderType", str),
                ("securityId", str),
                ("quantity", int),
            ),
        )
        for field, enum_cls in _PLACE_ENUMS:
            if field != "validity":
                OrderValidator.validate_enum(order, field, enum_cls)
        OrderValidator.validate_positive_quantity(order)
        for field in ("price", "targetPrice", "stopLossPrice", "trailingJump"):
            OrderValidator.validate_positive_amount(order, field, "super orders")
        if order.get("correlationId") is not None:
            OrderValidator.validate_correlation_id(order["correlationId"])

    @staticmethod
    def validate_modify_super_order(modify: Mapping[str, Any]) -> None:
        """Validate a super order leg modification payload.

        The entry leg may change any numeric field; the target leg needs a
        targetPrice and the stop-loss leg a stopLossPrice.
        """
        OrderValidator.validate_required(
            modify, (("dhanClientId", str), ("orderId", str))
        )
        OrderValidator.validate_order_id(modify["orderId"])
        OrderValidator.validate_leg_name(modify.get("legName"))
        if modify.get("orderType") is not None:
            OrderValidator.validate_enum(modify, "orderType", OrderType)

        leg = modify["legName"]
        if leg == LegName.TARGET_LEG.value:
            OrderValidator.validate_positive_amount(modify, "targetPrice", "TARGET_LEG")
        elif leg == LegName.STOP_LOSS_LEG.value:
            OrderValidator.validate_positive_amount(modify, "stopLossPrice", "STOP_LOSS_LEG")

        if modify.get("quantity") is not None:
            OrderValidator.validate_positive_quantity(modify)
        for field in ("price", "targetPrice", "stopLossPrice", "trailingJump"):
            if modify.get(field) is not None:
                OrderValidator.validate_positive_amount(modify, field)

    @staticmethod
    def validate_forever_order(order: Mapping[str, Any]) -> None:
        """Validate a forever order placement payload."""
        OrderValidator.validate_required(
            order, (("dhanClientId", str), ("orderFlag", str)) + _PLACE_REQUIRED[1:]
        )
        OrderValidator.validate_enum(order, "orderFlag", ForeverOrderFlag)
        for field, enum_cls in _PLACE_ENUMS:
            OrderValidator.validate_enum(order, field, enum_cls)
        OrderValidator.validate_positive_quantity(order)
        OrderValidator.validate_positive_amount(order, "price", "forever orders")
        OrderValidator.validate_positive_amount(order, "triggerPrice", "forever orders")
        OrderValidator.validate_disclosed_quantity(order)

        if order["orderFlag"] == ForeverOrderFlag.OCO.value:
            OrderValidator.validate_positive_amount(order, "price1", "OCO orders")
            OrderValidator.validate_positive_amount(order, "triggerPrice1", "OCO orders")
            OrderValidator.validate_positive_quantity(order, "quantity1")

        if order.get("correlationId") is not None:
            OrderValidator.validate_correlation_id(order["correlationId"])

    @staticmethod
    def validate_modify_forever_order(modify: Mapping[str, Any]) -> None:
        """Validate a forever order modification payload."""
        OrderValidator.validate_required(
            modify,
            (
                ("dhanClientId", str),
                ("orderId", str),
                ("orderFlag", str),
                ("orderType", str),
                ("legName", str),
                ("validity", str),
                ("quantity", int),
            ),
        )
        OrderValidator.validate_order_id(modify["orderId"])
        OrderValidator.validate_enum(modify, "orderFlag", ForeverOrderFlag)
        OrderValidator.validate_enum(modify, "orderType", OrderType)
        OrderValidator.validate_enum(modify, "legName", LegName)
        OrderValidator.validate_enum(modify, "validity", Validity)
        OrderValidator.validate_positive_quantity(modify)
        OrderValidator.validate_positive_amount(modify, "price", "forever orders")
        OrderValidator.validate_positive_amount(modify, "triggerPrice", "forever orders")
        OrderValidator.validate_disclosed_quantity(modify)

    @staticmethod
    def validate_convert_position(conversion: Mapping[str, Any]) -> None:
        """Validate a position conversion payload.

        F&O and currency positions only move between MARGIN and INTRADAY;
        equity positions between CNC, MARGIN and INTRADAY.
        """
        OrderValidator.validate_required(
            conversion,
            (
                ("dhanClientId", str),
                ("fromProductType", str),
                ("exchangeSegment", str),
                ("positionType", str),
                ("securityId", str),
                ("convertQty", int),
                ("toProductType", str),
            ),
        )
        OrderValidator.validate_enum(conversion, "fromProductType", ProductType)
        OrderValidator.validate_enum(conversion, "exchangeSegment", ExchangeSegment)
        OrderValidator.validate_enum(conversion, "positionType", PositionType)
        OrderValidator.validate_enum(conversion, "toProductType", ProductType)
        OrderValidator.validate_positive_quantity(conversion, "convertQty")

        source = conversion["fromProductType"]
        target = conversion["toProductType"]
        if source == target:
            _fail("toProductType", "cannot convert to the same product type")

        segment = conversion["exchangeSegment"]
        if "FNO" in segment or "CURRENCY" in segment:
            allowed = DERIVATIVE_CONVERSION_PRODUCTS
        elif segment.endswith("_EQ"):
            allowed = EQUITY_CONVERSION_PRODUCTS
        else:
            return
        for field, value in (("fromProductType", source), ("toProductType", target)):
            if value not in allowed:
                _fail(
                    field,
                    f"must be one of {', '.join(sorted(allowed))} for {segment} positions",
                )


def _require_object(payload: Any) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        _fail("request", "body must be a valid object")
    return payload


def _check_path_order_id(payload: Mapping[str, Any], path_order_id: Optional[str]) -> None:
    if path_order_id is None:
        return
    OrderValidator.validate_order_id(path_order_id)
    body_order_id = payload.get("orderId")
    if not _is_missing(body_order_id) and str(body_order_id) != path_order_id:
        logger.warning(
            "order_id_mismatch",
            path_order_id=path_order_id,
            body_order_id=str(body_order_id),
        )
        raise OrderIdMismatchError(path_order_id, str(body_order_id))


def _build(model_cls, payload: Mapping[str, Any]):
    """Construct the typed model, reporting any residual error on one field."""
    try:
        return model_cls.model_validate(dict(payload))
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "request"
        _fail(field, first.get("msg", "is invalid"))


def validate_place_order_request(order: Any) -> PlaceOrderRequest:
    """Validate an order placement body.

    Args:
        order: Decoded JSON body

    Returns:
        Typed PlaceOrderRequest

    Raises:
        OrderValidationError: On the first violated rule
    """
    payload = _require_object(order)
    OrderValidator.validate_place_order(payload)
    return _build(PlaceOrderRequest, payload)


def validate_modify_order_request(
    modify: Any, path_order_id: Optional[str] = None
) -> ModifyOrderRequest:
    """Validate an order modification body.

    Args:
        modify: Decoded JSON body
        path_order_id: Order ID of the route the body was submitted to

    Returns:
        Typed ModifyOrderRequest

    Raises:
        OrderIdMismatchError: If the body names a different order than the path
        OrderValidationError: On the first violated rule
    """
    payload = _require_object(modify)
    _check_path_order_id(payload, path_order_id)
    OrderValidator.validate_modify_order(payload)
    return _build(ModifyOrderRequest, payload)


def validate_super_order_request(order: Any) -> PlaceSuperOrderRequest:
    """Validate a super order placement body."""
    payload = _require_object(order)
    OrderValidator.validate_super_order(payload)
    return _build(PlaceSuperOrderRequest, payload)


def validate_modify_super_order_request(
    modify: Any, path_order_id: Optional[str] = None
) -> ModifySuperOrderRequest:
    """Validate a super order leg modification body.

    A body without orderId takes the path's order ID.
    """
    payload = _require_object(modify)
    _check_path_order_id(payload, path_order_id)
    if path_order_id is not None and _is_missing(payload.get("orderId")):
        payload = {**payload, "orderId": path_order_id}
    OrderValidator.validate_modify_super_order(payload)
    return _build(ModifySuperOrderRequest, payload)


def validate_forever_order_request(order: Any) -> PlaceForeverOrderRequest:
    """Validate a forever order placement body."""
    payload = _require_object(order)
    OrderValidator.validate_forever_order(payload)
    return _build(PlaceForeverOrderRequest, payload)


def validate_modify_forever_order_request(
    modify: Any, path_order_id: Optional[str] = None
) -> ModifyForeverOrderRequest:
    """Validate a forever order modification body.

    A body without orderId takes the path's order ID.
    """
    payload = _require_object(modify)
    _check_path_order_id(payload, path_order_id)
    if path_order_id is not None and _is_missing(payload.get("orderId")):
        payload = {**payload, "orderId": path_order_id}
    OrderValidator.validate_modify_forever_order(payload)
    return _build(ModifyForeverOrderRequest, payload)


def validate_convert_position_request(conversion: Any) -> ConvertPositionRequest:
    """Validate a position conversion body."""
    payload = _require_object(conversion)
    OrderValidator.validate_convert_position(payload)
    return _build(ConvertPositionRequest, payload)


__all__ = [
    "MAX_ID_LENGTH",
    "OrderIdMismatchError",
    "OrderValidationError",
    "OrderValidator",
    "validate_convert_position_request",
    "validate_forever_order_request",
    "validate_modify_forever_order_request",
    "validate_modify_order_request",
    "validate_modify_super_order_request",
    "validate_place_order_request",
    "validate_super_order_request",
]
