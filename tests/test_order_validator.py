"""Tests for Dhan order validation."""

from decimal import Decimal

import pytest

from packages.order_validator import (
    MAX_ID_LENGTH,
    OrderIdMismatchError,
    OrderValidationError,
    OrderValidator,
    validate_convert_position_request,
    validate_forever_order_request,
    validate_modify_forever_order_request,
    validate_modify_order_request,
    validate_modify_super_order_request,
    validate_place_order_request,
    validate_super_order_request,
)
from packages.schemas import OrderType, PlaceOrderRequest


def make_order(**overrides):
    """Build a valid MARKET order payload."""
    order = {
        "dhanClientId": "1000000001",
        "transactionType": "BUY",
        "exchangeSegment": "NSE_EQ",
        "productType": "INTRADAY",
        "orderType": "MARKET",
        "validity": "DAY",
        "securityId": "1333",
        "quantity": 5,
    }
    order.update(overrides)
    return order


def make_super_order(**overrides):
    order = {
        "dhanClientId": "1000000001",
        "transactionType": "BUY",
        "exchangeSegment": "NSE_EQ",
        "productType": "INTRADAY",
        "orderType": "LIMIT",
        "securityId": "11536",
        "quantity": 10,
        "price": 1500,
        "targetPrice": 1600,
        "stopLossPrice": 1450,
        "trailingJump": 10,
    }
    order.update(overrides)
    return order


def make_forever_order(**overrides):
    order = make_order(
        orderFlag="SINGLE",
        productType="CNC",
        orderType="LIMIT",
        price=1428,
        triggerPrice=1427,
    )
    order.update(overrides)
    return order


def assert_rejects(field, call, *args, **kwargs):
    with pytest.raises(OrderValidationError) as exc_info:
        call(*args, **kwargs)
    assert exc_info.value.field == field
    return exc_info.value


class TestPlaceOrderPriceRules:
    """price / triggerPrice depend on orderType."""

    def test_market_order_needs_no_prices(self):
        """MARKET orders validate without price or triggerPrice."""
        order = validate_place_order_request(make_order())

        assert isinstance(order, PlaceOrderRequest)
        assert order.order_type == OrderType.MARKET
        assert order.price is None
        assert order.trigger_price is None

    @pytest.mark.parametrize("order_type", ["LIMIT", "STOP_LOSS"])
    def test_missing_price_rejected(self, order_type):
        """LIMIT and STOP_LOSS orders require a price."""
        payload = make_order(orderType=order_type, triggerPrice=99)

        assert_rejects("price", validate_place_order_request, payload)

    @pytest.mark.parametrize("price", [0, -1, -0.05])
    def test_non_positive_price_rejected(self, price):
        """A LIMIT price must be greater than zero."""
        payload = make_order(orderType="LIMIT", price=price)

        assert_rejects("price", validate_place_order_request, payload)

    def test_limit_price_zero_message(self):
        """BUY LIMIT x5 at price 0 names price in the error."""
        payload = make_order(transactionType="BUY", orderType="LIMIT", quantity=5, price=0)

        error = assert_rejects("price", validate_place_order_request, payload)
        assert str(error) == "price: is required and must be greater than 0 for LIMIT orders"

    @pytest.mark.parametrize("order_type", ["STOP_LOSS", "STOP_LOSS_MARKET"])
    def test_missing_trigger_price_rejected(self, order_type):
        """Stop-loss orders require a trigger price."""
        payload = make_order(orderType=order_type, price=100)

        error = assert_rejects("triggerPrice", validate_place_order_request, payload)
        assert "stop loss orders" in error.reason

    def test_stop_loss_market_needs_no_price(self):
        """STOP_LOSS_MARKET needs only the trigger price."""
        order = validate_place_order_request(
            make_order(orderType="STOP_LOSS_MARKET", triggerPrice=98.5)
        )

        assert order.trigger_price == Decimal("98.5")
        assert order.price is None

    def test_stop_loss_with_both_prices(self):
        """STOP_LOSS validates with price and trigger price."""
        order = validate_place_order_request(
            make_order(orderType="STOP_LOSS", price=101, triggerPrice=100)
        )

        assert order.price == Decimal("101")
        assert order.trigger_price == Decimal("100")

    def test_wire_format_round_trips_camel_case(self):
        """to_wire() emits Dhan's camelCase keys and numeric prices."""
        order = validate_place_order_request(make_order(orderType="LIMIT", price=1500.5))

        wire = order.to_wire()
        assert wire["dhanClientId"] == "1000000001"
        assert wire["orderType"] == "LIMIT"
        assert wire["price"] == 1500.5
        assert "triggerPrice" not in wire


class TestPlaceOrderRequiredFields:
    """Presence, type and enum checks."""

    def test_non_object_body_rejected(self):
        """Body must be a JSON object."""
        assert_rejects("request", validate_place_order_request, ["not", "an", "order"])

    @pytest.mark.parametrize(
        "field",
        [
            "dhanClientId",
            "transactionType",
            "exchangeSegment",
            "productType",
            "orderType",
            "validity",
            "securityId",
            "quantity",
        ],
    )
    def test_missing_required_field(self, field):
        """Each unconditionally required field is named when missing."""
        payload = make_order()
        del payload[field]

        error = assert_rejects(field, validate_place_order_request, payload)
        assert error.reason == "is required"

    def test_blank_string_counts_as_missing(self):
        assert_rejects("securityId", validate_place_order_request, make_order(securityId="  "))

    def test_numeric_security_id_rejected(self):
        """securityId is a string on the wire."""
        error = assert_rejects("securityId", validate_place_order_request, make_order(securityId=1333))
        assert error.reason == "must be a string"

    @pytest.mark.parametrize("quantity", ["5", 5.0, True])
    def test_quantity_must_be_integer(self, quantity):
        error = assert_rejects("quantity", validate_place_order_request, make_order(quantity=quantity))
        assert error.reason == "must be an integer"

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_quantity_must_be_positive(self, quantity):
        error = assert_rejects("quantity", validate_place_order_request, make_order(quantity=quantity))
        assert error.reason == "must be a positive integer"

    def test_unknown_enum_value(self):
        error = assert_rejects(
            "transactionType", validate_place_order_request, make_order(transactionType="HOLD")
        )
        assert error.reason == "must be one of: BUY, SELL"

    def test_first_violation_wins(self):
        """Rules run in a fixed order; only the first failure is reported."""
        payload = make_order(transactionType="HOLD", quantity=0, orderType="LIMIT")

        assert_rejects("transactionType", validate_place_order_request, payload)

    def test_error_string_names_field(self):
        error = OrderValidationError("quantity", "must be a positive integer")
        assert str(error) == "quantity: must be a positive integer"


class TestDisclosedQuantity:
    """0 <= disclosedQuantity < quantity."""

    @pytest.mark.parametrize("disclosed", [0, 1, 4])
    def test_below_quantity_passes(self, disclosed):
        order = validate_place_order_request(make_order(quantity=5, disclosedQuantity=disclosed))
        assert order.disclosed_quantity == disclosed

    @pytest.mark.parametrize("disclosed", [5, 6, 100])
    def test_at_or_above_quantity_rejected(self, disclosed):
        error = assert_rejects(
            "disclosedQuantity",
            validate_place_order_request,
            make_order(quantity=5, disclosedQuantity=disclosed),
        )
        assert error.reason == "must be less than quantity"

    def test_negative_rejected(self):
        assert_rejects(
            "disclosedQuantity", validate_place_order_request, make_order(disclosedQuantity=-1)
        )


class TestPlaceOrderExtras:
    """correlationId, after-market and bracket order fields."""

    def test_valid_correlation_id(self):
        order = validate_place_order_request(make_order(correlationId="swing 42_a-b"))
        assert order.correlation_id == "swing 42_a-b"

    def test_bad_correlation_id(self):
        assert_rejects(
            "correlationId", validate_place_order_request, make_order(correlationId="id#1")
        )

    def test_after_market_order_requires_amo_time(self):
        assert_rejects(
            "amoTime", validate_place_order_request, make_order(afterMarketOrder=True)
        )

    def test_after_market_order_with_amo_time(self):
        order = validate_place_order_request(
            make_order(afterMarketOrder=True, amoTime="OPEN_30")
        )
        assert order.after_market_order is True
        assert order.amo_time.value == "OPEN_30"

    def test_bracket_order_requires_profit_and_stop_loss(self):
        payload = make_order(productType="BO", orderType="LIMIT", price=100, boProfitValue=5)

        assert_rejects("boStopLossValue", validate_place_order_request, payload)


class TestIdentifiers:
    """Order and correlation IDs are opaque but well-formed."""

    @pytest.mark.parametrize("order_id", ["ORD123", "112111182198", "a-b_c"])
    def test_valid_order_ids(self, order_id):
        OrderValidator.validate_order_id(order_id)

    @pytest.mark.parametrize(
        "order_id,reason",
        [
            ("", "cannot be empty"),
            ("   ", "cannot be empty"),
            (None, "cannot be empty"),
            (" ORD1", "cannot have leading or trailing whitespace"),
            ("A" * (MAX_ID_LENGTH + 1), f"cannot exceed {MAX_ID_LENGTH} characters"),
            ("ORD/1", "contains unsupported characters"),
        ],
    )
    def test_invalid_order_ids(self, order_id, reason):
        error = assert_rejects("orderId", OrderValidator.validate_order_id, order_id)
        assert error.reason == reason

    def test_max_length_order_id_passes(self):
        OrderValidator.validate_order_id("A" * MAX_ID_LENGTH)


class TestModifyOrder:
    """Order modification validation."""

    def make_modify(self, **overrides):
        modify = {
            "dhanClientId": "1000000001",
            "orderId": "ORD123",
            "orderType": "LIMIT",
            "validity": "DAY",
            "price": 101,
        }
        modify.update(overrides)
        return modify

    def test_valid_modification(self):
        modify = validate_modify_order_request(self.make_modify(), path_order_id="ORD123")

        assert modify.order_id == "ORD123"
        assert modify.price == Decimal("101")

    def test_path_mismatch_raised_before_other_rules(self):
        """A body naming another order fails on the mismatch, whatever else is wrong."""
        with pytest.raises(OrderIdMismatchError) as exc_info:
            validate_modify_order_request(
                {"orderId": "ORD999", "quantity": 10}, path_order_id="ORD123"
            )

        assert str(exc_info.value) == "Order ID mismatch"
        assert exc_info.value.path_order_id == "ORD123"
        assert exc_info.value.body_order_id == "ORD999"

    def test_mismatch_is_not_a_validation_error(self):
        assert not issubclass(OrderIdMismatchError, OrderValidationError)

    def test_order_id_required(self):
        modify = self.make_modify()
        del modify["orderId"]

        assert_rejects("orderId", validate_modify_order_request, modify)

    def test_requires_a_modifiable_field(self):
        modify = self.make_modify(orderType="MARKET")
        del modify["price"]

        error = assert_rejects("modification", validate_modify_order_request, modify)
        assert "quantity" in error.reason

    def test_limit_modification_requires_price(self):
        modify = self.make_modify(quantity=10)
        del modify["price"]

        assert_rejects("price", validate_modify_order_request, modify)

    def test_stop_loss_market_modification_requires_trigger(self):
        modify = self.make_modify(orderType="STOP_LOSS_MARKET")

        assert_rejects("triggerPrice", validate_modify_order_request, modify)

    def test_invalid_leg_name(self):
        assert_rejects(
            "legName", validate_modify_order_request, self.make_modify(legName="MIDDLE_LEG")
        )


class TestSuperOrders:
    """Super order placement and leg modification."""

    def test_valid_super_order(self):
        order = validate_super_order_request(make_super_order())

        assert order.target_price == Decimal("1600")
        assert order.to_wire()["trailingJump"] == 10.0

    @pytest.mark.parametrize("field", ["price", "targetPrice", "stopLossPrice", "trailingJump"])
    def test_leg_prices_required(self, field):
        payload = make_super_order()
        del payload[field]

        assert_rejects(field, validate_super_order_request, payload)

    def test_modify_takes_order_id_from_path(self):
        modify = validate_modify_super_order_request(
            {"dhanClientId": "1000000001", "legName": "ENTRY_LEG", "price": 1510},
            path_order_id="SO-1",
        )

        assert modify.order_id == "SO-1"

    def test_target_leg_requires_target_price(self):
        assert_rejects(
            "targetPrice",
            validate_modify_super_order_request,
            {"dhanClientId": "1000000001", "legName": "TARGET_LEG"},
            path_order_id="SO-1",
        )

    def test_stop_loss_leg_requires_stop_loss_price(self):
        assert_rejects(
            "stopLossPrice",
            validate_modify_super_order_request,
            {"dhanClientId": "1000000001", "legName": "STOP_LOSS_LEG", "targetPrice": 5},
            path_order_id="SO-1",
        )

    def test_modify_requires_leg_name(self):
        assert_rejects(
            "legName",
            validate_modify_super_order_request,
            {"dhanClientId": "1000000001", "price": 10},
            path_order_id="SO-1",
        )

    def test_modify_mismatch(self):
        with pytest.raises(OrderIdMismatchError):
            validate_modify_super_order_request(
                {"orderId": "SO-2", "legName": "ENTRY_LEG"}, path_order_id="SO-1"
            )


class TestForeverOrders:
    """Forever (GTT) orders, single and OCO."""

    def test_valid_single(self):
        order = validate_forever_order_request(make_forever_order())

        assert order.order_flag.value == "SINGLE"
        assert order.price1 is None

    def test_price_required_even_for_market(self):
        payload = make_forever_order(orderType="MARKET")
        del payload["price"]

        assert_rejects("price", validate_forever_order_request, payload)

    def test_oco_requires_second_leg(self):
        payload = make_forever_order(orderFlag="OCO", price1=1500, quantity1=5)

        assert_rejects("triggerPrice1", validate_forever_order_request, payload)

    def test_valid_oco(self):
        order = validate_forever_order_request(
            make_forever_order(orderFlag="OCO", price1=1500, triggerPrice1=1499, quantity1=5)
        )

        assert order.quantity1 == 5

    def test_unknown_flag(self):
        assert_rejects(
            "orderFlag", validate_forever_order_request, make_forever_order(orderFlag="GTT")
        )

    def test_modify_takes_order_id_from_path(self):
        modify = validate_modify_forever_order_request(
            {
                "dhanClientId": "1000000001",
                "orderFlag": "SINGLE",
                "orderType": "LIMIT",
                "legName": "TARGET_LEG",
                "validity": "DAY",
                "quantity": 10,
                "price": 1421,
                "triggerPrice": 1420,
            },
            path_order_id="FO-7",
        )

        assert modify.order_id == "FO-7"
        assert modify.to_wire()["orderId"] == "FO-7"


class TestConvertPosition:
    """Product type conversion of open positions."""

    def make_conversion(self, **overrides):
        conversion = {
            "dhanClientId": "1000000001",
            "fromProductType": "INTRADAY",
            "exchangeSegment": "NSE_EQ",
            "positionType": "LONG",
            "securityId": "11536",
            "convertQty": 40,
            "toProductType": "CNC",
        }
        conversion.update(overrides)
        return conversion

    def test_equity_intraday_to_delivery(self):
        conversion = validate_convert_position_request(self.make_conversion())

        assert conversion.convert_qty == 40
        assert conversion.to_wire()["toProductType"] == "CNC"

    def test_same_product_rejected(self):
        assert_rejects(
            "toProductType",
            validate_convert_position_request,
            self.make_conversion(toProductType="INTRADAY"),
        )

    def test_derivatives_cannot_go_to_delivery(self):
        error = assert_rejects(
            "toProductType",
            validate_convert_position_request,
            self.make_conversion(exchangeSegment="NSE_FNO"),
        )
        assert "NSE_FNO" in error.reason

    def test_convert_qty_positive(self):
        assert_rejects(
            "convertQty", validate_convert_position_request, self.make_conversion(convertQty=0)
        )
