"""Tests for Dhan API endpoints."""

import json
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.dhan_api.main import app
from packages.dhan_client import DhanClient
from packages.dhan_config import DhanConfig
from packages.notifications import NotificationCenter
from packages.traders_control import InMemorySettingsRepository, TradersControlStore
from packages.trading_guard import BLOCKED_MESSAGE, TradingGuard


class FakeDhan:
    """In-process stand-in for the Dhan REST API.

    Replies are keyed by (method, path below /v2); unknown routes get 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    def reply(self, method: str, path: str, status_code: int = 200, body=None):
        self.routes[(method, path)] = httpx.Response(status_code, json=body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/v2")
        response = self.routes.get((request.method, path))
        if response is None:
            return httpx.Response(404, json={"errorMessage": "Not found"})
        return response

    def bodies(self, method: str, path: str) -> list:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.method == method and r.url.path == f"/v2{path}"
        ]


@pytest.fixture
def dhan():
    return FakeDhan()


@pytest.fixture
def config():
    return DhanConfig(
        access_token="test-token",
        client_id="1000000001",
        base_url="https://dhan.test/v2",
    )


@pytest.fixture
def store():
    return TradersControlStore(repository=InMemorySettingsRepository())


@pytest.fixture
def client(dhan, config, store):
    """Create test client with injected services."""
    from apps.dhan_api import main

    main.config = config
    main.dhan_client = DhanClient(config, transport=httpx.MockTransport(dhan))
    main.traders_control = store
    main.notifications = NotificationCenter()
    main.trading_guard = TradingGuard(store, main.notifications)

    return TestClient(app)


def market_order(**overrides):
    order = {
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


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_root_endpoint(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_endpoint(self, client):
        data = client.get("/api/health").json()

        assert data["components"]["dhan_client"]["has_credentials"] is True
        assert data["components"]["kill_switch"]["active"] is False

    def test_request_id_echoed(self, client):
        response = client.get("/", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"


class TestPlaceOrder:
    """POST /api/trading/orders."""

    def test_place_market_order(self, client, dhan):
        dhan.reply("POST", "/orders", body={"orderId": "112111182198", "orderStatus": "PENDING"})

        response = client.post("/api/trading/orders", json=market_order())

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["endpoint"] == "place-order"
        assert data["data"]["orderId"] == "112111182198"
        [sent] = dhan.bodies("POST", "/orders")
        # Client ID defaulted from configuration
        assert sent["dhanClientId"] == "1000000001"
        assert sent["quantity"] == 5

    def test_limit_order_without_price_rejected(self, client, dhan):
        response = client.post(
            "/api/trading/orders", json=market_order(orderType="LIMIT", price=0)
        )

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Validation error"
        assert data["message"].startswith("price:")
        assert dhan.requests == []

    def test_invalid_json_rejected(self, client, dhan):
        response = client.post(
            "/api/trading/orders",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert dhan.requests == []

    def test_blocked_by_kill_switch(self, client, dhan, store):
        store.activate_kill_switch("Manual stop")

        response = client.post("/api/trading/orders", json=market_order())

        assert response.status_code == 403
        data = response.json()
        assert data["error"] == BLOCKED_MESSAGE
        assert data["message"] == "Manual stop"
        assert dhan.requests == []

    def test_upstream_rejection_preserved(self, client, dhan):
        dhan.reply(
            "POST",
            "/orders",
            status_code=400,
            body={"errorCode": "DH-906", "errorMessage": "Price outside circuit limit"},
        )

        response = client.post(
            "/api/trading/orders", json=market_order(orderType="LIMIT", price=99999)
        )

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Dhan API error: 400"
        assert data["message"] == "Price outside circuit limit"

    def test_readonly_mode_blocks_writes(self, client, dhan, config):
        from apps.dhan_api import main

        main.config = config.model_copy(update={"readonly_mode": True})

        response = client.post("/api/trading/orders", json=market_order())

        assert response.status_code == 403
        data = response.json()
        assert data["success"] is False
        assert data["error"].startswith("Read-only mode is enabled")
        assert dhan.requests == []

    def test_missing_token_is_server_error(self, client, config):
        from apps.dhan_api import main

        main.dhan_client = DhanClient(config.model_copy(update={"access_token": ""}))

        response = client.get("/api/trading/orders")

        assert response.status_code == 500
        assert response.json()["error"] == "Access token is required"


class TestOrderBook:
    """Order reads."""

    def test_order_book_count(self, client, dhan):
        dhan.reply("GET", "/orders", body=[{"orderId": "1"}, {"orderId": "2"}])

        data = client.get("/api/trading/orders").json()

        assert data["count"] == 2
        assert len(data["data"]) == 2

    def test_invalid_order_id_rejected(self, client, dhan):
        response = client.get("/api/trading/orders/bad$id")

        assert response.status_code == 400
        assert dhan.requests == []

    def test_order_by_correlation_id(self, client, dhan):
        dhan.reply("GET", "/orders/external/swing-1", body={"orderId": "9"})

        response = client.get("/api/trading/orders/external/swing-1")

        assert response.status_code == 200
        assert response.json()["data"]["orderId"] == "9"


class TestModifyAndCancel:
    """PUT / DELETE /api/trading/orders/{order_id}."""

    def test_order_id_mismatch(self, client, dhan):
        response = client.put(
            "/api/trading/orders/ORD123", json={"orderId": "ORD999", "quantity": 10}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Order ID mismatch"
        assert dhan.requests == []

    def test_modify_order(self, client, dhan):
        dhan.reply("PUT", "/orders/ORD123", body={"orderId": "ORD123", "orderStatus": "TRANSIT"})

        response = client.put(
            "/api/trading/orders/ORD123",
            json={"orderId": "ORD123", "orderType": "LIMIT", "validity": "DAY", "price": 101.5},
        )

        assert response.status_code == 200
        [sent] = dhan.bodies("PUT", "/orders/ORD123")
        assert sent["price"] == 101.5

    def test_cancel_blocked_by_kill_switch(self, client, dhan, store):
        store.activate_kill_switch("halt")

        response = client.delete("/api/trading/orders/ORD123")

        assert response.status_code == 403
        assert dhan.requests == []

    def test_cancel_order(self, client, dhan):
        dhan.reply("DELETE", "/orders/ORD123", body={"orderId": "ORD123", "orderStatus": "CANCELLED"})

        response = client.delete("/api/trading/orders/ORD123")

        assert response.status_code == 200
        assert response.json()["data"]["orderStatus"] == "CANCELLED"


class TestSuperAndForeverOrders:
    """Multi-leg order routes."""

    def test_super_order_cancel_rejected_upstream(self, client, dhan):
        dhan.reply(
            "DELETE",
            "/super/orders/SO1/ENTRY_LEG",
            status_code=400,
            body={"errorMessage": "Order already traded"},
        )

        response = client.delete("/api/trading/super-orders/SO1/ENTRY_LEG")

        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "Order already traded"
        assert "cannot be changed" in data["message"]

    def test_super_order_invalid_leg(self, client, dhan):
        response = client.delete("/api/trading/super-orders/SO1/MIDDLE_LEG")

        assert response.status_code == 400
        assert dhan.requests == []

    def test_forever_orders_not_enabled_lists_empty(self, client):
        response = client.get("/api/trading/forever-orders")

        assert response.status_code == 200
        data = response.json()
        assert data["data"] == []
        assert data["count"] == 0

    def test_forever_order_not_enabled_on_place(self, client):
        response = client.post(
            "/api/trading/forever-orders",
            json=market_order(
                orderFlag="SINGLE", productType="CNC", orderType="LIMIT", price=1428, triggerPrice=1427
            ),
        )

        assert response.status_code == 404
        assert response.json()["error"] == "Feature not enabled"


class TestTradersControl:
    """Kill switch routes."""

    def test_get_state(self, client):
        data = client.get("/api/traders-control").json()["data"]

        assert data["killSwitchStatus"]["isActive"] is False
        assert Decimal(data["settings"]["dailyLossLimit"]) == Decimal("10000")

    def test_update_settings(self, client, store):
        response = client.put("/api/traders-control/settings", json={"dailyLossLimit": 2500})

        assert response.status_code == 200
        assert store.settings.daily_loss_limit == Decimal("2500")

    def test_non_positive_limit_rejected(self, client, store):
        response = client.put("/api/traders-control/settings", json={"dailyLossLimit": 0})

        assert response.status_code == 400
        assert store.settings.daily_loss_limit == Decimal("10000")

    def test_activate_and_deactivate(self, client, store):
        response = client.post("/api/traders-control/activate", json={"reason": "News event"})

        assert response.status_code == 200
        assert store.status.reason == "News event"

        client.post("/api/traders-control/deactivate")

        assert store.is_kill_switch_active() is False

    def test_pnl_push_activates(self, client, store):
        response = client.post("/api/traders-control/pnl", json={"totalDailyPnL": -10000})

        assert response.status_code == 200
        assert response.json()["data"]["killSwitchStatus"]["isActive"] is True

        notifications = client.get("/api/notifications").json()["data"]
        assert notifications[0]["title"] == "Kill Switch Activated"

    def test_refresh_from_positions(self, client, dhan, store):
        dhan.reply(
            "GET",
            "/positions",
            body=[
                {"securityId": "1333", "realizedProfit": -6000, "unrealizedProfit": -4500},
            ],
        )

        response = client.post("/api/traders-control/pnl/refresh")

        assert response.status_code == 200
        assert store.daily_pnl.total_daily_pnl == Decimal("-10500")
        assert store.is_kill_switch_active() is True

    def test_reset(self, client, store):
        store.activate_kill_switch("halt")

        client.post("/api/traders-control/reset")

        assert store.is_kill_switch_active() is False


class TestErrorEnvelope:
    """Route-level and typed-body errors use the same envelope."""

    def test_option_chain_without_expiry(self, client, dhan):
        response = client.post(
            "/api/trading/option-chain", json={"UnderlyingScrip": 13, "UnderlyingSeg": "IDX_I"}
        )

        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Expiry is required"
        assert dhan.requests == []

    def test_trade_history_dates_out_of_order(self, client, dhan):
        response = client.get("/api/trading/trades/2026-03-10/2026-03-01/0")

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert dhan.requests == []

    def test_typed_body_validation_failure(self, client, store):
        response = client.post("/api/traders-control/activate", json={"reason": 5})

        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Invalid request"
        assert data["message"].startswith("reason:")
        assert store.is_kill_switch_active() is False

    def test_unknown_route(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json()["success"] is False


class TestPortfolio:
    """Portfolio reads."""

    def test_positions_update_daily_pnl(self, client, dhan, store):
        dhan.reply("GET", "/positions", body=[{"realizedProfit": 100, "unrealizedProfit": -40}])

        data = client.get("/api/portfolio/positions").json()

        assert data["count"] == 1
        assert store.daily_pnl.total_daily_pnl == Decimal("60")

    def test_positions_breaching_limit_notify(self, client, dhan, store):
        dhan.reply("GET", "/positions", body=[{"realizedProfit": -8000, "unrealizedProfit": -2500}])

        client.get("/api/portfolio/positions")

        assert store.is_kill_switch_active() is True
        notifications = client.get("/api/notifications").json()["data"]
        assert notifications[0]["title"] == "Kill Switch Activated"
        assert notifications[0]["type"] == "error"

    def test_upstream_unreachable_is_502(self, client):
        from apps.dhan_api import main

        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        main.dhan_client = DhanClient(main.config, transport=httpx.MockTransport(unreachable))

        response = client.get("/api/portfolio/holdings")

        assert response.status_code == 502
        assert response.json()["success"] is False
