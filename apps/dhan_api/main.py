"""Main FastAPI application for the Dhan trading console.

Server-side routes behind the dashboard: each route validates the request,
passes trading actions through the trading guard, forwards the call to the
Dhan API and wraps the reply in a consistent JSON envelope.
"""

import os
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from packages.dhan_client import DhanApiError, DhanClient
from packages.dhan_config import DhanConfig, DhanConfigError, get_dhan_config
from packages.notifications import NotificationCenter
from packages.order_validator import (
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
from packages.request_context import RequestIdMiddleware, get_request_id
from packages.schemas import error_envelope, success_envelope
from packages.structured_logging import get_logger, setup_logging
from packages.traders_control import (
    DailyPnLSummary,
    JsonFileSettingsRepository,
    TradersControlConfigError,
    TradersControlStore,
    summarize_positions,
)
from packages.trading_guard import (
    OperationType,
    TradingBlockedError,
    TradingGuard,
    TradingOperation,
)


logger = get_logger(__name__)

# Global configuration instance
config: DhanConfig | None = None

# Global Dhan client instance
dhan_client: DhanClient | None = None

# Global traders control (kill switch) store
traders_control: TradersControlStore | None = None

# Global notification feed
notifications: NotificationCenter | None = None

# Global trading guard instance
trading_guard: TradingGuard | None = None

FOREVER_ORDERS_DISABLED = (
    "Forever Orders feature is not available for this account. "
    "Please contact Dhan support to enable this feature."
)
SUPER_ORDER_LOCKED = (
    "Order cannot be changed. It may be rejected, completed, or already cancelled."
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan management."""
    global config, dhan_client, traders_control, notifications, trading_guard

    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    config = get_dhan_config()
    if not config.has_credentials:
        logger.warning("dhan_access_token_missing")

    # Kill switch first: trading routes must never run without it
    traders_control = TradersControlStore(
        repository=JsonFileSettingsRepository(config.traders_control_file)
    )
    notifications = NotificationCenter()
    trading_guard = TradingGuard(traders_control, notifications)
    dhan_client = DhanClient(config)

    logger.info("dhan_api_started", **config.to_dict())

    yield

    await dhan_client.aclose()


app = FastAPI(
    title="Dhan Trading Console API",
    description="Dhan broker proxy with order validation and a daily-loss kill switch",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RequestIdMiddleware)


# Error mapping


@app.exception_handler(OrderValidationError)
async def order_validation_exception_handler(
    request: Request, exc: OrderValidationError
) -> JSONResponse:
    """Invalid order payloads are the caller's fault: 400 with the rule that failed."""
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "Validation error", str(exc), request_id=get_request_id()
        ),
    )


@app.exception_handler(OrderIdMismatchError)
async def order_id_mismatch_exception_handler(
    request: Request, exc: OrderIdMismatchError
) -> JSONResponse:
    """Body and path name different orders."""
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "Order ID mismatch",
            f"Body orderId {exc.body_order_id} does not match {exc.path_order_id}",
            request_id=get_request_id(),
        ),
    )


@app.exception_handler(TradingBlockedError)
async def trading_blocked_exception_handler(
    request: Request, exc: TradingBlockedError
) -> JSONResponse:
    """Kill switch is active."""
    return JSONResponse(
        status_code=403,
        content=error_envelope(str(exc), exc.reason or None, request_id=get_request_id()),
    )


@app.exception_handler(TradersControlConfigError)
async def traders_control_config_exception_handler(
    request: Request, exc: TradersControlConfigError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "Invalid traders control settings", str(exc), request_id=get_request_id()
        ),
    )


@app.exception_handler(DhanApiError)
async def dhan_api_exception_handler(request: Request, exc: DhanApiError) -> JSONResponse:
    """Mirror the upstream status and keep the broker's message verbatim."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(
            f"Dhan API error: {exc.status_code}",
            exc.message,
            request_id=get_request_id(),
        ),
    )


@app.exception_handler(DhanConfigError)
async def dhan_config_exception_handler(request: Request, exc: DhanConfigError) -> JSONResponse:
    logger.error("dhan_config_error", error=str(exc))
    return JSONResponse(
        status_code=500,
        content=error_envelope(str(exc), request_id=get_request_id()),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Route-level rejections (read-only mode, bad query, unknown path) in the envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail), request_id=get_request_id()),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed typed bodies or parameters: 422 naming the first bad field."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    reason = first.get("msg", "is invalid")
    return JSONResponse(
        status_code=422,
        content=error_envelope(
            "Invalid request",
            f"{field}: {reason}" if field else reason,
            request_id=get_request_id(),
        ),
    )


# Service accessors


def _config() -> DhanConfig:
    if not config:
        raise HTTPException(status_code=500, detail="Configuration not initialized")
    return config


def _client() -> DhanClient:
    if not dhan_client:
        raise HTTPException(status_code=500, detail="Dhan client not initialized")
    return dhan_client


def _store() -> TradersControlStore:
    if not traders_control:
        raise HTTPException(status_code=500, detail="Traders control not initialized")
    # A new trading day resets the kill switch
    traders_control.roll_over_if_new_day()
    return traders_control


def _guard() -> TradingGuard:
    _store()
    if not trading_guard:
        raise HTTPException(status_code=500, detail="Trading guard not initialized")
    return trading_guard


def _notifications() -> NotificationCenter:
    if not notifications:
        raise HTTPException(status_code=500, detail="Notifications not initialized")
    return notifications


def _record_daily_pnl(summary: Any) -> TradersControlStore:
    """Update the daily P&L snapshot, notifying if it trips the kill switch."""
    store = _store()
    if store.update_daily_pnl(summary):
        _notifications().notify("error", "Kill Switch Activated", store.status.reason)
    return store


def _require_write() -> None:
    """Reject order writes in read-only mode."""
    if not _config().can_write:
        raise HTTPException(
            status_code=403,
            detail="Read-only mode is enabled - order placement and changes are disabled",
        )


async def _json_body(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        raise OrderValidationError("request", "body must be valid JSON")


def _with_client_id(body: Any) -> Any:
    """Default dhanClientId to the configured client ID."""
    if isinstance(body, dict) and not body.get("dhanClientId") and _config().client_id:
        return {**body, "dhanClientId": _config().client_id}
    return body


def _operation(op_type: Any, symbol: str, quantity: Optional[int], price: Any = None) -> TradingOperation:
    return TradingOperation(
        type=op_type,
        symbol=symbol,
        quantity=quantity or 0,
        price=price,
    )


# Health


@app.get("/")
async def root() -> dict:
    """Health check endpoint."""
    return {
        "service": "Dhan Trading Console",
        "version": "0.1.0",
        "status": "healthy",
    }


@app.get("/api/health")
async def health() -> dict:
    """Detailed health check."""
    store = traders_control
    return {
        "status": "healthy",
        "components": {
            "dhan_client": {
                "status": "ok" if dhan_client else "not_initialized",
                "has_credentials": bool(config and config.has_credentials),
                "readonly_mode": bool(config and config.readonly_mode),
            },
            "kill_switch": {
                "status": "not_initialized" if store is None else "ok",
                "active": bool(store and store.is_kill_switch_active()),
            },
        },
    }


# Orders


@app.post("/api/trading/orders")
async def place_order(request: Request) -> dict:
    """Place an order."""
    _require_write()
    order = validate_place_order_request(_with_client_id(await _json_body(request)))
    operation = _operation(
        order.transaction_type.value, order.security_id, order.quantity, order.price
    )

    logger.info("placing_order", security_id=order.security_id, order_type=order.order_type.value)
    data = await _guard().execute_trade(operation, lambda: _client().place_order(order.to_wire()))
    return success_envelope("place-order", data, "Order placed successfully")


@app.get("/api/trading/orders")
async def get_order_book() -> dict:
    """Get the day's order book."""
    data = await _client().get_order_book()
    return success_envelope("order-book", data or [], with_count=True)


@app.post("/api/trading/orders/slicing")
async def place_sliced_order(request: Request) -> dict:
    """Place an order sliced into exchange-sized chunks."""
    _require_write()
    order = validate_place_order_request(_with_client_id(await _json_body(request)))
    operation = _operation(
        order.transaction_type.value, order.security_id, order.quantity, order.price
    )

    data = await _guard().execute_trade(
        operation, lambda: _client().place_sliced_order(order.to_wire())
    )
    return success_envelope("place-sliced-order", data or [], "Sliced order placed successfully")


@app.get("/api/trading/orders/external/{correlation_id}")
async def get_order_by_correlation_id(correlation_id: str) -> dict:
    """Look up an order by the client-supplied correlation ID."""
    OrderValidator.validate_correlation_id(correlation_id)
    data = await _client().get_order_by_correlation_id(correlation_id)
    return success_envelope("order-by-correlation-id", data)


@app.get("/api/trading/orders/{order_id}")
async def get_order(order_id: str) -> dict:
    """Get a single order."""
    OrderValidator.validate_order_id(order_id)
    data = await _client().get_order(order_id)
    return success_envelope("order-details", data, "Order details fetched successfully")


@app.put("/api/trading/orders/{order_id}")
async def modify_order(order_id: str, request: Request) -> dict:
    """Modify a pending order."""
    _require_write()
    modification = validate_modify_order_request(
        _with_client_id(await _json_body(request)), path_order_id=order_id
    )
    operation = _operation(
        OperationType.MODIFY, order_id, modification.quantity, modification.price
    )

    data = await _guard().execute_trade(
        operation, lambda: _client().modify_order(order_id, modification.to_wire())
    )
    return success_envelope("modify-order", data, "Order modified successfully")


@app.delete("/api/trading/orders/{order_id}")
async def cancel_order(order_id: str) -> dict:
    """Cancel a pending order."""
    _require_write()
    OrderValidator.validate_order_id(order_id)

    data = await _guard().execute_trade(
        _operation(OperationType.CANCEL, order_id, 0),
        lambda: _client().cancel_order(order_id),
    )
    return success_envelope("cancel-order", data, "Order cancelled successfully")


# Trades


@app.get("/api/trading/trades-book")
async def get_trade_book() -> dict:
    """Get the day's trades."""
    data = await _client().get_trade_book()
    return success_envelope("trade-book", data or [], with_count=True)


@app.get("/api/trading/trades-book/{order_id}")
async def get_trades_for_order(order_id: str) -> dict:
    """Get trades filled against one order."""
    OrderValidator.validate_order_id(order_id)
    data = await _client().get_trades_for_order(order_id)
    return success_envelope("trades-by-order", data or [], with_count=True)


@app.get("/api/trading/trades/{from_date}/{to_date}/{page}")
async def get_trade_history(from_date: date, to_date: date, page: int = 0) -> dict:
    """Get historical trades between two dates."""
    if from_date > to_date:
        raise HTTPException(status_code=400, detail="from_date must not be after to_date")
    data = await _client().get_trade_history(from_date.isoformat(), to_date.isoformat(), page)
    return success_envelope("trade-history", data or [], with_count=True)


@app.get("/api/trading/ledger")
async def get_ledger(
    from_date: Optional[date] = Query(default=None, alias="from-date"),
    to_date: Optional[date] = Query(default=None, alias="to-date"),
) -> dict:
    """Get ledger entries; defaults to the last 30 days."""
    to_date = to_date or date.today()
    from_date = from_date or to_date - timedelta(days=30)
    data = await _client().get_ledger(from_date.isoformat(), to_date.isoformat())
    return success_envelope("ledger", data or [], with_count=True)


# Super orders


@app.post("/api/trading/super-orders")
async def place_super_order(request: Request) -> dict:
    """Place a super order (entry + target + stop-loss legs)."""
    _require_write()
    order = validate_super_order_request(_with_client_id(await _json_body(request)))
    operation = _operation(
        order.transaction_type.value, order.security_id, order.quantity, order.price
    )

    data = await _guard().execute_trade(
        operation, lambda: _client().place_super_order(order.to_wire())
    )
    return success_envelope("/super/orders", data, "Super order placed successfully")


@app.get("/api/trading/super-orders")
async def get_super_orders() -> dict:
    """Get the super order book."""
    data = await _client().get_super_orders()
    return success_envelope("/super/orders", data if isinstance(data, list) else [], with_count=True)


@app.put("/api/trading/super-orders/{order_id}")
async def modify_super_order(order_id: str, request: Request) -> Any:
    """Modify one leg of a super order."""
    _require_write()
    modification = validate_modify_super_order_request(
        _with_client_id(await _json_body(request)), path_order_id=order_id
    )
    operation = _operation(
        OperationType.MODIFY, order_id, modification.quantity, modification.price
    )

    try:
        data = await _guard().execute_trade(
            operation, lambda: _client().modify_super_order(order_id, modification.to_wire())
        )
    except DhanApiError as e:
        if e.status_code != 400:
            raise
        return JSONResponse(
            status_code=400,
            content=error_envelope(e.message, SUPER_ORDER_LOCKED, f"/super/orders/{order_id}"),
        )
    return success_envelope(f"/super/orders/{order_id}", data, "Super order modified successfully")


@app.delete("/api/trading/super-orders/{order_id}/{leg_name}")
async def cancel_super_order_leg(order_id: str, leg_name: str) -> Any:
    """Cancel one leg of a super order."""
    _require_write()
    OrderValidator.validate_order_id(order_id)
    OrderValidator.validate_leg_name(leg_name)

    endpoint = f"/super/orders/{order_id}/{leg_name}"
    try:
        data = await _guard().execute_trade(
            _operation(OperationType.CANCEL, order_id, 0),
            lambda: _client().cancel_super_order_leg(order_id, leg_name),
        )
    except DhanApiError as e:
        if e.status_code != 400:
            raise
        return JSONResponse(
            status_code=400,
            content=error_envelope(e.message, SUPER_ORDER_LOCKED, endpoint),
        )
    return success_envelope(endpoint, data, f"Super order {leg_name} cancelled successfully")


# Forever orders


@app.get("/api/trading/forever-orders")
async def get_forever_orders() -> dict:
    """Get all forever orders."""
    try:
        data = await _client().get_forever_orders()
    except DhanApiError as e:
        if e.status_code != 404:
            raise
        # 404: forever orders are not enabled for this account
        return success_envelope(
            "/api/trading/forever-orders",
            [],
            "Forever Orders feature is not available for this account",
            with_count=True,
        )
    return success_envelope(
        "/api/trading/forever-orders", data if isinstance(data, list) else [], with_count=True
    )


@app.post("/api/trading/forever-orders")
async def place_forever_order(request: Request) -> Any:
    """Place a forever (GTT) order."""
    _require_write()
    order = validate_forever_order_request(_with_client_id(await _json_body(request)))
    operation = _operation(
        order.transaction_type.value, order.security_id, order.quantity, order.price
    )

    try:
        data = await _guard().execute_trade(
            operation, lambda: _client().place_forever_order(order.to_wire())
        )
    except DhanApiError as e:
        if e.status_code != 404:
            raise
        return JSONResponse(
            status_code=404,
            content=error_envelope("Feature not enabled", FOREVER_ORDERS_DISABLED),
        )
    return success_envelope("/api/trading/forever-orders", data, "Forever order placed successfully")


@app.put("/api/trading/forever-orders/{order_id}")
async def modify_forever_order(order_id: str, request: Request) -> dict:
    """Modify a forever order."""
    _require_write()
    modification = validate_modify_forever_order_request(
        _with_client_id(await _json_body(request)), path_order_id=order_id
    )
    operation = _operation(
        OperationType.MODIFY, order_id, modification.quantity, modification.price
    )

    data = await _guard().execute_trade(
        operation, lambda: _client().modify_forever_order(order_id, modification.to_wire())
    )
    return success_envelope(
        f"/api/trading/forever-orders/{order_id}", data, "Forever order modified successfully"
    )


@app.delete("/api/trading/forever-orders/{order_id}")
async def cancel_forever_order(order_id: str) -> dict:
    """Cancel a forever order."""
    _require_write()
    OrderValidator.validate_order_id(order_id)

    data = await _guard().execute_trade(
        _operation(OperationType.CANCEL, order_id, 0),
        lambda: _client().cancel_forever_order(order_id),
    )
    return success_envelope(
        f"/api/trading/forever-orders/{order_id}", data, "Forever order cancelled successfully"
    )


# Option chain


class OptionChainRequest(BaseModel):
    """Option chain query."""

    underlying_scrip: int = Field(..., alias="UnderlyingScrip", gt=0)
    underlying_seg: str = Field(..., alias="UnderlyingSeg", min_length=1)
    expiry: Optional[date] = Field(default=None, alias="Expiry")


@app.post("/api/trading/option-chain")
async def get_option_chain(query: OptionChainRequest) -> dict:
    """Get the option chain of an underlying for one expiry."""
    if query.expiry is None:
        raise HTTPException(status_code=400, detail="Expiry is required")
    data = await _client().get_option_chain(
        query.underlying_scrip, query.underlying_seg, query.expiry.isoformat()
    )
    return success_envelope("option-chain", data)


@app.post("/api/trading/option-chain/expiry-list")
async def get_expiry_list(query: OptionChainRequest) -> dict:
    """Get the expiry dates available for an underlying."""
    data = await _client().get_expiry_list(query.underlying_scrip, query.underlying_seg)
    return success_envelope("expiry-list", data)


# Portfolio


@app.get("/api/portfolio/positions")
async def get_positions() -> dict:
    """Get open positions; also refreshes the daily P&L snapshot."""
    data = await _client().get_positions()
    positions = data if isinstance(data, list) else []
    _record_daily_pnl(summarize_positions(positions))
    return success_envelope("positions", positions, with_count=True)


@app.get("/api/portfolio/holdings")
async def get_holdings() -> dict:
    """Get demat holdings."""
    data = await _client().get_holdings()
    return success_envelope("holdings", data if isinstance(data, list) else [], with_count=True)


@app.get("/api/portfolio/funds")
async def get_funds() -> dict:
    """Get fund limits."""
    data = await _client().get_fund_limits()
    return success_envelope("funds", data)


@app.post("/api/portfolio/convert-position")
async def convert_position(request: Request) -> dict:
    """Convert a position between product types."""
    _require_write()
    conversion = validate_convert_position_request(_with_client_id(await _json_body(request)))

    data = await _guard().execute_trade(
        _operation(OperationType.MODIFY, conversion.security_id, conversion.convert_qty),
        lambda: _client().convert_position(conversion.to_wire()),
    )
    return success_envelope("convert-position", data, "Position converted successfully")


# Traders control (kill switch)


class KillSwitchActivation(BaseModel):
    """Manual activation request."""

    reason: str = Field(default="Manual activation via API", max_length=500)


def _traders_control_view(store: TradersControlStore) -> dict:
    state = store.get_state()
    return {
        "settings": state.settings.model_dump(mode="json", by_alias=True),
        "killSwitchStatus": state.runtime.status.model_dump(mode="json", by_alias=True),
        "dailyPnL": state.runtime.daily_pnl.model_dump(mode="json", by_alias=True),
    }


@app.get("/api/traders-control")
async def get_traders_control() -> dict:
    """Get kill switch settings, status and daily P&L."""
    return success_envelope("traders-control", _traders_control_view(_store()))


@app.put("/api/traders-control/settings")
async def update_traders_control_settings(request: Request) -> dict:
    """Update daily loss limit and/or auto kill switch flag."""
    try:
        body = await request.json()
    except ValueError:
        raise TradersControlConfigError("Settings update must be valid JSON")
    if not isinstance(body, dict):
        raise TradersControlConfigError("Settings update must be a JSON object")
    store = _store()
    store.update_settings(body)
    # A lower limit may already be breached
    store.check_and_activate_kill_switch()
    return success_envelope("traders-control-settings", _traders_control_view(store), "Settings updated")


@app.post("/api/traders-control/activate")
async def activate_kill_switch(activation: KillSwitchActivation) -> dict:
    """Activate the kill switch to block all trading."""
    store = _store()
    store.activate_kill_switch(activation.reason)
    _notifications().notify(
        "warning", "Kill Switch Activated", store.status.reason
    )
    return success_envelope(
        "kill-switch-activate",
        _traders_control_view(store),
        "Kill switch activated - all trading operations are now blocked",
    )


@app.post("/api/traders-control/deactivate")
async def deactivate_kill_switch() -> dict:
    """
    Deactivate the kill switch.

    WARNING: Only use after verifying it is safe to resume trading.
    """
    store = _store()
    store.deactivate_kill_switch()
    _notifications().notify("info", "Kill Switch Deactivated", "Trading operations resumed")
    return success_envelope(
        "kill-switch-deactivate",
        _traders_control_view(store),
        "Kill switch deactivated - trading operations resumed",
    )


@app.post("/api/traders-control/reset")
async def reset_traders_control() -> dict:
    """Reset the day's loss tracking and kill switch."""
    store = _store()
    store.reset_daily_data()
    return success_envelope("traders-control-reset", _traders_control_view(store), "Daily data reset")


@app.post("/api/traders-control/pnl")
async def update_daily_pnl(summary: DailyPnLSummary) -> dict:
    """Push a daily P&L snapshot; may auto-activate the kill switch."""
    store = _record_daily_pnl(summary)
    return success_envelope("traders-control-pnl", _traders_control_view(store))


@app.post("/api/traders-control/pnl/refresh")
async def refresh_daily_pnl() -> dict:
    """Recompute daily P&L from live Dhan positions."""
    data = await _client().get_positions()
    store = _record_daily_pnl(summarize_positions(data if isinstance(data, list) else []))
    return success_envelope("traders-control-pnl", _traders_control_view(store))


# Notifications


@app.get("/api/notifications")
async def get_notifications(limit: int = Query(default=20, ge=1, le=100)) -> dict:
    """Recent user-facing notifications, newest first."""
    items = [n.model_dump(mode="json") for n in _notifications().recent(limit)]
    return success_envelope("notifications", items, with_count=True)
