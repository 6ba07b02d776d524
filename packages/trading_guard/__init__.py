"""
Trading guard.

Single choke point for trading actions (place, modify, cancel). Before an
action reaches the broker the guard consults the traders control kill
switch; a blocked action never touches the network.

Usage:
    guard = TradingGuard(store, notifier)
    result = await guard.execute_trade(
        TradingOperation(type="BUY", symbol="1333", quantity=5, price=Decimal("1500")),
        lambda: client.place_order(order),
    )
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from pydantic import BaseModel, Field

from packages.notifications import NotificationType, Notifier
from packages.structured_logging import get_logger
from packages.traders_control import TradersControlStore


logger = get_logger(__name__)

T = TypeVar("T")

BLOCKED_MESSAGE = "Trading operation blocked by kill switch"


class TradingBlockedError(RuntimeError):
    """Raised when the kill switch blocks a trading action."""

    def __init__(self, operation: Optional["TradingOperation"] = None, reason: str = ""):
        super().__init__(BLOCKED_MESSAGE)
        self.operation = operation
        self.reason = reason


class OperationType(str, Enum):
    """Kind of trading action."""

    BUY = "BUY"
    SELL = "SELL"
    MODIFY = "MODIFY"
    CANCEL = "CANCEL"


class TradingOperation(BaseModel):
    """Descriptor of the action being attempted."""

    type: OperationType
    symbol: str = Field(default="", description="Trading symbol or security ID")
    quantity: int = Field(default=0, ge=0)
    price: Optional[Decimal] = None

    model_config = {"frozen": True}


class TradingGuard:
    """
    Gate for trading actions.

    Only the kill switch is checked today; the optional operation
    descriptor leaves room for market-hours or position-limit rules.
    """

    def __init__(self, store: TradersControlStore, notifier: Notifier):
        """
        Initialize trading guard.

        Args:
            store: Traders control store holding the kill switch
            notifier: Where user-facing notifications go
        """
        self._store = store
        self._notifier = notifier

    @property
    def is_kill_switch_active(self) -> bool:
        return self._store.is_kill_switch_active()

    @property
    def kill_switch_reason(self) -> str:
        return self._store.status.reason

    def check_trading_allowed(self, operation: Optional[TradingOperation] = None) -> bool:
        """
        Check whether a trading action may proceed.

        Args:
            operation: Action being attempted (optional)

        Returns:
            False (after notifying the user) if the kill switch is active
        """
        if self._store.is_kill_switch_active():
            self._notifier.notify(
                NotificationType.ERROR,
                "Trading Blocked",
                "Kill switch is active. Trading operations are disabled.",
            )
            logger.warning(
                "trading_blocked",
                operation=operation.model_dump(mode="json") if operation else None,
                reason=self._store.status.reason,
            )
            return False

        return True

    async def execute_trade(
        self,
        operation: TradingOperation,
        trade_function: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Run a trading action if the kill switch allows it.

        The allow decision is made once, before awaiting; a kill switch
        activated while the call is in flight does not cancel it.

        Args:
            operation: Action being attempted
            trade_function: Zero-argument coroutine function doing the broker call

        Returns:
            Whatever trade_function returns

        Raises:
            TradingBlockedError: If the kill switch is active (trade_function not called)
            Exception: Any error from trade_function, re-raised unchanged
        """
        if not self.check_trading_allowed(operation):
            raise TradingBlockedError(operation, self._store.status.reason)

        try:
            result = await trade_function()
        except Exception as e:
            self._notifier.notify(
                NotificationType.ERROR,
                "Trade Execution Failed",
                str(e) or "Unknown error occurred",
            )
            logger.error(
                "trade_execution_failed",
                operation=operation.model_dump(mode="json"),
                error=str(e),
            )
            raise

        logger.info(
            "trade_executed",
            operation=operation.model_dump(mode="json"),
            timestamp=datetime.now(timezone.utc).isoformat(),
            kill_switch_active=self._store.is_kill_switch_active(),
        )
        return result


__all__ = [
    "BLOCKED_MESSAGE",
    "OperationType",
    "TradingBlockedError",
    "TradingGuard",
    "TradingOperation",
]
