"""Traders control models.

Settings are the only part persisted between sessions. Kill switch status
and the daily P&L snapshot are runtime-only and always start from their
defaults; the split between ``TradersControlSettings`` and ``RuntimeState``
mirrors that.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


DEFAULT_DAILY_LOSS_LIMIT = Decimal("10000")  # INR


def to_decimal(value: Any) -> Decimal:
    """Coerce a loosely-typed numeric value, falling back to 0."""
    if isinstance(value, bool) or value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value if value.is_finite() else Decimal("0")
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp (datetime or ISO-8601 string), or None if unusable."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


class TradersControlSettings(BaseModel):
    """Operator-controlled risk settings (persisted)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_kill_switch_active: bool = False
    daily_loss_limit: Decimal = DEFAULT_DAILY_LOSS_LIMIT
    current_daily_loss: Decimal = Decimal("0")
    is_auto_kill_switch_enabled: bool = True
    kill_switch_activated_at: Optional[datetime] = None
    last_reset_date: date = Field(default_factory=date.today)


class KillSwitchStatus(BaseModel):
    """Kill switch activation status.

    ``is_active``, a non-empty ``reason`` and ``activated_at`` always go
    together.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    is_active: bool = False
    reason: str = ""
    activated_at: Optional[datetime] = None
    can_override: bool = False


class DailyPnLSummary(BaseModel):
    """Realized + unrealized P&L since the last daily reset."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total_realized_pnl: Decimal = Field(default=Decimal("0"), alias="totalRealizedPnL")
    total_unrealized_pnl: Decimal = Field(default=Decimal("0"), alias="totalUnrealizedPnL")
    total_daily_pnl: Decimal = Field(default=Decimal("0"), alias="totalDailyPnL")
    trade_count: int = Field(default=0, ge=0, alias="tradeCount")
    last_updated: datetime = Field(default_factory=datetime.now, alias="lastUpdated")

    @model_validator(mode="before")
    @classmethod
    def coerce_numbers(cls, data: Any) -> Any:
        """Treat malformed numbers as 0 and derive a missing total."""
        if not isinstance(data, Mapping):
            return data

        def pick(snake: str, camel: str) -> Any:
            return data[camel] if camel in data else data.get(snake)

        realized = to_decimal(pick("total_realized_pnl", "totalRealizedPnL"))
        unrealized = to_decimal(pick("total_unrealized_pnl", "totalUnrealizedPnL"))
        total_raw = pick("total_daily_pnl", "totalDailyPnL")
        total = realized + unrealized if total_raw is None else to_decimal(total_raw)
        trade_count = to_decimal(pick("trade_count", "tradeCount"))

        coerced = {
            "totalRealizedPnL": realized,
            "totalUnrealizedPnL": unrealized,
            "totalDailyPnL": total,
            "tradeCount": max(int(trade_count), 0),
        }
        # Unparseable timestamps fall back to the default (now)
        last_updated = to_datetime(pick("last_updated", "lastUpdated"))
        if last_updated is not None:
            coerced["lastUpdated"] = last_updated
        return coerced

    @property
    def daily_loss(self) -> Decimal:
        """Loss as a non-negative amount (0 when in profit)."""
        return abs(min(self.total_daily_pnl, Decimal("0")))


class RuntimeState(BaseModel):
    """In-memory state that is never persisted."""

    model_config = ConfigDict(frozen=True)

    status: KillSwitchStatus = Field(default_factory=KillSwitchStatus)
    daily_pnl: DailyPnLSummary = Field(default_factory=DailyPnLSummary)


class TradersControlState(BaseModel):
    """Complete traders control state."""

    model_config = ConfigDict(frozen=True)

    settings: TradersControlSettings = Field(default_factory=TradersControlSettings)
    runtime: RuntimeState = Field(default_factory=RuntimeState)

    @property
    def is_kill_switch_active(self) -> bool:
        return self.runtime.status.is_active


# Actions accepted by the reducer


@dataclass(frozen=True)
class UpdateSettings:
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UpdateDailyPnL:
    summary: Union[DailyPnLSummary, Mapping[str, Any]]


@dataclass(frozen=True)
class ActivateKillSwitch:
    reason: str


@dataclass(frozen=True)
class DeactivateKillSwitch:
    pass


@dataclass(frozen=True)
class ResetDailyData:
    pass


@dataclass(frozen=True)
class CheckKillSwitch:
    pass


Action = Union[
    UpdateSettings,
    UpdateDailyPnL,
    ActivateKillSwitch,
    DeactivateKillSwitch,
    ResetDailyData,
    CheckKillSwitch,
]
