"""Pure state transitions for the traders control kill switch.

Every function takes the current ``TradersControlState`` and returns a new
one; nothing here reads the clock, touches storage or logs. ``now`` is
always passed in by the caller.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping, Optional

from .models import (
    Action,
    ActivateKillSwitch,
    CheckKillSwitch,
    DailyPnLSummary,
    DeactivateKillSwitch,
    KillSwitchStatus,
    ResetDailyData,
    RuntimeState,
    TradersControlSettings,
    TradersControlState,
    UpdateDailyPnL,
    UpdateSettings,
    to_decimal,
)


class TradersControlConfigError(ValueError):
    """Raised when a settings update would leave the kill switch unusable."""
    pass


DEFAULT_MANUAL_REASON = "Manual activation"

# Keys an operator may change through update_settings, by wire and Python name.
# Activation state only changes through activate/deactivate.
_EDITABLE_SETTINGS = {
    "dailyLossLimit": "daily_loss_limit",
    "daily_loss_limit": "daily_loss_limit",
    "isAutoKillSwitchEnabled": "is_auto_kill_switch_enabled",
    "is_auto_kill_switch_enabled": "is_auto_kill_switch_enabled",
}


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def initial_state(
    now: datetime, settings: Optional[TradersControlSettings] = None
) -> TradersControlState:
    """Build the state a fresh session starts from.

    Persisted settings are kept; status and P&L always start from defaults.
    """
    if settings is None:
        settings = TradersControlSettings(last_reset_date=now.date())
    return TradersControlState(
        settings=settings,
        runtime=RuntimeState(daily_pnl=DailyPnLSummary(last_updated=now)),
    )


def editable_setting_changes(changes: Mapping[str, Any]) -> dict[str, str]:
    """Map accepted keys of a partial settings update to field names."""
    return {key: _EDITABLE_SETTINGS[key] for key in changes if key in _EDITABLE_SETTINGS}


def update_settings(
    state: TradersControlState, changes: Mapping[str, Any]
) -> TradersControlState:
    """Merge a partial settings update.

    Unknown keys and null values are ignored. Non-numeric limits count as 0.

    Raises:
        TradersControlConfigError: If the resulting daily loss limit is not positive
    """
    update: dict[str, Any] = {}
    for key, field_name in editable_setting_changes(changes).items():
        value = changes[key]
        if value is None:
            continue
        if field_name == "daily_loss_limit":
            limit = to_decimal(value)
            if limit <= 0:
                raise TradersControlConfigError(
                    f"Daily loss limit must be positive, got {value!r}"
                )
            update[field_name] = limit
        else:
            update[field_name] = _to_bool(value)

    if not update:
        return state
    return state.model_copy(
        update={"settings": state.settings.model_copy(update=update)}
    )


def activate_kill_switch(
    state: TradersControlState, reason: str, now: datetime
) -> TradersControlState:
    """Move to ACTIVE. An already-active switch keeps its first activation."""
    if state.runtime.status.is_active:
        return state

    reason = (reason or "").strip() or DEFAULT_MANUAL_REASON
    status = KillSwitchStatus(
        is_active=True,
        reason=reason,
        activated_at=now,
        can_override=False,
    )
    settings = state.settings.model_copy(
        update={"is_kill_switch_active": True, "kill_switch_activated_at": now}
    )
    return state.model_copy(
        update={
            "settings": settings,
            "runtime": state.runtime.model_copy(update={"status": status}),
        }
    )


def deactivate_kill_switch(state: TradersControlState) -> TradersControlState:
    """Move to INACTIVE, clearing reason and activation time."""
    settings = state.settings.model_copy(
        update={"is_kill_switch_active": False, "kill_switch_activated_at": None}
    )
    return state.model_copy(
        update={
            "settings": settings,
            "runtime": state.runtime.model_copy(update={"status": KillSwitchStatus()}),
        }
    )


def needs_daily_reset(state: TradersControlState, today: date) -> bool:
    return state.settings.last_reset_date != today


def reset_daily_data(state: TradersControlState, now: datetime) -> TradersControlState:
    """Start a new trading day: inactive switch, zero loss, zero P&L."""
    settings = state.settings.model_copy(
        update={
            "current_daily_loss": Decimal("0"),
            "last_reset_date": now.date(),
            "is_kill_switch_active": False,
            "kill_switch_activated_at": None,
        }
    )
    return state.model_copy(
        update={
            "settings": settings,
            "runtime": RuntimeState(daily_pnl=DailyPnLSummary(last_updated=now)),
        }
    )


def format_inr(amount: Decimal) -> str:
    return f"₹{amount:,.2f}"


def check_and_activate_kill_switch(
    state: TradersControlState, now: datetime
) -> tuple[TradersControlState, bool]:
    """Activate the switch if the daily loss reached the limit.

    Returns:
        Tuple of (new state, whether activation happened). Already-active
        or auto-disabled switches never activate here.
    """
    settings = state.settings
    if state.runtime.status.is_active or not settings.is_auto_kill_switch_enabled:
        return state, False

    current_loss = state.runtime.daily_pnl.daily_loss
    if current_loss >= settings.daily_loss_limit:
        reason = (
            f"Daily loss limit of {format_inr(settings.daily_loss_limit)} exceeded. "
            f"Current loss: {format_inr(current_loss)}"
        )
        return activate_kill_switch(state, reason, now), True

    return state, False


def update_daily_pnl(
    state: TradersControlState, summary: Any, now: datetime
) -> tuple[TradersControlState, bool]:
    """Replace the P&L snapshot, then run the auto-activation check.

    Returns:
        Tuple of (new state, whether the kill switch was activated)
    """
    if not isinstance(summary, DailyPnLSummary):
        summary = DailyPnLSummary.model_validate(
            dict(summary) if isinstance(summary, Mapping) else {}
        )
    settings = state.settings.model_copy(
        update={"current_daily_loss": summary.daily_loss}
    )
    state = state.model_copy(
        update={
            "settings": settings,
            "runtime": state.runtime.model_copy(update={"daily_pnl": summary}),
        }
    )
    return check_and_activate_kill_switch(state, now)


def reduce(
    state: TradersControlState, action: Action, now: datetime
) -> TradersControlState:
    """Apply one action."""
    if isinstance(action, UpdateSettings):
        return update_settings(state, action.changes)
    if isinstance(action, UpdateDailyPnL):
        return update_daily_pnl(state, action.summary, now)[0]
    if isinstance(action, ActivateKillSwitch):
        return activate_kill_switch(state, action.reason, now)
    if isinstance(action, DeactivateKillSwitch):
        return deactivate_kill_switch(state)
    if isinstance(action, ResetDailyData):
        return reset_daily_data(state, now)
    if isinstance(action, CheckKillSwitch):
        return check_and_activate_kill_switch(state, now)[0]
    raise TypeError(f"Unknown traders control action: {action!r}")
