"""
Traders control: daily-loss kill switch.

The kill switch blocks trading actions once active. It is activated
manually, or automatically when the day's P&L loss reaches the configured
daily loss limit, and is reset at the start of each trading day.

This is a local safety rail: the broker itself knows nothing about it.
"""

from .models import (
    DEFAULT_DAILY_LOSS_LIMIT,
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
)
from .persistence import (
    STORAGE_KEY,
    InMemorySettingsRepository,
    JsonFileSettingsRepository,
    SettingsRepository,
)
from .positions import summarize_positions
from .reducer import TradersControlConfigError, reduce
from .store import TradersControlStore, local_now

__all__ = [
    "Action",
    "ActivateKillSwitch",
    "CheckKillSwitch",
    "DEFAULT_DAILY_LOSS_LIMIT",
    "DailyPnLSummary",
    "DeactivateKillSwitch",
    "InMemorySettingsRepository",
    "JsonFileSettingsRepository",
    "KillSwitchStatus",
    "ResetDailyData",
    "RuntimeState",
    "STORAGE_KEY",
    "SettingsRepository",
    "TradersControlConfigError",
    "TradersControlSettings",
    "TradersControlState",
    "TradersControlStore",
    "UpdateDailyPnL",
    "UpdateSettings",
    "local_now",
    "reduce",
    "summarize_positions",
]
