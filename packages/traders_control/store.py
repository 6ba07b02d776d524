"""
Traders control store.

Holds the single traders control state for a session and applies every
change through the pure reducers, so the state is only ever mutated via
the actions defined here (one writer, many readers).

Settings are persisted through a SettingsRepository after each change.
On construction the store runs the daily rollover: a stored
``last_reset_date`` other than today deactivates the kill switch and zeroes
the day's loss, whatever was left active the day before.
"""

from datetime import datetime
from threading import RLock
from typing import Any, Callable, Mapping, Optional, Union

from packages.structured_logging import get_logger

from . import reducer
from .models import (
    DailyPnLSummary,
    KillSwitchStatus,
    TradersControlSettings,
    TradersControlState,
)
from .persistence import InMemorySettingsRepository, SettingsRepository


logger = get_logger(__name__)

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current local time, timezone-aware."""
    return datetime.now().astimezone()


class TradersControlStore:
    """
    Kill switch and daily loss tracking for one trading session.

    Thread-safe: every action runs under a lock and swaps in a new
    immutable state.
    """

    def __init__(
        self,
        repository: Optional[SettingsRepository] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the store, loading persisted settings.

        Args:
            repository: Settings persistence (in-memory if None)
            clock: Source of the current local time
        """
        self._repository = repository or InMemorySettingsRepository()
        self._clock = clock or local_now
        self._lock = RLock()

        now = self._clock()
        self._state = reducer.initial_state(now, self._repository.load())
        self.roll_over_if_new_day()

    def _now(self) -> datetime:
        return self._clock()

    def _commit(self, new_state: TradersControlState) -> TradersControlState:
        settings_changed = new_state.settings != self._state.settings
        self._state = new_state
        if settings_changed:
            self._repository.save(new_state.settings)
        return new_state

    # Read side

    def get_state(self) -> TradersControlState:
        """Current state (immutable snapshot)."""
        return self._state

    @property
    def settings(self) -> TradersControlSettings:
        return self._state.settings

    @property
    def status(self) -> KillSwitchStatus:
        return self._state.runtime.status

    @property
    def daily_pnl(self) -> DailyPnLSummary:
        return self._state.runtime.daily_pnl

    def is_kill_switch_active(self) -> bool:
        return self._state.is_kill_switch_active

    # Actions

    def update_settings(self, changes: Mapping[str, Any]) -> TradersControlSettings:
        """
        Merge a partial settings update.

        Args:
            changes: Keys in wire (camelCase) or Python (snake_case) form

        Returns:
            Updated settings

        Raises:
            TradersControlConfigError: If the daily loss limit is not positive
        """
        ignored = sorted(set(changes) - set(reducer.editable_setting_changes(changes)))
        if ignored:
            logger.warning("traders_control_settings_keys_ignored", keys=ignored)

        with self._lock:
            try:
                state = self._commit(reducer.update_settings(self._state, changes))
            except reducer.TradersControlConfigError as e:
                logger.error("traders_control_settings_rejected", error=str(e))
                raise

        logger.info(
            "traders_control_settings_updated",
            daily_loss_limit=str(state.settings.daily_loss_limit),
            auto_kill_switch=state.settings.is_auto_kill_switch_enabled,
        )
        return state.settings

    def update_daily_pnl(self, summary: Union[DailyPnLSummary, Mapping[str, Any]]) -> bool:
        """
        Replace the P&L snapshot and run the auto-activation check.

        Returns:
            True if this update activated the kill switch
        """
        with self._lock:
            new_state, activated = reducer.update_daily_pnl(self._state, summary, self._now())
            state = self._commit(new_state)

        pnl = state.runtime.daily_pnl
        logger.debug(
            "daily_pnl_updated",
            total_daily_pnl=str(pnl.total_daily_pnl),
            trade_count=pnl.trade_count,
        )
        if activated:
            self._log_auto_activation(state)
        return activated

    def activate_kill_switch(self, reason: str) -> KillSwitchStatus:
        """
        Activate the kill switch manually.

        Args:
            reason: Operator-supplied reason

        Returns:
            Current status (first activation wins if already active)
        """
        with self._lock:
            was_active = self._state.is_kill_switch_active
            state = self._commit(reducer.activate_kill_switch(self._state, reason, self._now()))

        if not was_active:
            logger.warning(
                "kill_switch_activated",
                reason=state.runtime.status.reason,
                activated_at=state.runtime.status.activated_at.isoformat(),
            )
        return state.runtime.status

    def deactivate_kill_switch(self) -> KillSwitchStatus:
        """
        Deactivate the kill switch.

        WARNING: Only use after verifying it is safe to resume trading.
        """
        with self._lock:
            was_active = self._state.is_kill_switch_active
            state = self._commit(reducer.deactivate_kill_switch(self._state))

        if was_active:
            logger.warning("kill_switch_deactivated")
        return state.runtime.status

    def reset_daily_data(self) -> TradersControlState:
        """Start a new trading day now."""
        with self._lock:
            state = self._commit(reducer.reset_daily_data(self._state, self._now()))

        logger.info(
            "traders_control_daily_reset",
            last_reset_date=state.settings.last_reset_date.isoformat(),
        )
        return state

    def roll_over_if_new_day(self) -> bool:
        """
        Run the daily reset if the stored reset date is not today.

        Returns:
            True if a reset happened
        """
        with self._lock:
            if not reducer.needs_daily_reset(self._state, self._now().date()):
                return False
            self.reset_daily_data()
        return True

    def check_and_activate_kill_switch(self) -> bool:
        """
        Activate the kill switch if the daily loss limit is reached.

        Returns:
            True if activation happened; False if already active,
            auto-activation is off, or the loss is below the limit
        """
        with self._lock:
            new_state, activated = reducer.check_and_activate_kill_switch(
                self._state, self._now()
            )
            state = self._commit(new_state)

        if activated:
            self._log_auto_activation(state)
        return activated

    def _log_auto_activation(self, state: TradersControlState) -> None:
        logger.warning(
            "kill_switch_auto_activated",
            reason=state.runtime.status.reason,
            daily_loss=str(state.runtime.daily_pnl.daily_loss),
            daily_loss_limit=str(state.settings.daily_loss_limit),
        )
