"""Settings persistence for traders control.

Only ``TradersControlSettings`` is ever written; kill switch status and
P&L live in memory.
"""

import json
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from packages.structured_logging import get_logger

from .models import TradersControlSettings


logger = get_logger(__name__)

STORAGE_KEY = "traders-control-storage"


class SettingsRepository(Protocol):
    """Where traders control settings survive between sessions."""

    def load(self) -> Optional[TradersControlSettings]:
        """Return stored settings, or None when nothing usable is stored."""
        ...

    def save(self, settings: TradersControlSettings) -> None:
        """Store settings, replacing any previous value."""
        ...


class InMemorySettingsRepository:
    """Repository kept in process memory (tests, ephemeral sessions)."""

    def __init__(self, settings: Optional[TradersControlSettings] = None):
        self._settings = settings

    def load(self) -> Optional[TradersControlSettings]:
        return self._settings

    def save(self, settings: TradersControlSettings) -> None:
        self._settings = settings


class JsonFileSettingsRepository:
    """
    Settings stored as JSON under the ``traders-control-storage`` key.

    A missing or corrupted file loads as None so the store falls back to
    default settings.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[TradersControlSettings]:
        if not self._path.exists():
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return TradersControlSettings.model_validate(data[STORAGE_KEY]["settings"])
        except (OSError, ValueError, KeyError, TypeError, ValidationError) as e:
            logger.warning(
                "traders_control_settings_unreadable",
                path=str(self._path),
                error=str(e),
            )
            return None

    def save(self, settings: TradersControlSettings) -> None:
        data = {
            STORAGE_KEY: {
                "settings": settings.model_dump(mode="json", by_alias=True),
            }
        }
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            # In-memory settings stay authoritative for this session
            logger.warning(
                "traders_control_settings_save_failed",
                path=str(self._path),
                error=str(e),
            )
