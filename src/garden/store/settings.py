"""Singleton application settings (decay factor and model)."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from garden.store.connection import Database
from garden.store.schema import SETTINGS_KEY
from garden.store.scoring import DecayModel, InteractionScorer

logger = logging.getLogger(__name__)


@dataclass
class Settings:
    decay_factor: float = 0.0
    decay_model: DecayModel = DecayModel.LINEAR

    def to_json(self) -> str:
        return json.dumps({"decayFactor": self.decay_factor, "decayType": self.decay_model.value})

    @classmethod
    def from_json(cls, text: str) -> Settings:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("settings value is not an object")
        factor = float(data.get("decayFactor") or 0)
        if factor < 0:
            raise ValueError(f"negative decay factor: {factor}")
        return cls(decay_factor=factor, decay_model=DecayModel.parse(data.get("decayType")))


class SettingsStore:
    def __init__(self, db: Database, scorer: InteractionScorer) -> None:
        self.db = db
        self.scorer = scorer

    def get(self) -> Settings:
        """Return the stored settings, writing defaults when absent or unreadable."""
        if not self.db.table_exists("settings"):
            return Settings()
        raw = self.db.scalar("SELECT value FROM settings WHERE key = ?", (SETTINGS_KEY,))
        if raw is not None:
            try:
                return Settings.from_json(raw)
            except (ValueError, TypeError) as e:
                logger.warning("Corrupt settings row (%s), resetting to defaults", e)
        settings = Settings()
        self._write(settings)
        return settings

    def update(self, settings: Settings) -> None:
        """Persist and rescore every entity under the new decay settings.

        Both happen in one transaction, so a failed sweep keeps the old settings.
        """
        with self.db.transaction():
            self._write(settings)
            self.scorer.update_all(settings.decay_factor, settings.decay_model)

    def _write(self, settings: Settings) -> None:
        self.db.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (SETTINGS_KEY, settings.to_json()),
        )
