"""Decayed interaction scoring.

An entity's score is recomputed from its full interaction history every
time: each interaction contributes its type weight times a decay
multiplier that depends on the interaction's age in days.
"""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Iterable
from enum import Enum

from garden.store.connection import Database

logger = logging.getLogger(__name__)

MS_PER_DAY = 1000 * 60 * 60 * 24


class DecayModel(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"
    LOGARITHMIC = "logarithmic"

    @classmethod
    def parse(cls, value: str | DecayModel | None) -> DecayModel:
        """Unknown or missing model names fall back to linear."""
        if isinstance(value, DecayModel):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.LINEAR


def decay_multiplier(age_days: float, factor: float, model: DecayModel | str) -> float:
    if factor <= 0 or age_days <= 0:
        return 1.0
    model = DecayModel.parse(model)
    if model is DecayModel.EXPONENTIAL:
        return math.exp(-factor * age_days)
    if model is DecayModel.LOGARITHMIC:
        return max(0.0, 1 - factor * math.log(1 + age_days))
    return max(0.0, 1 - factor * age_days)


def compute_score(
    history: Iterable[tuple[int, float]],
    factor: float,
    model: DecayModel | str,
    now: int,
) -> float:
    """Sum weight * multiplier over (timestamp_ms, weight) pairs."""
    total = 0.0
    for timestamp, weight in history:
        age_days = (now - timestamp) / MS_PER_DAY
        total += weight * decay_multiplier(age_days, factor, model)
    return max(0.0, total)


class InteractionScorer:
    """Reads interaction history and persists recomputed scores."""

    def __init__(self, db: Database) -> None:
        self.db = db

    def history(self, entity_id: str) -> list[tuple[int, float]]:
        # Interactions whose type was deleted weigh 1.
        rows = self.db.fetchall(
            "SELECT i.timestamp, COALESCE(it.score, 1) AS weight "
            "FROM interactions i "
            "LEFT JOIN interaction_types it ON i.type_id = it.id "
            "WHERE i.entity_id = ? ORDER BY i.timestamp DESC",
            (entity_id,),
        )
        return [(row["timestamp"], row["weight"]) for row in rows]

    def score(
        self,
        entity_id: str,
        factor: float = 0.0,
        model: DecayModel | str = DecayModel.LINEAR,
        now: int | None = None,
    ) -> float:
        if now is None:
            now = int(time.time() * 1000)
        return compute_score(self.history(entity_id), factor, model, now)

    def rescore(
        self,
        entity_id: str,
        factor: float = 0.0,
        model: DecayModel | str = DecayModel.LINEAR,
        now: int | None = None,
        touch: bool = True,
    ) -> float:
        """Recompute and persist one entity's score.

        With `touch` the entity's updated_at is set to `now` as well.
        """
        if now is None:
            now = int(time.time() * 1000)
        value = self.score(entity_id, factor, model, now)
        if touch:
            self.db.execute(
                "UPDATE entities SET interaction_score = ?, updated_at = ? WHERE id = ?",
                (value, now, entity_id),
            )
        else:
            self.db.execute(
                "UPDATE entities SET interaction_score = ? WHERE id = ?", (value, entity_id)
            )
        return value

    def update_all(
        self,
        factor: float = 0.0,
        model: DecayModel | str = DecayModel.LINEAR,
        now: int | None = None,
    ) -> int:
        """Sweep every entity. Returns the number of entities rescored."""
        if now is None:
            now = int(time.time() * 1000)
        ids = [row["id"] for row in self.db.fetchall("SELECT id FROM entities")]
        with self.db.transaction():
            for entity_id in ids:
                self.rescore(entity_id, factor, model, now, touch=False)
        logger.info(
            "Rescored %d entities (factor=%s, model=%s)",
            len(ids),
            factor,
            DecayModel.parse(model).value,
        )
        return len(ids)
