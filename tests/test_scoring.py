"""Tests for decayed interaction scoring and the settings singleton."""

from __future__ import annotations

import math
import sqlite3
from pathlib import Path

import pytest

from garden.config import GardenConfig
from garden.core import Garden
from garden.store.connection import now_ms
from garden.store.schema import SETTINGS_KEY
from garden.store.scoring import MS_PER_DAY, DecayModel, compute_score, decay_multiplier
from garden.store.settings import Settings

NOW = 1_700_000_000_000


@pytest.fixture
def garden(tmp_path: Path):
    g = Garden(GardenConfig(data_dir=tmp_path, db_path=tmp_path / "garden.db", photos_dir=tmp_path / "photos"))
    g.start()
    yield g
    g.close()


class TestDecayMultiplier:
    @pytest.mark.parametrize("model", list(DecayModel))
    def test_no_decay_without_factor(self, model):
        for age in (0, 1, 10, 365, 10_000):
            assert decay_multiplier(age, 0, model) == 1.0

    @pytest.mark.parametrize("model", list(DecayModel))
    @pytest.mark.parametrize("factor", [0.01, 0.1, 0.5, 2.0])
    def test_non_increasing_in_age(self, model, factor):
        ages = [0, 0.5, 1, 2, 5, 10, 30, 100, 1000]
        values = [decay_multiplier(a, factor, model) for a in ages]
        assert all(a >= b for a, b in zip(values, values[1:]))
        assert all(v >= 0 for v in values)

    def test_exponential(self):
        assert decay_multiplier(10, 0.1, DecayModel.EXPONENTIAL) == pytest.approx(math.exp(-1))

    def test_logarithmic_clamps_at_zero(self):
        assert decay_multiplier(100, 1.0, "logarithmic") == 0.0

    def test_unknown_model_is_linear(self):
        assert DecayModel.parse("quadratic") is DecayModel.LINEAR
        assert DecayModel.parse(None) is DecayModel.LINEAR
        assert DecayModel.parse("EXPONENTIAL") is DecayModel.EXPONENTIAL
        assert decay_multiplier(5, 0.1, "quadratic") == pytest.approx(0.5)


class TestComputeScore:
    def test_sum_of_weights_without_decay(self):
        history = [(NOW, 2), (NOW - 400 * MS_PER_DAY, 5), (NOW - 3 * MS_PER_DAY, 1)]
        assert compute_score(history, 0, DecayModel.LINEAR, NOW) == 8

    def test_linear_example(self):
        history = [(NOW, 2), (NOW - 10 * MS_PER_DAY, 5)]
        assert compute_score(history, 0.1, DecayModel.LINEAR, NOW) == pytest.approx(2.0)

    def test_never_negative(self):
        assert compute_score([], 0.5, DecayModel.LINEAR, NOW) == 0.0
        assert compute_score([(NOW - 50 * MS_PER_DAY, 3)], 0.5, "linear", NOW) == 0.0


class TestInteractionScorer:
    def test_score_uses_type_weights(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.entities.add_historical_interaction(eid, NOW, "Coffee")
        garden.entities.add_historical_interaction(eid, NOW - 10 * MS_PER_DAY, "Birthday")

        assert garden.scorer.score(eid, 0.1, DecayModel.LINEAR, now=NOW) == pytest.approx(2.0)
        assert garden.scorer.score(eid, 0, DecayModel.LINEAR, now=NOW) == pytest.approx(7.0)

    def test_unknown_type_weighs_one(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.entities.add_historical_interaction(eid, NOW, "Skydiving")
        assert garden.scorer.score(eid, now=NOW) == 1.0

    def test_rescore_persists(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.entities.add_historical_interaction(eid, NOW, "Coffee")
        garden.scorer.rescore(eid, 0, "linear", now=NOW + 1)

        entity = garden.entities.get_entity(eid)
        assert entity.interaction_score == 2.0
        assert entity.updated_at == NOW + 1

    def test_rescore_without_touch_keeps_updated_at(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        before = garden.entities.get_entity(eid).updated_at
        garden.scorer.rescore(eid, 0, "linear", now=before + 5000, touch=False)
        assert garden.entities.get_entity(eid).updated_at == before

    def test_update_all(self, garden: Garden):
        a = garden.entities.create_entity("Ann", "person")
        b = garden.entities.create_entity("Bob", "person")
        garden.entities.add_historical_interaction(a, NOW, "Coffee")
        garden.entities.add_historical_interaction(b, NOW - 5 * MS_PER_DAY, "Coffee")

        assert garden.scorer.update_all(0.1, "linear", now=NOW) == 2
        assert garden.entities.get_entity(a).interaction_score == pytest.approx(2.0)
        assert garden.entities.get_entity(b).interaction_score == pytest.approx(1.0)


class TestSettings:
    def test_defaults(self, garden: Garden):
        settings = garden.settings.get()
        assert settings.decay_factor == 0.0
        assert settings.decay_model is DecayModel.LINEAR

    def test_update_rescores_everything(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        now = now_ms()
        garden.entities.add_historical_interaction(eid, now, "Coffee")
        garden.entities.add_historical_interaction(eid, now - 10 * MS_PER_DAY, "Birthday")
        assert garden.entities.get_entity(eid).interaction_score == pytest.approx(7.0, abs=1e-3)

        garden.update_settings(Settings(decay_factor=0.1, decay_model=DecayModel.LINEAR))

        assert garden.settings.get() == Settings(0.1, DecayModel.LINEAR)
        assert garden.entities.get_entity(eid).interaction_score == pytest.approx(2.0, abs=1e-3)

    def test_corrupt_row_is_repaired(self, garden: Garden):
        garden.db.execute("UPDATE settings SET value = ? WHERE key = ?", ("{not json", SETTINGS_KEY))
        assert garden.settings.get() == Settings()
        stored = garden.db.scalar("SELECT value FROM settings WHERE key = ?", (SETTINGS_KEY,))
        assert Settings.from_json(stored) == Settings()

    def test_json_shape(self):
        text = Settings(0.25, DecayModel.EXPONENTIAL).to_json()
        assert '"decayFactor": 0.25' in text
        assert '"decayType": "exponential"' in text
        assert Settings.from_json(text) == Settings(0.25, DecayModel.EXPONENTIAL)

    def test_negative_factor_rejected(self):
        with pytest.raises(ValueError):
            Settings.from_json('{"decayFactor": -1, "decayType": "linear"}')

    def test_failed_sweep_keeps_old_settings(self, garden: Garden, monkeypatch):
        garden.entities.create_entity("Ann", "person")

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(garden.scorer, "rescore", broken)
        with pytest.raises(sqlite3.OperationalError):
            garden.update_settings(Settings(decay_factor=0.5, decay_model=DecayModel.EXPONENTIAL))

        assert garden.settings.get() == Settings()
