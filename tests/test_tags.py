"""Tests for tags, tag counts, themed interaction types and config application."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from garden.config import GardenConfig
from garden.core import Garden
from garden.defaults import DefaultConfig, InteractionConfig, TagConfig
from garden.models import GENERAL_CONTACT
from garden.store.catalog import encode_entity_kinds
from garden.store.tags import FALLBACK_ICON, themed_types


def _garden(tmp_path: Path, defaults: DefaultConfig | None = None) -> Garden:
    config = GardenConfig(data_dir=tmp_path, db_path=tmp_path / "garden.db", photos_dir=tmp_path / "photos")
    g = Garden(config, defaults=defaults)
    g.start()
    return g


@pytest.fixture
def garden(tmp_path: Path):
    g = _garden(tmp_path)
    yield g
    g.close()


@pytest.fixture
def bare(tmp_path: Path):
    """A store seeded with nothing but General Contact."""
    g = _garden(tmp_path, DefaultConfig())
    yield g
    g.close()


class TestThemedTypes:
    def test_keyword_match(self):
        names = [name for name, _ in themed_types("Work buddies")]
        assert names == ["Meeting", "Presentation", "Project Discussion"]

    def test_multiple_rules_deduplicated(self):
        names = [name for name, _ in themed_types("book club")]
        assert names == ["Reading", "Discussion", "Activity"]

    def test_fallback(self):
        assert themed_types("Chess") == [("Chess Interaction", FALLBACK_ICON)]


class TestTagGraph:
    def test_new_pet_tag_seeds_pet_types(self, bare: Garden):
        assert [t.name for t in bare.catalog.list()] == [GENERAL_CONTACT]
        eid = bare.entities.create_entity("Rex", "topic")
        tag_id = bare.tags.add_tag_to_entity(eid, "pet")

        pet_types = [t for t in bare.catalog.list() if tag_id in t.tag_ids]
        assert len(pet_types) >= 1
        assert {"Vet Visit", "Grooming", "Walk"} <= {t.name for t in pet_types}

    def test_existing_tag_is_reused(self, garden: Garden):
        before = garden.catalog.count()
        pet = garden.tags.get_tag_by_name("pet")
        assert garden.tags.add_tag("PET") == pet.id
        assert garden.catalog.count() == before

    def test_case_insensitive_names(self, garden: Garden):
        first = garden.tags.add_tag("Climbing")
        assert garden.tags.add_tag("climbing ") == first
        assert garden.tags.get_tag_by_name("CLIMBING").id == first

    def test_empty_name_rejected(self, garden: Garden):
        with pytest.raises(ValueError):
            garden.tags.add_tag("  ")

    def test_counts_track_links(self, garden: Garden):
        a = garden.entities.create_entity("Ann", "person")
        b = garden.entities.create_entity("Bob", "person")
        tag_id = garden.tags.add_tag_to_entity(a, "friend")
        garden.tags.add_tag_to_entity(a, "Friend")
        garden.tags.add_tag_to_entity(b, "friend")
        assert garden.tags.get_tag(tag_id).count == 2

        assert garden.tags.remove_tag_from_entity(a, tag_id)
        assert garden.tags.remove_tag_from_entity(a, tag_id)
        assert garden.tags.get_tag(tag_id).count == 1
        assert garden.tags.remove_tag_from_entity(b, tag_id)
        tag = garden.tags.get_tag(tag_id)
        assert tag is not None
        assert tag.count == 0

    def test_tag_missing_entity_rolls_back(self, garden: Garden):
        assert garden.tags.add_tag_to_entity("missing", "friend") is None
        assert garden.tags.get_tag_by_name("friend").count == 0

    def test_entity_tags_and_search(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.tags.add_tag_to_entity(eid, "friend")
        garden.tags.add_tag_to_entity(eid, "coworker")
        assert [t.name for t in garden.tags.get_entity_tags(eid)] == ["coworker", "friend"]
        assert [t.name for t in garden.tags.list_tags(search="ow")] == ["coworker"]

    def test_recompute_counts(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        tag_id = garden.tags.add_tag_to_entity(eid, "friend")
        garden.db.execute("UPDATE tags SET count = 42")
        garden.tags.recompute_counts()
        assert garden.tags.get_tag(tag_id).count == 1
        assert {t.count for t in garden.tags.list_tags() if t.id != tag_id} == {0}


class TestApplyConfig:
    def test_replaces_types(self, garden: Garden):
        config = DefaultConfig(
            interactions=[
                InteractionConfig(name="Coffee", icon="coffee", entity_types=["person"], score=2),
                InteractionConfig(
                    name="Board Game",
                    icon="dice-5",
                    entity_types=["person", "group"],
                    tags=["games", "friend"],
                    score=3,
                ),
            ],
            tags=[TagConfig(name="games")],
        )
        eid = garden.entities.create_entity("Ann", "person")
        garden.entities.record_interaction(eid, "Coffee")

        assert garden.tags.apply_config(config)

        names = sorted(t.name for t in garden.catalog.list())
        assert names == ["Board Game", "Coffee", GENERAL_CONTACT]
        game = garden.catalog.get_by_name("Board Game")
        assert game.entity_kinds == {"person", "group"}
        assert game.tag_ids == {garden.tags.get_tag_by_name("games").id, garden.tags.get_tag_by_name("friend").id}
        coffee = garden.catalog.get_by_name("Coffee")
        assert garden.entities.get_interaction_logs(eid)[0].type_id == coffee.id

    def test_failure_keeps_previous_types(self, garden: Garden, monkeypatch):
        before = sorted(t.id for t in garden.catalog.list())

        def broken(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(garden.catalog, "add", broken)
        assert garden.tags.apply_config(garden.defaults) is False
        assert sorted(t.id for t in garden.catalog.list()) == before

    def test_regenerate_defaults_restores_tags(self, garden: Garden):
        pet = garden.tags.get_tag_by_name("pet")
        garden.db.execute("DELETE FROM tags WHERE id = ?", (pet.id,))
        assert garden.tags.regenerate_defaults(garden.defaults)
        assert garden.tags.get_tag_by_name("pet") is not None
        assert garden.catalog.count() == len(garden.defaults.interactions)


class TestCatalog:
    def test_entity_kind_encoding(self):
        assert encode_entity_kinds(None) is None
        assert encode_entity_kinds([]) is None
        assert encode_entity_kinds(["person"]) == "person"
        assert encode_entity_kinds(["person", "group"]) == '["person", "group"]'

    def test_crud(self, bare: Garden):
        friend = bare.tags.ensure_tag("friend")
        type_id = bare.catalog.add("Hike", icon="hiking", entity_kinds="person", score=2)
        assert bare.catalog.update(type_id, name="Long Hike", color="#00FF00")
        bare.catalog.update_score(type_id, 4)
        bare.catalog.set_tags(type_id, [friend])
        bare.catalog.set_entity_kind(type_id, ["person", "topic"])

        itype = bare.catalog.get(type_id)
        assert (itype.name, itype.color, itype.score) == ("Long Hike", "#00FF00", 4)
        assert itype.tag_ids == {friend}
        assert itype.entity_kinds == {"person", "topic"}
        assert [t.name for t in bare.catalog.tag_records_for(type_id)] == ["friend"]

        assert bare.catalog.delete(type_id)
        assert bare.catalog.get(type_id) is None

    def test_deleted_type_leaves_interactions(self, garden: Garden):
        eid = garden.entities.create_entity("Ann", "person")
        garden.entities.record_interaction(eid, "Coffee")
        garden.catalog.delete(garden.catalog.get_by_name("Coffee").id)
        log = garden.entities.get_interaction_logs(eid)[0]
        assert (log.type, log.type_id) == ("Coffee", None)
        assert garden.scorer.score(eid) == 1

    def test_general_contact_always_present(self, garden: Garden):
        gc = garden.catalog.get_by_name(GENERAL_CONTACT)
        garden.catalog.delete(gc.id)
        new_id = garden.catalog.ensure_general_contact()
        assert new_id != gc.id
        assert garden.catalog.ensure_general_contact() == new_id
        assert garden.catalog.get(new_id).is_global
