"""Tests for schema migrations: bulk creation, stepwise upgrades and seeding."""

from __future__ import annotations

from pathlib import Path

import pytest

from garden.defaults import load_default_config
from garden.errors import MigrationError
from garden.models import GENERAL_CONTACT
from garden.store.connection import Database
from garden.store.migrator import SchemaMigrator
from garden.store.schema import LATEST_VERSION

EXPECTED_TABLES = {
    "entities",
    "interactions",
    "entity_photos",
    "interaction_types",
    "tags",
    "entity_tags",
    "interaction_type_tags",
    "favorites",
    "group_members",
    "settings",
    "birthday_reminders",
}


@pytest.fixture
def db(tmp_path: Path):
    database = Database(tmp_path / "garden.db")
    yield database
    database.close()


def _legacy_db(path: Path) -> Database:
    """A version-0 database as written by the very first release."""
    database = Database(path)
    database.execute(
        "CREATE TABLE entities (id TEXT PRIMARY KEY, name TEXT NOT NULL, type TEXT NOT NULL, "
        "details TEXT, image TEXT, interaction_score REAL DEFAULT 0, "
        "created_at INTEGER NOT NULL, updated_at INTEGER NOT NULL)"
    )
    database.execute(
        "CREATE TABLE interactions (id TEXT PRIMARY KEY, entity_id TEXT NOT NULL, "
        "timestamp INTEGER NOT NULL)"
    )
    database.execute(
        "INSERT INTO entities (id, name, type, created_at, updated_at) "
        "VALUES ('e1', 'Ann', 'person', 1, 1)"
    )
    database.execute("INSERT INTO interactions (id, entity_id, timestamp) VALUES ('i1', 'e1', 5)")
    return database


def _counts(database: Database) -> tuple[int, int]:
    return (
        database.scalar("SELECT COUNT(*) FROM tags"),
        database.scalar("SELECT COUNT(*) FROM interaction_types"),
    )


class TestFreshDatabase:
    def test_bulk_path_reaches_latest(self, db: Database):
        migrator = SchemaMigrator(db)
        assert migrator.migrate() == LATEST_VERSION
        assert db.ready
        assert migrator.last_error is None
        assert EXPECTED_TABLES <= set(db.tables())

    def test_seeds_defaults(self, db: Database):
        SchemaMigrator(db).migrate()
        defaults = load_default_config()
        names = {row["name"] for row in db.fetchall("SELECT name FROM tags")}
        assert names == set(defaults.tag_names)
        assert db.scalar("SELECT COUNT(*) FROM interaction_types") == len(defaults.interactions)
        assert db.scalar(
            "SELECT COUNT(*) FROM interaction_types WHERE name = ? AND entity_type IS NULL",
            (GENERAL_CONTACT,),
        ) == 1
        assert db.scalar("SELECT COUNT(*) FROM settings") == 1

    def test_second_run_is_noop(self, db: Database):
        migrator = SchemaMigrator(db)
        migrator.migrate()
        before = (migrator.describe(), _counts(db))
        assert migrator.migrate() == LATEST_VERSION
        assert (migrator.describe(), _counts(db)) == before

    def test_full_sequence_twice_is_idempotent(self, db: Database):
        migrator = SchemaMigrator(db)
        migrator.migrate()
        before = (migrator.describe(), _counts(db))

        migrator.reset_version(0)
        assert migrator.migrate() == LATEST_VERSION
        assert migrator.last_error is None
        assert (migrator.describe(), _counts(db)) == before


class TestUpgrade:
    def test_legacy_database_gets_every_step(self, tmp_path: Path):
        legacy = _legacy_db(tmp_path / "old.db")
        try:
            migrator = SchemaMigrator(legacy)
            assert migrator.migrate() == LATEST_VERSION
            assert migrator.last_error is None
            assert legacy.scalar("SELECT name FROM entities WHERE id = 'e1'") == "Ann"
            assert legacy.scalar("SELECT type FROM interactions WHERE id = 'i1'") is None
            assert legacy.scalar("SELECT is_hidden FROM entities WHERE id = 'e1'") == 0
        finally:
            legacy.close()

    def test_step_path_matches_bulk_shape(self, tmp_path: Path, db: Database):
        SchemaMigrator(db).migrate()
        legacy = _legacy_db(tmp_path / "old.db")
        try:
            SchemaMigrator(legacy).migrate()
            for table in EXPECTED_TABLES:
                assert legacy.columns(table) == db.columns(table), table
        finally:
            legacy.close()

    def test_tag_rebuild_folds_case_duplicates(self, db: Database):
        migrator = SchemaMigrator(db)
        for step in (1, 2, 3):
            migrator.steps[step]()
        db.user_version = 3
        db.execute("INSERT INTO entities (id, name, type, created_at, updated_at) VALUES ('a', 'Ann', 'person', 1, 1)")
        db.execute("INSERT INTO entities (id, name, type, created_at, updated_at) VALUES ('b', 'Bob', 'person', 1, 1)")
        db.execute("INSERT INTO tags (id, name) VALUES ('t1', 'Friend')")
        db.execute("INSERT INTO tags (id, name) VALUES ('t2', 'friend')")
        db.execute("INSERT INTO entity_tags (entity_id, tag_id) VALUES ('a', 't1')")
        db.execute("INSERT INTO entity_tags (entity_id, tag_id) VALUES ('a', 't2')")
        db.execute("INSERT INTO entity_tags (entity_id, tag_id) VALUES ('b', 't2')")
        db.execute("INSERT INTO interaction_types (id, name, tag_id, icon) VALUES ('x', 'Catch Up', 't2', 'chat')")

        assert migrator.migrate() == LATEST_VERSION

        rows = db.fetchall("SELECT id, count FROM tags WHERE name = 'friend' COLLATE NOCASE")
        assert [(r["id"], r["count"]) for r in rows] == [("t1", 2)]
        assert migrator.catalog.get("x").tag_ids == {"t1"}
        links = {(r["entity_id"], r["tag_id"]) for r in db.fetchall("SELECT * FROM entity_tags")}
        assert links == {("a", "t1"), ("b", "t1")}

    def test_existing_types_are_not_reseeded(self, db: Database):
        migrator = SchemaMigrator(db)
        for step in (1, 2):
            migrator.steps[step]()
        db.user_version = 2
        db.execute("INSERT INTO interaction_types (id, name, tag_id, icon) VALUES ('x', 'Lunch', NULL, 'food')")

        migrator.migrate()
        names = {row["name"] for row in db.fetchall("SELECT name FROM interaction_types")}
        assert names == {GENERAL_CONTACT, "Lunch"}

    def test_failed_step_stops_sequence(self, db: Database, monkeypatch):
        migrator = SchemaMigrator(db)
        for step in range(1, 11):
            migrator.steps[step]()
        db.user_version = 10

        def broken() -> None:
            raise MigrationError("disk on fire")

        monkeypatch.setitem(migrator.steps, 11, broken)
        assert migrator.migrate() == 10
        assert isinstance(migrator.last_error, MigrationError)
        assert db.ready

        assert SchemaMigrator(db).migrate() == LATEST_VERSION


class TestHelpers:
    def test_add_column(self, db: Database):
        db.execute("CREATE TABLE t (id TEXT)")
        migrator = SchemaMigrator(db)
        assert migrator.add_column("t", "extra", "TEXT") is True
        assert migrator.add_column("t", "extra", "TEXT") is False
        assert "extra" in db.columns("t")

    def test_add_column_unrecoverable(self, db: Database):
        migrator = SchemaMigrator(db)
        with pytest.raises(MigrationError):
            migrator.add_column("missing_table", "extra", "TEXT")

    def test_reset_version_bounds(self, db: Database):
        migrator = SchemaMigrator(db)
        with pytest.raises(ValueError):
            migrator.reset_version(LATEST_VERSION + 1)
        with pytest.raises(ValueError):
            migrator.reset_version(-1)

    def test_describe(self, db: Database):
        migrator = SchemaMigrator(db)
        assert migrator.describe().up_to_date is False
        migrator.migrate()
        info = migrator.describe()
        assert info.up_to_date
        assert "birthday" in info.tables["entities"]
