"""Versioned schema migrations.

The schema version lives in ``PRAGMA user_version``. A fresh database takes
the bulk path (every table created at its final shape in one pass); an older
one is walked forward one step at a time. Each step runs in its own
transaction whose last statement bumps the version, so an interrupted
upgrade resumes from the last completed step.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field

from garden.defaults import DefaultConfig, load_default_config
from garden.errors import MigrationError
from garden.models import DEFAULT_ICON, GENERAL_CONTACT
from garden.store.catalog import InteractionTypeCatalog
from garden.store.connection import Database, new_id
from garden.store.schema import CREATE_TABLES, LATEST_VERSION, SETTINGS_KEY, TAGS_TABLE
from garden.store.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class SchemaInfo:
    version: int
    latest: int
    tables: dict[str, list[str]] = field(default_factory=dict)

    @property
    def up_to_date(self) -> bool:
        return self.version >= self.latest


class SchemaMigrator:
    """Brings a database to LATEST_VERSION and seeds defaults."""

    def __init__(self, db: Database, defaults: DefaultConfig | None = None) -> None:
        self.db = db
        self.defaults = defaults if defaults is not None else load_default_config()
        self.catalog = InteractionTypeCatalog(db)
        self.last_error: Exception | None = None
        self.steps: dict[int, Callable[[], None]] = {
            1: self._initial_tables,
            2: self._interaction_types,
            3: self._tags,
            4: self._multi_tag_types,
            5: self._favorites,
            6: self._type_scores,
            7: self._interaction_details,
            8: self._type_colors,
            9: self._rebuild_tags,
            10: self._groups_and_settings,
            11: self._hidden_and_birthday,
            12: self._birthday_reminders,
        }

    # ── Entry points ─────────────────────────────────────────

    def migrate(self) -> int:
        """Run pending migrations. Returns the version reached.

        Never raises on a failed step: the failure is logged and kept in
        ``last_error``, the version stays at the last completed step and the
        store is marked ready so the application can still start.
        """
        self.last_error = None
        version = self.db.user_version
        logger.info("Schema version %d (latest %d)", version, LATEST_VERSION)

        if version == 0 and not self.db.table_exists("entities"):
            self._bulk_create()
        elif version < LATEST_VERSION:
            self._upgrade(version)

        self.db.ready = True
        return self.db.user_version

    def reset_version(self, version: int) -> None:
        """Force the stored version, so the following migrate() re-runs later steps."""
        if not 0 <= version <= LATEST_VERSION:
            raise ValueError(f"version must be between 0 and {LATEST_VERSION}")
        logger.warning("Resetting schema version %d -> %d", self.db.user_version, version)
        self.db.user_version = version

    def describe(self) -> SchemaInfo:
        tables = {name: sorted(self.db.columns(name)) for name in self.db.tables()}
        return SchemaInfo(version=self.db.user_version, latest=LATEST_VERSION, tables=tables)

    # ── Paths ────────────────────────────────────────────────

    def _bulk_create(self) -> None:
        logger.info("Creating schema at version %d", LATEST_VERSION)
        try:
            with self.db.transaction():
                for statement in CREATE_TABLES.split(";"):
                    if statement.strip():
                        self.db.execute(statement)
                self._insert_default_settings()
                self.seed_defaults()
                self.db.user_version = LATEST_VERSION
        except (sqlite3.Error, MigrationError) as e:
            logger.exception("Bulk schema creation failed")
            self.last_error = e

    def _upgrade(self, version: int) -> None:
        for target in range(version + 1, LATEST_VERSION + 1):
            step = self.steps[target]
            logger.info("Applying migration %d (%s)", target, step.__name__.lstrip("_"))
            rebuild = target == 9
            if rebuild:
                # Only honoured outside a transaction.
                self.db.execute("PRAGMA foreign_keys=OFF")
            try:
                with self.db.transaction():
                    step()
                    self.db.user_version = target
            except (sqlite3.Error, MigrationError) as e:
                logger.exception("Migration %d failed, staying at version %d", target, target - 1)
                self.last_error = e
                return
            finally:
                if rebuild:
                    self.db.execute("PRAGMA foreign_keys=ON")

        try:
            with self.db.transaction():
                self.seed_defaults()
        except (sqlite3.Error, MigrationError) as e:
            logger.exception("Seeding defaults after upgrade failed")
            self.last_error = e

    # ── Helpers ──────────────────────────────────────────────

    def add_column(self, table: str, column: str, declaration: str) -> bool:
        """Add a column unless present. Returns True when the column was added."""
        if column in self.db.columns(table):
            return False
        try:
            self.db.execute(f"ALTER TABLE {table} ADD COLUMN {column} {declaration}")
        except sqlite3.OperationalError as e:
            if column not in self.db.columns(table):
                raise MigrationError(f"cannot add {table}.{column}: {e}") from e
            logger.warning("Column %s.%s appeared during migration (%s)", table, column, e)
            return False
        return True

    def _insert_default_settings(self) -> None:
        self.db.execute(
            "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
            (SETTINGS_KEY, Settings().to_json()),
        )

    def _ensure_tag(self, name: str) -> str:
        name = name.strip()
        self.db.execute(
            "INSERT OR IGNORE INTO tags (id, name, count) VALUES (?, ?, 0)", (new_id(), name)
        )
        return self.db.scalar("SELECT id FROM tags WHERE name = ? COLLATE NOCASE", (name,))

    def seed_defaults(self) -> None:
        """Create default tags and interaction types. Idempotent.

        Default tags are always ensured. Default interaction types are only
        seeded while the catalogue holds nothing but General Contact, so types
        the user deleted do not come back on every start.
        """
        tag_ids = {}
        for tag in self.defaults.tags:
            tag_ids[tag.name.lower()] = self._ensure_tag(tag.name)

        existing = self.catalog.load_all()
        if any(t.name != GENERAL_CONTACT for t in existing):
            self.catalog.ensure_general_contact()
            return

        seen = {(t.name.lower(), frozenset(t.entity_kinds or ()), t.tag_ids) for t in existing}
        for item in self.defaults.interactions:
            linked = []
            for tag_name in item.tags or []:
                key = tag_name.lower()
                if key not in tag_ids:
                    tag_ids[key] = self._ensure_tag(tag_name)
                linked.append(tag_ids[key])
            key = (item.name.lower(), frozenset(item.entity_types or ()), frozenset(linked))
            if key in seen:
                continue
            seen.add(key)
            self.catalog.add(
                item.name,
                icon=item.icon,
                entity_kinds=item.entity_types,
                color=item.color,
                score=item.score,
                tag_ids=linked,
            )
        self.catalog.ensure_general_contact()
        logger.info("Seeded %d default interaction types", len(seen) - len(existing))

    # ── Steps ────────────────────────────────────────────────

    def _initial_tables(self) -> None:
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS entities (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                details TEXT,
                image TEXT,
                interaction_score REAL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                payload TEXT
            )"""
        )
        self.add_column("entities", "payload", "TEXT")
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS interactions (
                id TEXT PRIMARY KEY,
                entity_id TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
            )"""
        )
        self.db.execute(
            "CREATE INDEX IF NOT EXISTS idx_interactions_entity "
            "ON interactions (entity_id, timestamp)"
        )
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS entity_photos (
                id TEXT PRIMARY KEY,
                entity_id TEXT NOT NULL,
                uri TEXT NOT NULL,
                caption TEXT,
                timestamp INTEGER NOT NULL,
                FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
            )"""
        )

    def _interaction_types(self) -> None:
        self.add_column("interactions", "type", "TEXT")
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS interaction_types (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                tag_id TEXT,
                icon TEXT NOT NULL
            )"""
        )
        found = self.db.scalar(
            "SELECT id FROM interaction_types WHERE name = ? AND tag_id IS NULL",
            (GENERAL_CONTACT,),
        )
        if found is None:
            self.db.execute(
                "INSERT INTO interaction_types (id, name, tag_id, icon) VALUES (?, ?, NULL, ?)",
                (new_id(), GENERAL_CONTACT, DEFAULT_ICON),
            )

    def _tags(self) -> None:
        self.db.execute(
            "CREATE TABLE IF NOT EXISTS tags (id TEXT PRIMARY KEY, name TEXT NOT NULL UNIQUE)"
        )
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS entity_tags (
                entity_id TEXT NOT NULL,
                tag_id TEXT NOT NULL,
                PRIMARY KEY (entity_id, tag_id),
                FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE,
                FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
            )"""
        )

    def _multi_tag_types(self) -> None:
        self.add_column("interaction_types", "entity_type", "TEXT")
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS interaction_type_tags (
                interaction_type_id TEXT NOT NULL,
                tag_id TEXT NOT NULL,
                PRIMARY KEY (interaction_type_id, tag_id),
                FOREIGN KEY (interaction_type_id) REFERENCES interaction_types (id) ON DELETE CASCADE,
                FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
            )"""
        )
        self.db.execute(
            "INSERT OR IGNORE INTO interaction_type_tags (interaction_type_id, tag_id) "
            "SELECT it.id, it.tag_id FROM interaction_types it "
            "JOIN tags t ON t.id = it.tag_id"
        )

    def _favorites(self) -> None:
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS favorites (
                entity_id TEXT PRIMARY KEY,
                added_at INTEGER NOT NULL,
                FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
            )"""
        )

    def _type_scores(self) -> None:
        self.add_column("interaction_types", "score", "REAL DEFAULT 1")

    def _interaction_details(self) -> None:
        self.add_column("interactions", "type", "TEXT")
        self.add_column(
            "interactions",
            "type_id",
            "TEXT REFERENCES interaction_types (id) ON DELETE SET NULL",
        )
        self.add_column("interactions", "notes", "TEXT")
        cur = self.db.execute(
            "UPDATE interactions SET type_id = ("
            "  SELECT it.id FROM interaction_types it WHERE it.name = interactions.type "
            "  ORDER BY it.rowid LIMIT 1"
            ") WHERE type_id IS NULL AND type IS NOT NULL"
        )
        if cur.rowcount > 0:
            logger.info("Linked %d interactions to their type", cur.rowcount)

    def _type_colors(self) -> None:
        self.add_column("interaction_types", "color", "TEXT DEFAULT '#666666'")

    def _rebuild_tags(self) -> None:
        """Recreate tags with case-insensitive names and a usage count."""
        sql = self.db.scalar("SELECT sql FROM sqlite_master WHERE type = 'table' AND name = 'tags'")
        rebuilt = sql is not None and "NOCASE" in sql.upper() and "count" in self.db.columns("tags")
        if not rebuilt:
            remap = self._fold_tag_case_duplicates()
            self.db.execute("DROP TABLE IF EXISTS tags_rebuild")
            self.db.execute(TAGS_TABLE.format(name="tags_rebuild"))
            rows = self.db.fetchall("SELECT id, name FROM tags ORDER BY rowid")
            for row in rows:
                if row["id"] in remap:
                    continue
                self.db.execute(
                    "INSERT INTO tags_rebuild (id, name, count) VALUES (?, ?, 0)",
                    (row["id"], row["name"].strip()),
                )
            self.db.execute("DROP TABLE tags")
            self.db.execute("ALTER TABLE tags_rebuild RENAME TO tags")
            logger.info("Rebuilt tags table (%d merged duplicates)", len(remap))
        self.db.execute(
            "UPDATE tags SET count = "
            "(SELECT COUNT(*) FROM entity_tags et WHERE et.tag_id = tags.id)"
        )

    def _fold_tag_case_duplicates(self) -> dict[str, str]:
        """Point links at the first tag of each case-insensitive name group."""
        keep: dict[str, str] = {}
        remap: dict[str, str] = {}
        for row in self.db.fetchall("SELECT id, name FROM tags ORDER BY rowid"):
            key = row["name"].strip().lower()
            if key in keep:
                remap[row["id"]] = keep[key]
            else:
                keep[key] = row["id"]

        has_junction = self.db.table_exists("interaction_type_tags")
        for old, new in remap.items():
            self.db.execute(
                "INSERT OR IGNORE INTO entity_tags (entity_id, tag_id) "
                "SELECT entity_id, ? FROM entity_tags WHERE tag_id = ?",
                (new, old),
            )
            self.db.execute("DELETE FROM entity_tags WHERE tag_id = ?", (old,))
            if has_junction:
                self.db.execute(
                    "INSERT OR IGNORE INTO interaction_type_tags (interaction_type_id, tag_id) "
                    "SELECT interaction_type_id, ? FROM interaction_type_tags WHERE tag_id = ?",
                    (new, old),
                )
                self.db.execute("DELETE FROM interaction_type_tags WHERE tag_id = ?", (old,))
            self.db.execute("UPDATE interaction_types SET tag_id = ? WHERE tag_id = ?", (new, old))
        return remap

    def _groups_and_settings(self) -> None:
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS group_members (
                group_id TEXT NOT NULL,
                member_id TEXT NOT NULL,
                added_at INTEGER NOT NULL,
                PRIMARY KEY (group_id, member_id),
                FOREIGN KEY (group_id) REFERENCES entities (id) ON DELETE CASCADE,
                FOREIGN KEY (member_id) REFERENCES entities (id) ON DELETE CASCADE
            )"""
        )
        self.db.execute("CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY, value TEXT)")
        self._insert_default_settings()

    def _hidden_and_birthday(self) -> None:
        self.add_column("entities", "is_hidden", "INTEGER NOT NULL DEFAULT 0")
        self.add_column("entities", "birthday", "TEXT")

    def _birthday_reminders(self) -> None:
        self.db.execute(
            """CREATE TABLE IF NOT EXISTS birthday_reminders (
                id TEXT PRIMARY KEY,
                entity_id TEXT NOT NULL,
                birthday_date TEXT NOT NULL,
                reminder_time TEXT NOT NULL,
                days_in_advance INTEGER NOT NULL DEFAULT 0,
                is_enabled INTEGER NOT NULL DEFAULT 1,
                notification_id TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
            )"""
        )
