"""Tags, entity-tag links and tag-themed interaction types.

Counts on the tags table are a cache of the number of entity links. They
are kept in step on every add/remove and can always be rebuilt with
``recompute_counts``. Tags are never deleted when their count drops to
zero; they stay available for reuse.
"""

from __future__ import annotations

import logging
import sqlite3

from garden.defaults import DefaultConfig
from garden.models import Tag
from garden.store.catalog import InteractionTypeCatalog
from garden.store.connection import Database, new_id, when_ready

logger = logging.getLogger(__name__)

# (keywords matched against the lowercased tag name, types to create)
KEYWORD_RULES: list[tuple[tuple[str, ...], list[tuple[str, str]]]] = [
    (("friend", "family"), [("Visit", "home"), ("Catch Up", "chat"), ("Gift", "gift")]),
    (
        ("work", "colleague", "coworker"),
        [("Meeting", "calendar"), ("Presentation", "presentation"), ("Project Discussion", "clipboard-text")],
    ),
    (
        ("client", "customer"),
        [("Sales Call", "phone-in-talk"), ("Follow-up", "arrow-right-circle"), ("Proposal", "file-document")],
    ),
    (("doctor", "medical", "health"), [("Appointment", "calendar-check"), ("Consultation", "stethoscope")]),
    (("book", "author"), [("Reading", "book-open-page-variant"), ("Discussion", "forum")]),
    (("hobby", "interest", "club"), [("Activity", "run"), ("Discussion", "forum")]),
    (("pet", "dog", "cat"), [("Vet Visit", "hospital-box"), ("Grooming", "content-cut"), ("Walk", "walk")]),
]

FALLBACK_ICON = "star"


def themed_types(tag_name: str) -> list[tuple[str, str]]:
    """(name, icon) pairs to seed for a new tag; never empty."""
    lowered = tag_name.lower()
    found: list[tuple[str, str]] = []
    names: set[str] = set()
    for keywords, types in KEYWORD_RULES:
        if any(k in lowered for k in keywords):
            for name, icon in types:
                if name not in names:
                    names.add(name)
                    found.append((name, icon))
    if not found:
        found.append((f"{tag_name} Interaction", FALLBACK_ICON))
    return found


class TagGraph:
    def __init__(self, db: Database, catalog: InteractionTypeCatalog) -> None:
        self.db = db
        self.catalog = catalog

    # ── Tags ─────────────────────────────────────────────────

    def get_tag_by_name(self, name: str) -> Tag | None:
        row = self.db.fetchone("SELECT * FROM tags WHERE name = ? COLLATE NOCASE", (name.strip(),))
        return Tag.from_row(row) if row else None

    def get_tag(self, tag_id: str) -> Tag | None:
        row = self.db.fetchone("SELECT * FROM tags WHERE id = ?", (tag_id,))
        return Tag.from_row(row) if row else None

    @when_ready(list)
    def list_tags(self, search: str | None = None) -> list[Tag]:
        if search:
            rows = self.db.fetchall(
                "SELECT * FROM tags WHERE name LIKE ? ORDER BY name COLLATE NOCASE",
                (f"%{search}%",),
            )
        else:
            rows = self.db.fetchall("SELECT * FROM tags ORDER BY name COLLATE NOCASE")
        return [Tag.from_row(row) for row in rows]

    def ensure_tag(self, name: str) -> str:
        """Look up or create a tag without seeding any interaction types."""
        name = name.strip()
        if not name:
            raise ValueError("tag name cannot be empty")
        self.db.execute(
            "INSERT OR IGNORE INTO tags (id, name, count) VALUES (?, ?, 0)", (new_id(), name)
        )
        return self.db.scalar("SELECT id FROM tags WHERE name = ? COLLATE NOCASE", (name,))

    def add_tag(self, name: str) -> str:
        """Look up or create a tag. A new tag gets its themed interaction types."""
        name = name.strip()
        if not name:
            raise ValueError("tag name cannot be empty")
        existing = self.get_tag_by_name(name)
        if existing is not None:
            return existing.id

        tag_id = new_id()
        with self.db.transaction():
            self.db.execute("INSERT INTO tags (id, name, count) VALUES (?, ?, 0)", (tag_id, name))
            for type_name, icon in themed_types(name):
                self.catalog.add(type_name, icon=icon, tag_id=tag_id, tag_ids=[tag_id])
        logger.info("Created tag %r", name)
        return tag_id

    # ── Entity links ─────────────────────────────────────────

    def add_tag_to_entity(self, entity_id: str, name: str) -> str | None:
        """Link a tag (created if needed) to an entity.

        Re-adding an existing link is a no-op. Returns the tag id, or None if
        the change was rolled back.
        """
        try:
            with self.db.transaction():
                tag_id = self.add_tag(name)
                cur = self.db.execute(
                    "INSERT OR IGNORE INTO entity_tags (entity_id, tag_id) VALUES (?, ?)",
                    (entity_id, tag_id),
                )
                if cur.rowcount > 0:
                    self.db.execute("UPDATE tags SET count = count + 1 WHERE id = ?", (tag_id,))
            return tag_id
        except sqlite3.Error:
            logger.exception("Failed to tag entity %s with %r", entity_id, name)
            return None

    def remove_tag_from_entity(self, entity_id: str, tag_id: str) -> bool:
        try:
            with self.db.transaction():
                cur = self.db.execute(
                    "DELETE FROM entity_tags WHERE entity_id = ? AND tag_id = ?",
                    (entity_id, tag_id),
                )
                if cur.rowcount > 0:
                    self.db.execute(
                        "UPDATE tags SET count = MAX(count - 1, 0) WHERE id = ?", (tag_id,)
                    )
            return True
        except sqlite3.Error:
            logger.exception("Failed to remove tag %s from entity %s", tag_id, entity_id)
            return False

    @when_ready(list)
    def get_entity_tags(self, entity_id: str) -> list[Tag]:
        rows = self.db.fetchall(
            "SELECT t.* FROM tags t JOIN entity_tags et ON t.id = et.tag_id "
            "WHERE et.entity_id = ? ORDER BY t.name COLLATE NOCASE",
            (entity_id,),
        )
        return [Tag.from_row(row) for row in rows]

    def entity_tag_ids(self, entity_id: str) -> set[str]:
        rows = self.db.fetchall("SELECT tag_id FROM entity_tags WHERE entity_id = ?", (entity_id,))
        return {row["tag_id"] for row in rows}

    def recompute_counts(self, tag_ids: set[str] | None = None) -> None:
        """Rebuild counts from the link table, for all tags or the given ones."""
        sql = "UPDATE tags SET count = (SELECT COUNT(*) FROM entity_tags et WHERE et.tag_id = tags.id)"
        if tag_ids is None:
            self.db.execute(sql)
            return
        for tag_id in tag_ids:
            self.db.execute(sql + " WHERE id = ?", (tag_id,))

    # ── Configuration ────────────────────────────────────────

    def apply_config(self, config: DefaultConfig) -> bool:
        """Replace every interaction type with the configured ones.

        Config tags are created when missing. Existing interactions are
        relinked to the new types by name. Runs as one transaction.
        """
        try:
            with self.db.transaction():
                tag_ids = {t.name.lower(): self.ensure_tag(t.name) for t in config.tags}
                self.db.execute("DELETE FROM interaction_types")
                for item in config.interactions:
                    linked = []
                    for tag_name in item.tags or []:
                        key = tag_name.lower()
                        if key not in tag_ids:
                            tag_ids[key] = self.ensure_tag(tag_name)
                        linked.append(tag_ids[key])
                    self.catalog.add(
                        item.name,
                        icon=item.icon,
                        entity_kinds=item.entity_types,
                        color=item.color,
                        score=item.score,
                        tag_ids=linked,
                    )
                self.catalog.ensure_general_contact()
                self.db.execute(
                    "UPDATE interactions SET type_id = ("
                    "  SELECT it.id FROM interaction_types it WHERE it.name = interactions.type "
                    "  ORDER BY it.rowid LIMIT 1"
                    ") WHERE type_id IS NULL"
                )
        except (sqlite3.Error, ValueError):
            logger.exception("Applying interaction config failed, previous types kept")
            return False
        logger.info("Applied %d configured interaction types", len(config.interactions))
        return True

    def regenerate_defaults(self, config: DefaultConfig) -> bool:
        """Re-create missing default tags and reset interaction types to the defaults."""
        return self.apply_config(config)

    def default_tag_ids(self, config: DefaultConfig) -> set[str]:
        ids = set()
        for name in config.tag_names:
            tag = self.get_tag_by_name(name)
            if tag is not None:
                ids.add(tag.id)
        return ids
