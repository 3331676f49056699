"""Interaction type catalogue: CRUD plus tag and entity-kind links."""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from collections.abc import Iterable

from garden.models import DEFAULT_COLOR, DEFAULT_ICON, GENERAL_CONTACT, InteractionType, Tag
from garden.store.connection import Database, new_id, when_ready

logger = logging.getLogger(__name__)


def encode_entity_kinds(kinds: Iterable[str] | str | None) -> str | None:
    """Store one kind as-is and several as a JSON array."""
    if kinds is None:
        return None
    if isinstance(kinds, str):
        return kinds or None
    kinds = [k for k in kinds if k]
    if not kinds:
        return None
    if len(kinds) == 1:
        return kinds[0]
    return json.dumps(kinds)


class InteractionTypeCatalog:
    def __init__(self, db: Database) -> None:
        self.db = db

    def _junction(self) -> dict[str, set[str]]:
        links: dict[str, set[str]] = defaultdict(set)
        if not self.db.table_exists("interaction_type_tags"):
            return links
        for row in self.db.fetchall("SELECT interaction_type_id, tag_id FROM interaction_type_tags"):
            links[row["interaction_type_id"]].add(row["tag_id"])
        return links

    @when_ready(list)
    def list(self) -> list[InteractionType]:
        return self.load_all()

    def load_all(self) -> list[InteractionType]:
        """Unguarded listing, usable while migrations are still running."""
        links = self._junction()
        rows = self.db.fetchall("SELECT * FROM interaction_types ORDER BY name COLLATE NOCASE")
        return [InteractionType.from_row(row, frozenset(links.get(row["id"], ()))) for row in rows]

    def get(self, type_id: str) -> InteractionType | None:
        row = self.db.fetchone("SELECT * FROM interaction_types WHERE id = ?", (type_id,))
        if row is None:
            return None
        return InteractionType.from_row(row, frozenset(self.tags_for(type_id)))

    def get_by_name(self, name: str) -> InteractionType | None:
        row = self.db.fetchone(
            "SELECT * FROM interaction_types WHERE name = ? ORDER BY rowid LIMIT 1", (name,)
        )
        if row is None:
            return None
        return InteractionType.from_row(row, frozenset(self.tags_for(row["id"])))

    def count(self) -> int:
        return self.db.scalar("SELECT COUNT(*) FROM interaction_types", default=0)

    def add(
        self,
        name: str,
        icon: str = DEFAULT_ICON,
        tag_id: str | None = None,
        entity_kinds: Iterable[str] | str | None = None,
        color: str = DEFAULT_COLOR,
        score: float = 1,
        tag_ids: Iterable[str] = (),
    ) -> str:
        type_id = new_id()
        with self.db.transaction():
            self.db.execute(
                "INSERT INTO interaction_types (id, name, tag_id, icon, entity_type, color, score) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (type_id, name, tag_id, icon, encode_entity_kinds(entity_kinds), color, score),
            )
            for linked in tag_ids:
                self.db.execute(
                    "INSERT OR IGNORE INTO interaction_type_tags (interaction_type_id, tag_id) "
                    "VALUES (?, ?)",
                    (type_id, linked),
                )
        return type_id

    def update(
        self,
        type_id: str,
        *,
        name: str | None = None,
        icon: str | None = None,
        color: str | None = None,
        score: float | None = None,
    ) -> bool:
        fields = {"name": name, "icon": icon, "color": color, "score": score}
        changes = {k: v for k, v in fields.items() if v is not None}
        if not changes:
            return False
        assignments = ", ".join(f"{k} = ?" for k in changes)
        cur = self.db.execute(
            f"UPDATE interaction_types SET {assignments} WHERE id = ?",
            (*changes.values(), type_id),
        )
        return cur.rowcount > 0

    def update_score(self, type_id: str, score: float) -> bool:
        return self.update(type_id, score=score)

    def delete(self, type_id: str) -> bool:
        cur = self.db.execute("DELETE FROM interaction_types WHERE id = ?", (type_id,))
        return cur.rowcount > 0

    def set_tags(self, type_id: str, tag_ids: Iterable[str]) -> None:
        """Replace the type's tag set. The legacy single link is cleared."""
        with self.db.transaction():
            self.db.execute(
                "DELETE FROM interaction_type_tags WHERE interaction_type_id = ?", (type_id,)
            )
            self.db.execute("UPDATE interaction_types SET tag_id = NULL WHERE id = ?", (type_id,))
            for tag_id in tag_ids:
                if tag_id:
                    self.db.execute(
                        "INSERT OR IGNORE INTO interaction_type_tags "
                        "(interaction_type_id, tag_id) VALUES (?, ?)",
                        (type_id, tag_id),
                    )

    def set_entity_kind(self, type_id: str, kinds: Iterable[str] | str | None) -> None:
        self.db.execute(
            "UPDATE interaction_types SET entity_type = ? WHERE id = ?",
            (encode_entity_kinds(kinds), type_id),
        )

    def tags_for(self, type_id: str) -> set[str]:
        ids = {
            row["tag_id"]
            for row in self.db.fetchall(
                "SELECT tag_id FROM interaction_type_tags WHERE interaction_type_id = ?",
                (type_id,),
            )
        }
        legacy = self.db.scalar("SELECT tag_id FROM interaction_types WHERE id = ?", (type_id,))
        if legacy:
            ids.add(legacy)
        return ids

    def tag_records_for(self, type_id: str) -> list[Tag]:
        ids = self.tags_for(type_id)
        if not ids:
            return []
        marks = ", ".join("?" for _ in ids)
        rows = self.db.fetchall(
            f"SELECT * FROM tags WHERE id IN ({marks}) ORDER BY name COLLATE NOCASE", tuple(ids)
        )
        return [Tag.from_row(row) for row in rows]

    def ensure_general_contact(self) -> str:
        """Make sure an unrestricted General Contact type exists."""
        row = self.db.fetchone(
            "SELECT id FROM interaction_types WHERE name = ? AND tag_id IS NULL "
            "AND entity_type IS NULL",
            (GENERAL_CONTACT,),
        )
        if row is not None:
            return row["id"]
        logger.info("Creating missing %s interaction type", GENERAL_CONTACT)
        return self.add(GENERAL_CONTACT, icon=DEFAULT_ICON)
