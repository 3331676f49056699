"""Entity persistence: people, groups and topics with their interactions,
photos, group membership, favourites and contact payload.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone

from garden.defaults import DefaultConfig
from garden.errors import EntityNotFoundError, StoreNotReadyError
from garden.models import GENERAL_CONTACT, Entity, EntityKind, Interaction, Photo
from garden.store.catalog import InteractionTypeCatalog
from garden.store.connection import Database, new_id, now_ms, when_ready
from garden.store.contacts import ContactData, ContactValue, PhysicalAddress, parse_payload
from garden.store.duplicates import ContactTokenMatcher, DuplicateMatcher, is_duplicate
from garden.store.scoring import InteractionScorer
from garden.store.settings import SettingsStore
from garden.store.tags import TagGraph

logger = logging.getLogger(__name__)

SORT_ORDERS = {
    "name": "e.name COLLATE NOCASE ASC",
    "recent_interaction": "last_interaction IS NULL, last_interaction DESC",
    "score": "e.interaction_score DESC",
    "updated": "e.updated_at DESC",
}

CLEARED_TABLES = (
    "interactions",
    "entity_photos",
    "entity_tags",
    "favorites",
    "group_members",
    "birthday_reminders",
    "interaction_type_tags",
    "tags",
    "interaction_types",
    "entities",
)


def _payload_json(payload: ContactData | dict | None) -> str | None:
    if payload is None:
        return None
    if isinstance(payload, dict):
        payload = ContactData.from_dict(payload)
    return payload.to_json()


class EntityStore:
    """CRUD over entities and everything hanging off them."""

    def __init__(
        self,
        db: Database,
        scorer: InteractionScorer,
        settings: SettingsStore,
        tags: TagGraph,
        catalog: InteractionTypeCatalog,
        defaults: DefaultConfig,
        matcher: DuplicateMatcher | None = None,
    ) -> None:
        self.db = db
        self.scorer = scorer
        self.settings = settings
        self.tags = tags
        self.catalog = catalog
        self.defaults = defaults
        self.matcher = matcher or ContactTokenMatcher()

    def _require_ready(self) -> None:
        if not self.db.ready:
            raise StoreNotReadyError("schema migrations have not run yet")

    def _require(self, entity_id: str) -> Entity:
        entity = self.get_entity(entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_id)
        return entity

    # ── Entities ─────────────────────────────────────────────

    def find_duplicate(self, name: str, kind: str, details: str | None) -> str | None:
        """Id of an existing same-name, same-kind entity sharing a contact token."""
        if not details:
            return None
        rows = self.db.fetchall(
            "SELECT id, name, details FROM entities WHERE type = ? AND name = ? ORDER BY created_at",
            (kind, name),
        )
        for row in rows:
            if is_duplicate(self.matcher, (name, details), (row["name"], row["details"])):
                return row["id"]
        return None

    def create_entity(
        self,
        name: str,
        kind: EntityKind | str,
        details: str | None = None,
        image: str | None = None,
        payload: ContactData | dict | None = None,
    ) -> str:
        """Insert an entity, or return the id of the duplicate it matches."""
        self._require_ready()
        kind = EntityKind(kind).value
        if isinstance(payload, dict):
            payload = ContactData.from_dict(payload)
        if details is None and payload is not None and not payload.is_empty():
            details = payload.summary()

        existing = self.find_duplicate(name, kind, details)
        if existing is not None:
            logger.info("Entity %r already exists as %s, not creating a duplicate", name, existing)
            return existing

        entity_id = new_id()
        now = now_ms()
        self.db.execute(
            "INSERT INTO entities (id, name, type, details, image, interaction_score, "
            "created_at, updated_at, payload) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)",
            (entity_id, name, kind, details, image, now, now, _payload_json(payload)),
        )
        return entity_id

    @when_ready(None)
    def get_entity(self, entity_id: str) -> Entity | None:
        row = self.db.fetchone("SELECT * FROM entities WHERE id = ?", (entity_id,))
        return Entity.from_row(row) if row else None

    @when_ready(list)
    def list_entities(
        self,
        kind: EntityKind | str | None = None,
        sort_by: str = "updated",
        favorites_first: bool = False,
        include_hidden: bool = True,
    ) -> list[Entity]:
        sql = (
            "SELECT e.*, MAX(i.timestamp) AS last_interaction, "
            "CASE WHEN f.entity_id IS NOT NULL THEN 1 ELSE 0 END AS is_favorite "
            "FROM entities e "
            "LEFT JOIN favorites f ON e.id = f.entity_id "
            "LEFT JOIN interactions i ON e.id = i.entity_id"
        )
        where, params = [], []
        if kind is not None:
            where.append("e.type = ?")
            params.append(EntityKind(kind).value)
        if not include_hidden:
            where.append("e.is_hidden = 0")
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " GROUP BY e.id ORDER BY "
        order = [SORT_ORDERS.get(sort_by, SORT_ORDERS["updated"])]
        if favorites_first:
            order.insert(0, "is_favorite DESC")
        sql += ", ".join(order)
        return [Entity.from_row(row) for row in self.db.fetchall(sql, params)]

    @when_ready(list)
    def search_entities(self, term: str, kind: EntityKind | str | None = None) -> list[Entity]:
        """Match on name, details, or the phone/email/address fields of the payload."""
        if not term.strip():
            return self.list_entities(kind)
        kind = EntityKind(kind).value if kind is not None else None
        pattern = f"%{term}%"
        sql = "SELECT * FROM entities WHERE (name LIKE ? OR details LIKE ?)"
        params: list = [pattern, pattern]
        if kind:
            sql += " AND type = ?"
            params.append(kind)
        found = {row["id"]: Entity.from_row(row) for row in self.db.fetchall(sql, params)}

        if kind in (None, EntityKind.PERSON.value):
            rows = self.db.fetchall(
                "SELECT * FROM entities WHERE type = ? AND payload IS NOT NULL",
                (EntityKind.PERSON.value,),
            )
            for row in rows:
                if row["id"] in found:
                    continue
                data, ok = parse_payload(row["payload"])
                if ok and data.matches(term):
                    found[row["id"]] = Entity.from_row(row)
        return sorted(found.values(), key=lambda e: e.updated_at, reverse=True)

    def update_entity(
        self,
        entity_id: str,
        *,
        name: str | None = None,
        details: str | None = None,
        image: str | None = None,
        payload: ContactData | dict | None = None,
    ) -> bool:
        """Change name/details/image/payload. The kind never changes."""
        changes: dict[str, object] = {}
        if name:
            changes["name"] = name
        if details is not None:
            changes["details"] = details
        if image is not None:
            changes["image"] = image
        if payload is not None:
            changes["payload"] = _payload_json(payload)
        if not changes:
            return False
        changes["updated_at"] = now_ms()
        assignments = ", ".join(f"{k} = ?" for k in changes)
        cur = self.db.execute(
            f"UPDATE entities SET {assignments} WHERE id = ?", (*changes.values(), entity_id)
        )
        return cur.rowcount > 0

    def delete_entity(self, entity_id: str) -> bool:
        """Delete with all dependent rows; counts of the entity's tags are rebuilt."""
        with self.db.transaction():
            tag_ids = self.tags.entity_tag_ids(entity_id)
            cur = self.db.execute("DELETE FROM entities WHERE id = ?", (entity_id,))
            self.tags.recompute_counts(tag_ids)
        return cur.rowcount > 0

    def remove_duplicates(self) -> int:
        """Delete later copies of duplicated entities. Returns how many were removed."""
        removed = 0
        for kind in EntityKind:
            processed: set[str] = set()
            rows = self.db.fetchall(
                "SELECT id, name, details FROM entities WHERE type = ? ORDER BY created_at",
                (kind.value,),
            )
            for i, row in enumerate(rows):
                if row["id"] in processed:
                    continue
                processed.add(row["id"])
                for other in rows[i + 1 :]:
                    if other["id"] in processed or other["name"] != row["name"]:
                        continue
                    if is_duplicate(
                        self.matcher,
                        (row["name"], row["details"]),
                        (other["name"], other["details"]),
                    ):
                        self.delete_entity(other["id"])
                        processed.add(other["id"])
                        removed += 1
        if removed:
            logger.info("Removed %d duplicate entities", removed)
        return removed

    # ── Interactions ─────────────────────────────────────────

    def _insert_interaction(
        self,
        entity_id: str,
        timestamp: int,
        type_name: str,
        type_id: str | None,
        notes: str | None = None,
    ) -> str:
        interaction_id = new_id()
        self.db.execute(
            "INSERT INTO interactions (id, entity_id, timestamp, type, type_id, notes) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (interaction_id, entity_id, timestamp, type_name, type_id, notes),
        )
        return interaction_id

    def _rescore(self, entity_id: str, now: int) -> float:
        settings = self.settings.get()
        return self.scorer.rescore(entity_id, settings.decay_factor, settings.decay_model, now)

    def record_interaction(
        self,
        entity_id: str,
        type_name: str = GENERAL_CONTACT,
        type_id: str | None = None,
    ) -> bool:
        """Record an interaction now and rescore.

        On a group the interaction is also recorded for every current member,
        all in one transaction. Returns False if anything was rolled back.
        """
        self._require_ready()
        entity = self.get_entity(entity_id)
        if entity is None:
            logger.warning("Cannot record interaction: no entity %s", entity_id)
            return False
        itype = self.catalog.get(type_id) if type_id else self.catalog.get_by_name(type_name)
        label = itype.name if itype else type_name
        resolved_id = itype.id if itype else None

        targets = [entity_id]
        if entity.kind == EntityKind.GROUP.value:
            targets += [m.id for m in self.get_group_members(entity_id)]

        now = now_ms()
        try:
            with self.db.transaction():
                for target in targets:
                    self._insert_interaction(target, now, label, resolved_id)
                    self._rescore(target, now)
        except sqlite3.Error:
            logger.exception("Recording %r on %s rolled back", label, entity_id)
            return False
        return True

    def add_historical_interaction(
        self,
        entity_id: str,
        timestamp: int,
        type_name: str = GENERAL_CONTACT,
        notes: str | None = None,
    ) -> str | None:
        """Record a past interaction with an explicit timestamp."""
        self._require(entity_id)
        itype = self.catalog.get_by_name(type_name)
        try:
            with self.db.transaction():
                interaction_id = self._insert_interaction(
                    entity_id, timestamp, type_name, itype.id if itype else None, notes
                )
                self._rescore(entity_id, now_ms())
        except sqlite3.Error:
            logger.exception("Adding historical interaction on %s rolled back", entity_id)
            return None
        return interaction_id

    def update_interaction(
        self,
        interaction_id: str,
        *,
        timestamp: int | None = None,
        type_name: str | None = None,
        notes: str | None = None,
    ) -> bool:
        """Correct an interaction's timestamp, type or notes, then rescore its entity."""
        current = self.get_interaction(interaction_id)
        if current is None:
            return False
        changes: dict[str, object] = {}
        if timestamp is not None:
            changes["timestamp"] = timestamp
        if type_name is not None:
            itype = self.catalog.get_by_name(type_name)
            changes["type"] = type_name
            changes["type_id"] = itype.id if itype else None
        if notes is not None:
            changes["notes"] = notes
        if not changes:
            return False
        assignments = ", ".join(f"{k} = ?" for k in changes)
        with self.db.transaction():
            self.db.execute(
                f"UPDATE interactions SET {assignments} WHERE id = ?",
                (*changes.values(), interaction_id),
            )
            settings = self.settings.get()
            self.scorer.rescore(
                current.entity_id, settings.decay_factor, settings.decay_model, touch=False
            )
        return True

    @when_ready(None)
    def get_interaction(self, interaction_id: str) -> Interaction | None:
        row = self.db.fetchone("SELECT * FROM interactions WHERE id = ?", (interaction_id,))
        return Interaction.from_row(row) if row else None

    @when_ready(list)
    def get_interaction_logs(self, entity_id: str, limit: int = 50, offset: int = 0) -> list[Interaction]:
        rows = self.db.fetchall(
            "SELECT * FROM interactions WHERE entity_id = ? "
            "ORDER BY timestamp DESC LIMIT ? OFFSET ?",
            (entity_id, limit, offset),
        )
        return [Interaction.from_row(row) for row in rows]

    @when_ready(0)
    def interaction_count(self, entity_id: str) -> int:
        return self.db.scalar(
            "SELECT COUNT(*) FROM interactions WHERE entity_id = ?", (entity_id,), default=0
        )

    def _timestamps_since(self, entity_id: str, since: int) -> list[datetime]:
        rows = self.db.fetchall(
            "SELECT timestamp FROM interactions WHERE entity_id = ? AND timestamp >= ? "
            "ORDER BY timestamp",
            (entity_id, since),
        )
        return [datetime.fromtimestamp(row["timestamp"] / 1000, tz=timezone.utc) for row in rows]

    @when_ready(list)
    def interaction_counts_by_day(
        self, entity_id: str, days: int = 30, now: int | None = None
    ) -> list[tuple[str, int]]:
        """(YYYY-MM-DD, count) for each of the last `days` UTC days, oldest first."""
        now = now if now is not None else now_ms()
        today = datetime.fromtimestamp(now / 1000, tz=timezone.utc).date()
        counts = {(today - timedelta(days=i)).isoformat(): 0 for i in range(days)}
        start = datetime.combine(today - timedelta(days=days - 1), datetime.min.time(), timezone.utc)
        for moment in self._timestamps_since(entity_id, int(start.timestamp() * 1000)):
            key = moment.date().isoformat()
            if key in counts:
                counts[key] += 1
        return sorted(counts.items())

    @when_ready(list)
    def interaction_counts_by_month(
        self, entity_id: str, months: int = 12, now: int | None = None
    ) -> list[tuple[str, int]]:
        """(YYYY-MM, count) for each of the last `months` UTC months, oldest first."""
        now = now if now is not None else now_ms()
        current = datetime.fromtimestamp(now / 1000, tz=timezone.utc)
        year, month = current.year, current.month
        counts: dict[str, int] = {}
        for _ in range(months):
            counts[f"{year:04d}-{month:02d}"] = 0
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        # (year, month) now points one month before the window
        month += 1
        if month == 13:
            year, month = year + 1, 1
        start = datetime(year, month, 1, tzinfo=timezone.utc)
        for moment in self._timestamps_since(entity_id, int(start.timestamp() * 1000)):
            key = f"{moment.year:04d}-{moment.month:02d}"
            if key in counts:
                counts[key] += 1
        return sorted(counts.items())

    # ── Merge ────────────────────────────────────────────────

    def merge_entities(self, source_id: str, target_id: str) -> bool:
        """Fold source into target and delete source.

        Both must exist and share a kind. Interactions, photos, tag links and
        group memberships move to the target; contact payloads are unioned.
        Returns False (with nothing changed) on any failure.
        """
        if source_id == target_id:
            return False
        source = self.get_entity(source_id)
        target = self.get_entity(target_id)
        if source is None or target is None:
            logger.warning("Cannot merge %s into %s: entity missing", source_id, target_id)
            return False
        if source.kind != target.kind:
            logger.warning("Cannot merge a %s into a %s", source.kind, target.kind)
            return False

        try:
            with self.db.transaction():
                affected = self.tags.entity_tag_ids(source_id)
                self.db.execute(
                    "UPDATE interactions SET entity_id = ? WHERE entity_id = ?", (target_id, source_id)
                )
                self.db.execute(
                    "UPDATE entity_photos SET entity_id = ? WHERE entity_id = ?", (target_id, source_id)
                )
                self.db.execute(
                    "INSERT OR IGNORE INTO entity_tags (entity_id, tag_id) "
                    "SELECT ?, tag_id FROM entity_tags WHERE entity_id = ?",
                    (target_id, source_id),
                )
                self.db.execute(
                    "INSERT OR IGNORE INTO group_members (group_id, member_id, added_at) "
                    "SELECT group_id, ?, added_at FROM group_members "
                    "WHERE member_id = ? AND group_id != ?",
                    (target_id, source_id, target_id),
                )
                self.db.execute(
                    "INSERT OR IGNORE INTO group_members (group_id, member_id, added_at) "
                    "SELECT ?, member_id, added_at FROM group_members "
                    "WHERE group_id = ? AND member_id != ?",
                    (target_id, source_id, target_id),
                )

                if source.payload or target.payload:
                    source_data, _ = parse_payload(source.payload)
                    target_data, _ = parse_payload(target.payload)
                    merged = target_data.merged_with(source_data)
                    self.db.execute(
                        "UPDATE entities SET payload = ?, details = ? WHERE id = ?",
                        (merged.to_json(), merged.summary() or target.details, target_id),
                    )

                self.db.execute("DELETE FROM entities WHERE id = ?", (source_id,))
                self.tags.recompute_counts(affected)
                self._rescore(target_id, now_ms())
        except sqlite3.Error:
            logger.exception("Merging %s into %s rolled back", source_id, target_id)
            return False
        logger.info("Merged %s into %s", source_id, target_id)
        return True

    # ── Contact payload ──────────────────────────────────────

    def get_contact_data(self, entity_id: str) -> ContactData | None:
        """Parsed payload. An unreadable payload is replaced by an empty one."""
        entity = self.get_entity(entity_id)
        if entity is None:
            return None
        data, ok = parse_payload(entity.payload)
        if not ok:
            logger.warning("Repaired contact payload of %s", entity_id)
            self.db.execute(
                "UPDATE entities SET payload = ? WHERE id = ?", (data.to_json(), entity_id)
            )
        return data

    def update_contact_data(self, entity_id: str, data: ContactData) -> bool:
        """Store the payload of a person and regenerate its details summary."""
        entity = self.get_entity(entity_id)
        if entity is None or entity.kind != EntityKind.PERSON.value:
            logger.warning("Contact data only applies to existing persons (%s)", entity_id)
            return False
        cur = self.db.execute(
            "UPDATE entities SET payload = ?, details = ?, updated_at = ? WHERE id = ?",
            (data.to_json(), data.summary() or entity.details, now_ms(), entity_id),
        )
        return cur.rowcount > 0

    def add_phone_number(
        self, entity_id: str, value: str, label: str = "Mobile", primary: bool = False
    ) -> str | None:
        data = self.get_contact_data(entity_id)
        if data is None:
            return None
        record = ContactValue(value=value, label=label, isPrimary=primary)
        data.phoneNumbers.append(record)
        return record.id if self.update_contact_data(entity_id, data) else None

    def add_email_address(
        self, entity_id: str, value: str, label: str = "Personal", primary: bool = False
    ) -> str | None:
        data = self.get_contact_data(entity_id)
        if data is None:
            return None
        record = ContactValue(value=value, label=label, isPrimary=primary)
        data.emailAddresses.append(record)
        return record.id if self.update_contact_data(entity_id, data) else None

    def add_physical_address(self, entity_id: str, address: PhysicalAddress | dict) -> str | None:
        data = self.get_contact_data(entity_id)
        if data is None:
            return None
        if isinstance(address, dict):
            address = PhysicalAddress.from_dict(address)
        data.physicalAddresses.append(address)
        return address.id if self.update_contact_data(entity_id, data) else None

    def remove_contact_field(self, entity_id: str, field_id: str) -> bool:
        """Drop the phone, e-mail or address record with this id."""
        data = self.get_contact_data(entity_id)
        if data is None:
            return False
        before = len(data.phoneNumbers) + len(data.emailAddresses) + len(data.physicalAddresses)
        data.phoneNumbers = [p for p in data.phoneNumbers if p.id != field_id]
        data.emailAddresses = [e for e in data.emailAddresses if e.id != field_id]
        data.physicalAddresses = [a for a in data.physicalAddresses if a.id != field_id]
        after = len(data.phoneNumbers) + len(data.emailAddresses) + len(data.physicalAddresses)
        if after == before:
            return False
        return self.update_contact_data(entity_id, data)

    # ── Photos ───────────────────────────────────────────────

    def add_photo(self, entity_id: str, uri: str, caption: str | None = None) -> str:
        self._require(entity_id)
        photo_id = new_id()
        self.db.execute(
            "INSERT INTO entity_photos (id, entity_id, uri, caption, timestamp) VALUES (?, ?, ?, ?, ?)",
            (photo_id, entity_id, uri, caption, now_ms()),
        )
        return photo_id

    @when_ready(list)
    def get_photos(self, entity_id: str, limit: int | None = None, offset: int = 0) -> list[Photo]:
        sql = "SELECT * FROM entity_photos WHERE entity_id = ? ORDER BY timestamp DESC"
        params: list = [entity_id]
        if limit is not None:
            sql += " LIMIT ? OFFSET ?"
            params += [limit, offset]
        return [Photo.from_row(row) for row in self.db.fetchall(sql, params)]

    @when_ready(0)
    def photo_count(self, entity_id: str) -> int:
        return self.db.scalar(
            "SELECT COUNT(*) FROM entity_photos WHERE entity_id = ?", (entity_id,), default=0
        )

    def delete_photo(self, photo_id: str) -> bool:
        cur = self.db.execute("DELETE FROM entity_photos WHERE id = ?", (photo_id,))
        return cur.rowcount > 0

    # ── Groups ───────────────────────────────────────────────

    def add_group_member(self, group_id: str, member_id: str) -> bool:
        group = self.get_entity(group_id)
        if group is None or group.kind != EntityKind.GROUP.value:
            logger.warning("%s is not a group", group_id)
            return False
        if member_id == group_id or self.get_entity(member_id) is None:
            logger.warning("Cannot add %s to group %s", member_id, group_id)
            return False
        self.db.execute(
            "INSERT OR IGNORE INTO group_members (group_id, member_id, added_at) VALUES (?, ?, ?)",
            (group_id, member_id, now_ms()),
        )
        return True

    def remove_group_member(self, group_id: str, member_id: str) -> bool:
        cur = self.db.execute(
            "DELETE FROM group_members WHERE group_id = ? AND member_id = ?", (group_id, member_id)
        )
        return cur.rowcount > 0

    def set_group_members(self, group_id: str, member_ids: Iterable[str]) -> bool:
        """Replace the group's membership in one transaction."""
        now = now_ms()
        try:
            with self.db.transaction():
                self.db.execute("DELETE FROM group_members WHERE group_id = ?", (group_id,))
                for member_id in dict.fromkeys(member_ids):
                    if member_id == group_id:
                        continue
                    self.db.execute(
                        "INSERT INTO group_members (group_id, member_id, added_at) VALUES (?, ?, ?)",
                        (group_id, member_id, now),
                    )
        except sqlite3.Error:
            logger.exception("Replacing members of %s rolled back", group_id)
            return False
        return True

    @when_ready(list)
    def get_group_members(self, group_id: str) -> list[Entity]:
        rows = self.db.fetchall(
            "SELECT e.* FROM entities e JOIN group_members gm ON e.id = gm.member_id "
            "WHERE gm.group_id = ? ORDER BY e.name COLLATE NOCASE",
            (group_id,),
        )
        return [Entity.from_row(row) for row in rows]

    @when_ready(list)
    def get_entity_groups(self, entity_id: str) -> list[Entity]:
        rows = self.db.fetchall(
            "SELECT e.* FROM entities e JOIN group_members gm ON e.id = gm.group_id "
            "WHERE gm.member_id = ? ORDER BY e.name COLLATE NOCASE",
            (entity_id,),
        )
        return [Entity.from_row(row) for row in rows]

    # ── Favourites and hidden flag ───────────────────────────

    def add_favorite(self, entity_id: str) -> bool:
        if self.get_entity(entity_id) is None:
            return False
        self.db.execute(
            "INSERT OR IGNORE INTO favorites (entity_id, added_at) VALUES (?, ?)",
            (entity_id, now_ms()),
        )
        return True

    def remove_favorite(self, entity_id: str) -> bool:
        self.db.execute("DELETE FROM favorites WHERE entity_id = ?", (entity_id,))
        return True

    def toggle_favorite(self, entity_id: str) -> bool:
        """Flip the favourite flag. Returns the new state."""
        if self.is_favorite(entity_id):
            self.remove_favorite(entity_id)
            return False
        return self.add_favorite(entity_id)

    @when_ready(False)
    def is_favorite(self, entity_id: str) -> bool:
        return self.db.fetchone("SELECT 1 FROM favorites WHERE entity_id = ?", (entity_id,)) is not None

    @when_ready(list)
    def get_favorites(self) -> list[Entity]:
        rows = self.db.fetchall(
            "SELECT e.* FROM entities e JOIN favorites f ON e.id = f.entity_id "
            "ORDER BY f.added_at DESC"
        )
        return [Entity.from_row(row) for row in rows]

    def set_hidden(self, entity_id: str, hidden: bool) -> bool:
        cur = self.db.execute(
            "UPDATE entities SET is_hidden = ? WHERE id = ?", (1 if hidden else 0, entity_id)
        )
        return cur.rowcount > 0

    def toggle_hidden(self, entity_id: str) -> bool:
        """Flip the hidden flag. Returns the new state."""
        entity = self._require(entity_id)
        self.set_hidden(entity_id, not entity.is_hidden)
        return not entity.is_hidden

    @when_ready(False)
    def is_hidden(self, entity_id: str) -> bool:
        return bool(self.db.scalar("SELECT is_hidden FROM entities WHERE id = ?", (entity_id,), default=0))

    @when_ready(list)
    def get_hidden_entities(self) -> list[Entity]:
        rows = self.db.fetchall("SELECT * FROM entities WHERE is_hidden = 1 ORDER BY name COLLATE NOCASE")
        return [Entity.from_row(row) for row in rows]

    # ── Maintenance ──────────────────────────────────────────

    def clear_all_data(self) -> dict[str, int]:
        """Delete every row of user data and re-seed the default types and tags.

        Returns the number of rows removed per table.
        """
        counts: dict[str, int] = {}
        with self.db.transaction():
            for table in CLEARED_TABLES:
                if self.db.table_exists(table):
                    counts[table] = self.db.execute(f"DELETE FROM {table}").rowcount
            if not self.tags.apply_config(self.defaults):
                raise sqlite3.OperationalError("re-seeding default interaction types failed")
        logger.info("Cleared all data: %s", counts)
        return counts
