"""Whole-dataset export and import.

The plain document is one JSON object::

    {"version": 1, "timestamp": <ms>, "entities": [...], "interactions": [...],
     "photos": [...], "tags": [...], "entityTags": [...],
     "interactionTypes": [...], "interactionTypeTags": [...],
     "groupMembers": [...], "favorites": [...]}

Records are table rows keyed by column name. Photo records carry the image
bytes inline as base64 under ``imageData``. Import replaces all user data
in one transaction; default tags survive the wipe and backup tags with the
same name are mapped onto them.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from pathlib import Path
from typing import Any

from garden.backup.envelope import decrypt, encrypt
from garden.backup.passphrase import validate_passphrase
from garden.defaults import DefaultConfig
from garden.errors import BackupFormatError, BackupImportError
from garden.models import EntityKind
from garden.store.connection import Database, new_id, now_ms
from garden.store.tags import TagGraph

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1

# Document key -> table, in insert order.
COLLECTIONS = {
    "entities": "entities",
    "tags": "tags",
    "entityTags": "entity_tags",
    "interactionTypes": "interaction_types",
    "interactionTypeTags": "interaction_type_tags",
    "interactions": "interactions",
    "photos": "entity_photos",
    "groupMembers": "group_members",
    "favorites": "favorites",
}

WIPED_TABLES = (
    "interactions",
    "entity_photos",
    "entity_tags",
    "favorites",
    "group_members",
    "birthday_reminders",
    "interaction_type_tags",
    "interaction_types",
    "entities",
)

# Record fields that hold row ids; each must be a string when present.
ID_FIELDS = ("id", "entity_id", "tag_id", "interaction_type_id", "type_id", "group_id", "member_id")


def _file_path(uri: str) -> Path:
    return Path(uri[len("file://"):] if uri.startswith("file://") else uri)


class BackupCodec:
    """Serializes the dataset to a document and restores it."""

    def __init__(
        self,
        db: Database,
        tags: TagGraph,
        defaults: DefaultConfig,
        photos_dir: Path,
    ) -> None:
        self.db = db
        self.tags = tags
        self.defaults = defaults
        self.photos_dir = photos_dir

    # ── Export ───────────────────────────────────────────────

    def _rows(self, table: str) -> list[dict[str, Any]]:
        if not self.db.table_exists(table):
            return []
        return [dict(row) for row in self.db.fetchall(f"SELECT * FROM {table}")]

    def _inline_photo(self, photo: dict[str, Any]) -> dict[str, Any]:
        path = _file_path(photo.get("uri") or "")
        try:
            photo["imageData"] = base64.b64encode(path.read_bytes()).decode("ascii")
        except OSError as e:
            logger.warning("Photo %s not readable (%s), exported without image", photo.get("id"), e)
            photo["imageData"] = ""
        return photo

    def export_document(self, timestamp: int | None = None) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "version": FORMAT_VERSION,
            "timestamp": timestamp if timestamp is not None else now_ms(),
        }
        for key, table in COLLECTIONS.items():
            doc[key] = self._rows(table)
        doc["photos"] = [self._inline_photo(p) for p in doc["photos"]]
        logger.info(
            "Exported %d entities, %d interactions, %d photos",
            len(doc["entities"]),
            len(doc["interactions"]),
            len(doc["photos"]),
        )
        return doc

    def export_plain(self) -> str:
        return json.dumps(self.export_document(), ensure_ascii=False)

    def export_encrypted(self, passphrase: str) -> str:
        validate_passphrase(passphrase)
        return encrypt(self.export_plain(), passphrase)

    # ── Import ───────────────────────────────────────────────

    def import_plain(self, text: str) -> dict[str, int]:
        try:
            doc = json.loads(text)
        except ValueError as e:
            raise BackupFormatError("backup document is not valid JSON") from e
        return self.import_document(doc)

    def import_encrypted(self, text: str, passphrase: str) -> dict[str, int]:
        return self.import_document(json.loads(decrypt(text, passphrase)))

    def recover_emergency(self, text: str, passphrase: str) -> dict[str, int]:
        """Import without checking the integrity tag. Operator use only."""
        logger.warning("Emergency recovery: integrity tag is not checked")
        return self.import_document(json.loads(decrypt(text, passphrase, verify=False)))

    def validate_document(self, doc: Any) -> None:
        if not isinstance(doc, dict):
            raise BackupFormatError("backup document must be a JSON object")
        if doc.get("version") != FORMAT_VERSION:
            raise BackupFormatError(f"unsupported backup version {doc.get('version')!r}")
        entities = doc.get("entities")
        if not isinstance(entities, list) or not entities:
            raise BackupFormatError("backup contains no entities")
        for key in COLLECTIONS:
            value = doc.get(key, [])
            if not isinstance(value, list) or not all(isinstance(r, dict) for r in value):
                raise BackupFormatError(f"backup collection '{key}' must be a list of objects")
            for record in value:
                for field in ID_FIELDS:
                    if record.get(field) is not None and not isinstance(record[field], str):
                        raise BackupFormatError(f"'{key}' record has a non-string {field}")
        for record in entities:
            try:
                EntityKind(record.get("type"))
            except (ValueError, TypeError) as e:
                raise BackupFormatError(
                    f"entity {record.get('id')} has unknown kind {record.get('type')!r}"
                ) from e

    def import_document(self, doc: Any) -> dict[str, int]:
        """Replace all user data with the document's. Returns rows imported per collection.

        Any failure rolls back the database and removes photo files written so
        far. After a successful import, photo files of the replaced data that
        live under photos_dir are removed.
        """
        self.validate_document(doc)
        written: list[Path] = []
        replaced: list[Path] = []
        try:
            with self.db.transaction():
                counts = self._restore(doc, written, replaced)
        except BackupFormatError:
            self._discard(written)
            raise
        except Exception as e:
            self._discard(written)
            logger.exception("Import rolled back, previous data kept")
            raise BackupImportError(f"import failed: {e}") from e
        self._prune(replaced)
        logger.info("Imported backup: %s", counts)
        return counts

    def _discard(self, written: list[Path]) -> None:
        for path in written:
            path.unlink(missing_ok=True)

    def _prune(self, replaced: list[Path]) -> None:
        """Unlink replaced photo files that sit under photos_dir and are no longer referenced."""
        root = self.photos_dir.resolve()
        rows = self.db.fetchall("SELECT uri FROM entity_photos")
        in_use = {_file_path(row["uri"]).resolve() for row in rows if row["uri"]}
        removed = 0
        for path in replaced:
            path = path.resolve()
            if path in in_use or not path.is_relative_to(root):
                continue
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove replaced photo %s: %s", path, e)
                continue
            removed += 1
        if removed:
            logger.info("Removed %d photo files of the replaced data", removed)

    def _insert(self, table: str, record: dict[str, Any], columns: set[str]) -> bool:
        values = {k: v for k, v in record.items() if k in columns}
        if not values:
            return False
        names = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        cur = self.db.execute(
            f"INSERT OR IGNORE INTO {table} ({names}) VALUES ({marks})", tuple(values.values())
        )
        return cur.rowcount > 0

    def _wipe(self, replaced: list[Path]) -> None:
        replaced.extend(
            _file_path(row["uri"]) for row in self.db.fetchall("SELECT uri FROM entity_photos") if row["uri"]
        )
        keep = self.tags.default_tag_ids(self.defaults)
        for table in WIPED_TABLES:
            self.db.execute(f"DELETE FROM {table}")
        if keep:
            marks = ", ".join("?" for _ in keep)
            self.db.execute(f"DELETE FROM tags WHERE id NOT IN ({marks})", tuple(keep))
        else:
            self.db.execute("DELETE FROM tags")
        self.db.execute("UPDATE tags SET count = 0")

    def _restore(
        self, doc: dict[str, Any], written: list[Path], replaced: list[Path]
    ) -> dict[str, int]:
        columns = {table: self.db.columns(table) for table in COLLECTIONS.values()}
        counts = dict.fromkeys(COLLECTIONS, 0)
        now = now_ms()
        self._wipe(replaced)

        entity_ids = set()
        for record in doc["entities"]:
            record = {"created_at": now, "updated_at": now, **record}
            if not record.get("id") or not record.get("name") or not record.get("type"):
                raise BackupFormatError("entity record needs id, name and type")
            if self._insert("entities", record, columns["entities"]):
                entity_ids.add(record["id"])
                counts["entities"] += 1

        tag_map: dict[str, str] = {}
        for record in doc.get("tags", []):
            name = (record.get("name") or "").strip()
            if not record.get("id") or not name:
                continue
            existing = self.tags.get_tag_by_name(name)
            if existing is not None:
                tag_map[record["id"]] = existing.id
                continue
            self._insert("tags", {**record, "name": name, "count": 0}, columns["tags"])
            tag_map[record["id"]] = record["id"]
            counts["tags"] += 1

        for record in doc.get("entityTags", []):
            tag_id = tag_map.get(record.get("tag_id"))
            if tag_id and record.get("entity_id") in entity_ids:
                if self._insert("entity_tags", {**record, "tag_id": tag_id}, columns["entity_tags"]):
                    counts["entityTags"] += 1

        type_ids = set()
        for record in doc.get("interactionTypes", []):
            if not record.get("id") or not record.get("name"):
                continue
            record = {"icon": "account-check", **record}
            record["tag_id"] = tag_map.get(record.get("tag_id"))
            if self._insert("interaction_types", record, columns["interaction_types"]):
                type_ids.add(record["id"])
                counts["interactionTypes"] += 1
        self.tags.catalog.ensure_general_contact()

        for record in doc.get("interactionTypeTags", []):
            tag_id = tag_map.get(record.get("tag_id"))
            if tag_id and record.get("interaction_type_id") in type_ids:
                if self._insert(
                    "interaction_type_tags", {**record, "tag_id": tag_id}, columns["interaction_type_tags"]
                ):
                    counts["interactionTypeTags"] += 1

        for record in doc.get("interactions", []):
            if record.get("entity_id") not in entity_ids:
                continue
            if record.get("type_id") not in type_ids:
                record = {**record, "type_id": None}
            if self._insert("interactions", record, columns["interactions"]):
                counts["interactions"] += 1

        for record in doc.get("photos", []):
            if not record.get("id") or record.get("entity_id") not in entity_ids:
                continue
            record = self._materialize_photo(dict(record), written)
            if self._insert("entity_photos", record, columns["entity_photos"]):
                counts["photos"] += 1

        for record in doc.get("groupMembers", []):
            if record.get("group_id") in entity_ids and record.get("member_id") in entity_ids:
                record = {"added_at": now, **record}
                if self._insert("group_members", record, columns["group_members"]):
                    counts["groupMembers"] += 1

        for record in doc.get("favorites", []):
            if record.get("entity_id") in entity_ids:
                record = {"added_at": now, **record}
                if self._insert("favorites", record, columns["favorites"]):
                    counts["favorites"] += 1

        self.tags.recompute_counts()
        return counts

    def _materialize_photo(self, record: dict[str, Any], written: list[Path]) -> dict[str, Any]:
        """Write inlined image bytes under photos_dir and point the uri at them."""
        data = record.pop("imageData", "") or ""
        record.setdefault("timestamp", now_ms())
        if not data:
            return record
        try:
            blob = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise BackupFormatError(f"photo {record.get('id')} has invalid base64 data") from e
        suffix = _file_path(record.get("uri") or "").suffix or ".jpg"
        self.photos_dir.mkdir(parents=True, exist_ok=True)
        # A fresh name per import, so a rollback never removes a file the old data uses.
        path = self.photos_dir / f"{record['id']}_{new_id()}{suffix}"
        path.write_bytes(blob)
        written.append(path)
        record["uri"] = str(path)
        return record
