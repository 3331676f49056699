"""Record types returned by the store components."""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, field
from enum import Enum

GENERAL_CONTACT = "General Contact"
DEFAULT_COLOR = "#666666"
DEFAULT_ICON = "account-check"


class EntityKind(str, Enum):
    PERSON = "person"
    GROUP = "group"
    TOPIC = "topic"


def _get(row: sqlite3.Row, key: str, default=None):
    # Rows from older schemas may lack newer columns.
    return row[key] if key in row.keys() else default


@dataclass
class Entity:
    """A person, group or topic."""

    id: str
    name: str
    kind: str
    details: str | None = None
    image: str | None = None
    interaction_score: float = 0.0
    created_at: int = 0
    updated_at: int = 0
    payload: str | None = None
    is_hidden: bool = False
    birthday: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Entity:
        return cls(
            id=row["id"],
            name=row["name"],
            kind=row["type"],
            details=_get(row, "details"),
            image=_get(row, "image"),
            interaction_score=float(_get(row, "interaction_score") or 0),
            created_at=_get(row, "created_at", 0),
            updated_at=_get(row, "updated_at", 0),
            payload=_get(row, "payload"),
            is_hidden=bool(_get(row, "is_hidden", 0)),
            birthday=_get(row, "birthday"),
        )


@dataclass
class Interaction:
    id: str
    entity_id: str
    timestamp: int
    type: str = GENERAL_CONTACT
    type_id: str | None = None
    notes: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Interaction:
        return cls(
            id=row["id"],
            entity_id=row["entity_id"],
            timestamp=row["timestamp"],
            type=_get(row, "type") or GENERAL_CONTACT,
            type_id=_get(row, "type_id"),
            notes=_get(row, "notes"),
        )


@dataclass
class InteractionType:
    """A recordable interaction kind with its score weight.

    `tag_id` is the legacy single-tag link; `tag_ids` is the full set from
    the junction table plus the legacy link.
    """

    id: str
    name: str
    icon: str = DEFAULT_ICON
    score: float = 1
    color: str = DEFAULT_COLOR
    tag_id: str | None = None
    entity_type: str | None = None
    tag_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def entity_kinds(self) -> set[str] | None:
        """Kinds this type is restricted to, or None when unrestricted.

        Accepts a single kind or a JSON array of kinds.
        """
        if not self.entity_type:
            return None
        value = self.entity_type.strip()
        if value.startswith("["):
            try:
                kinds = json.loads(value)
            except json.JSONDecodeError:
                return {value}
            return {str(k) for k in kinds if k} or None
        return {value}

    @property
    def is_global(self) -> bool:
        return not self.tag_ids and not self.tag_id and not self.entity_type

    @classmethod
    def from_row(cls, row: sqlite3.Row, tag_ids: frozenset[str] = frozenset()) -> InteractionType:
        tag_id = _get(row, "tag_id")
        if tag_id:
            tag_ids = tag_ids | {tag_id}
        score = _get(row, "score")
        return cls(
            id=row["id"],
            name=row["name"],
            icon=_get(row, "icon") or DEFAULT_ICON,
            score=1 if score is None else score,
            color=_get(row, "color") or DEFAULT_COLOR,
            tag_id=tag_id,
            entity_type=_get(row, "entity_type"),
            tag_ids=frozenset(tag_ids),
        )


@dataclass
class Tag:
    id: str
    name: str
    count: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Tag:
        return cls(id=row["id"], name=row["name"], count=_get(row, "count", 0) or 0)


@dataclass
class Photo:
    id: str
    entity_id: str
    uri: str
    caption: str | None = None
    timestamp: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Photo:
        return cls(
            id=row["id"],
            entity_id=row["entity_id"],
            uri=row["uri"],
            caption=row["caption"],
            timestamp=row["timestamp"],
        )


@dataclass
class BirthdayReminder:
    id: str
    entity_id: str
    birthday_date: str
    reminder_time: str
    days_in_advance: int = 0
    is_enabled: bool = True
    notification_id: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> BirthdayReminder:
        return cls(
            id=row["id"],
            entity_id=row["entity_id"],
            birthday_date=row["birthday_date"],
            reminder_time=row["reminder_time"],
            days_in_advance=row["days_in_advance"],
            is_enabled=bool(row["is_enabled"]),
            notification_id=row["notification_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
