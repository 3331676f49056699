"""Structured contact payload stored on person entities.

The payload column holds a JSON document:

    {"phoneNumbers": [...], "emailAddresses": [...], "physicalAddresses": [...]}

A payload that cannot be parsed is treated as an empty document; callers
decide whether to write the repaired value back.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field

from garden.store.connection import new_id

logger = logging.getLogger(__name__)


@dataclass
class ContactValue:
    """A phone number or e-mail address."""

    value: str
    label: str = ""
    isPrimary: bool = False
    id: str = field(default_factory=new_id)

    @classmethod
    def from_dict(cls, data: dict) -> ContactValue:
        return cls(
            value=str(data.get("value") or ""),
            label=str(data.get("label") or ""),
            isPrimary=bool(data.get("isPrimary", False)),
            id=str(data.get("id") or new_id()),
        )


@dataclass
class PhysicalAddress:
    street: str = ""
    city: str = ""
    state: str = ""
    postalCode: str = ""
    country: str = ""
    label: str = ""
    isPrimary: bool = False
    formattedAddress: str | None = None
    id: str = field(default_factory=new_id)

    @classmethod
    def from_dict(cls, data: dict) -> PhysicalAddress:
        return cls(
            street=str(data.get("street") or ""),
            city=str(data.get("city") or ""),
            state=str(data.get("state") or ""),
            postalCode=str(data.get("postalCode") or ""),
            country=str(data.get("country") or ""),
            label=str(data.get("label") or ""),
            isPrimary=bool(data.get("isPrimary", False)),
            formattedAddress=data.get("formattedAddress"),
            id=str(data.get("id") or new_id()),
        )

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.street, self.city, self.state, self.postalCode)

    def fields(self) -> list[str]:
        return [
            f
            for f in (self.street, self.city, self.state, self.postalCode, self.country, self.formattedAddress)
            if f
        ]


@dataclass
class ContactData:
    phoneNumbers: list[ContactValue] = field(default_factory=list)
    emailAddresses: list[ContactValue] = field(default_factory=list)
    physicalAddresses: list[PhysicalAddress] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> ContactData:
        if not isinstance(data, dict):
            raise ValueError("contact payload must be an object")
        return cls(
            phoneNumbers=[ContactValue.from_dict(d) for d in data.get("phoneNumbers") or []],
            emailAddresses=[ContactValue.from_dict(d) for d in data.get("emailAddresses") or []],
            physicalAddresses=[
                PhysicalAddress.from_dict(d) for d in data.get("physicalAddresses") or []
            ],
        )

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def is_empty(self) -> bool:
        return not (self.phoneNumbers or self.emailAddresses or self.physicalAddresses)

    def summary(self) -> str:
        """Plain-text details line per record, kept searchable in `details`."""
        lines = [f"{p.label}: {p.value}" for p in self.phoneNumbers]
        lines += [f"{e.label}: {e.value}" for e in self.emailAddresses]
        for a in self.physicalAddresses:
            parts = " ".join(p for p in (a.street, a.city, a.state, a.postalCode, a.country) if p)
            lines.append(f"{a.label}: {parts}")
        return "\n".join(lines)

    def matches(self, term: str) -> bool:
        term = term.lower()
        if any(term in p.value.lower() for p in self.phoneNumbers):
            return True
        if any(term in e.value.lower() for e in self.emailAddresses):
            return True
        return any(term in f.lower() for a in self.physicalAddresses for f in a.fields())

    def merged_with(self, other: ContactData) -> ContactData:
        """Union of both documents, de-duplicated by value (addresses by street/city/state/postcode)."""
        return ContactData(
            phoneNumbers=_union(self.phoneNumbers, other.phoneNumbers, lambda p: p.value),
            emailAddresses=_union(self.emailAddresses, other.emailAddresses, lambda e: e.value),
            physicalAddresses=_union(self.physicalAddresses, other.physicalAddresses, lambda a: a.key),
        )


def _union(first: list, second: list, key) -> list:
    result = []
    seen = set()
    for item in [*first, *second]:
        k = key(item)
        if k in seen:
            continue
        seen.add(k)
        result.append(item)
    return result


def parse_payload(raw: str | None) -> tuple[ContactData, bool]:
    """Parse a stored payload. Returns (data, ok); ok is False when the value was unreadable."""
    if not raw:
        return ContactData(), True
    try:
        return ContactData.from_dict(json.loads(raw)), True
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Unreadable contact payload replaced with an empty one (%s)", e)
        return ContactData(), False
