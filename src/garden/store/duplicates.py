"""Duplicate detection for entity creation.

A matcher turns an entity's name and details into a set of normalized
tokens. Two same-name, same-kind entities are duplicates when their token
sets intersect.
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

PHONE_RE = re.compile(r"\d{10,}")
EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


@runtime_checkable
class DuplicateMatcher(Protocol):
    def duplicate_key(self, name: str, details: str | None) -> set[str]: ...


class ContactTokenMatcher:
    """Phone-number runs of 10+ digits and e-mail addresses found in details."""

    def duplicate_key(self, name: str, details: str | None) -> set[str]:
        if not details:
            return set()
        tokens = {f"phone:{m}" for m in PHONE_RE.findall(details)}
        tokens |= {f"email:{m.lower()}" for m in EMAIL_RE.findall(details)}
        return tokens


def is_duplicate(matcher: DuplicateMatcher, new: tuple[str, str | None], existing: tuple[str, str | None]) -> bool:
    """Both (name, details) pairs must share at least one token."""
    left = matcher.duplicate_key(*new)
    if not left:
        return False
    return bool(left & matcher.duplicate_key(*existing))
