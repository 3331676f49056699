"""Default interaction types and tags, loaded from YAML.

The document has two lists:

    interactions:
      - name: Vet Visit
        icon: hospital-box
        entityTypes: null      # or [person, group]
        tags: [pet]            # or null
        score: 3
        color: "#42A5F5"
    tags:
      - name: pet
        icon: paw
        color: "#8D6E63"

A user-supplied file replaces the embedded document. A missing or broken
file falls back to the embedded one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from garden.models import DEFAULT_COLOR, DEFAULT_ICON

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_YAML = """\
interactions:
  - {name: General Contact, icon: account-check, entityTypes: null, tags: null, score: 1, color: "#666666"}
  - {name: Message, icon: message-text, entityTypes: [person], tags: null, score: 1, color: "#666666"}
  - {name: Phone Call, icon: phone, entityTypes: [person], tags: null, score: 1, color: "#666666"}
  - {name: Email, icon: email, entityTypes: [person], tags: null, score: 1, color: "#666666"}
  - {name: Coffee, icon: coffee, entityTypes: [person], tags: null, score: 2, color: "#7F5539"}
  - {name: Birthday, icon: cake, entityTypes: [person], tags: null, score: 5, color: "#FF4081"}
  - {name: Meeting, icon: account-group, entityTypes: [group], tags: null, score: 2, color: "#039BE5"}
  - {name: Birthday, icon: cake-variant, entityTypes: null, tags: [pet], score: 5, color: "#FF8A65"}
  - {name: Vet Visit, icon: hospital-box, entityTypes: null, tags: [pet], score: 3, color: "#42A5F5"}
  - {name: Grooming, icon: content-cut, entityTypes: null, tags: [pet], score: 2, color: "#66BB6A"}
  - {name: Walk, icon: walk, entityTypes: null, tags: [pet], score: 1, color: "#8D6E63"}
  - {name: Book Started, icon: book-open-page-variant, entityTypes: null, tags: [book], score: 3, color: "#26A69A"}
  - {name: Book Progress, icon: book-open-variant, entityTypes: null, tags: [book], score: 1, color: "#29B6F6"}
  - {name: Book Finished, icon: book-check, entityTypes: null, tags: [book], score: 5, color: "#5C6BC0"}
  - {name: Book Discussion, icon: forum, entityTypes: null, tags: [book], score: 2, color: "#AB47BC"}
  - {name: Family Dinner, icon: food-variant, entityTypes: null, tags: [family], score: 2, color: "#EC407A"}
  - {name: Family Call, icon: phone, entityTypes: null, tags: [family], score: 2, color: "#7E57C2"}
  - {name: Visit, icon: home, entityTypes: null, tags: [family], score: 3, color: "#26A69A"}
  - {name: Catch Up, icon: chat, entityTypes: null, tags: [friend], score: 2, color: "#FF7043"}
  - {name: Hangout, icon: glass-cocktail, entityTypes: null, tags: [friend], score: 2, color: "#5C6BC0"}
  - {name: Meal, icon: food, entityTypes: null, tags: [restaurant], score: 2, color: "#FF9800"}
  - {name: Take Out, icon: food-takeout-box, entityTypes: null, tags: [restaurant], score: 1, color: "#FFA726"}
  - {name: Cooler Talk, icon: water-cooler, entityTypes: null, tags: [coworker], score: 1, color: "#03A9F4"}
  - {name: Zoom, icon: video, entityTypes: null, tags: [coworker], score: 1, color: "#0288D1"}
tags:
  - {name: family, icon: account-group, color: "#EC407A"}
  - {name: friend, icon: account, color: "#5C6BC0"}
  - {name: pet, icon: paw, color: "#8D6E63"}
  - {name: book, icon: book, color: "#26A69A"}
  - {name: restaurant, icon: silverware-fork-knife, color: "#FF9800"}
  - {name: coworker, icon: briefcase, color: "#03A9F4"}
"""


@dataclass
class InteractionConfig:
    """One configured interaction type."""

    name: str
    icon: str = DEFAULT_ICON
    entity_types: list[str] | None = None
    tags: list[str] | None = None
    score: float = 1
    color: str = DEFAULT_COLOR


@dataclass
class TagConfig:
    name: str
    icon: str | None = None
    color: str | None = None


@dataclass
class DefaultConfig:
    interactions: list[InteractionConfig] = field(default_factory=list)
    tags: list[TagConfig] = field(default_factory=list)

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]


def _as_list(value) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    items = [str(v) for v in value if v]
    return items or None


def parse_default_config(text: str) -> DefaultConfig:
    """Parse a YAML document. Raises ValueError on an invalid structure."""
    data = yaml.safe_load(text)
    if not isinstance(data, dict) or not isinstance(data.get("interactions"), list):
        raise ValueError("default config must contain an 'interactions' list")

    interactions = []
    for item in data["interactions"]:
        if not isinstance(item, dict) or not item.get("name"):
            raise ValueError(f"invalid interaction entry: {item!r}")
        interactions.append(
            InteractionConfig(
                name=str(item["name"]),
                icon=item.get("icon") or DEFAULT_ICON,
                entity_types=_as_list(item.get("entityTypes")),
                tags=_as_list(item.get("tags")),
                score=item.get("score", 1),
                color=item.get("color") or DEFAULT_COLOR,
            )
        )

    tags = []
    for item in data.get("tags") or []:
        if isinstance(item, str):
            tags.append(TagConfig(name=item))
        elif isinstance(item, dict) and item.get("name"):
            tags.append(TagConfig(name=str(item["name"]), icon=item.get("icon"), color=item.get("color")))
        else:
            raise ValueError(f"invalid tag entry: {item!r}")

    return DefaultConfig(interactions=interactions, tags=tags)


def load_default_config(path: Path | None = None) -> DefaultConfig:
    """Load the configured YAML file, or the embedded defaults."""
    if path is not None:
        try:
            config = parse_default_config(path.read_text(encoding="utf-8"))
            logger.info(
                "Loaded %d interaction types and %d tags from %s",
                len(config.interactions),
                len(config.tags),
                path,
            )
            return config
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.warning("Cannot use default config %s (%s), using embedded defaults", path, e)
    return parse_default_config(DEFAULT_CONFIG_YAML)
