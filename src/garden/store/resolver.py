"""Which interaction types can be recorded against an entity.

A type is eligible for an entity when it is global (no tag and no kind
restriction), when its kind restriction names the entity's kind, or when
it is linked to one of the entity's tags. Topics only see General Contact
and their own tag types. Groups see their own matches plus the union of
their members' eligible types; member groups are skipped so the walk never
goes deeper than one level.
"""

from __future__ import annotations

import logging

from garden.models import GENERAL_CONTACT, Entity, EntityKind, InteractionType
from garden.store.catalog import InteractionTypeCatalog
from garden.store.connection import Database, when_ready
from garden.store.entities import EntityStore
from garden.store.tags import TagGraph

logger = logging.getLogger(__name__)


def is_eligible(itype: InteractionType, kind: str, tag_ids: set[str]) -> bool:
    if itype.is_global:
        return True
    kinds = itype.entity_kinds
    if kinds is not None and kind in kinds:
        return True
    return bool(itype.tag_ids & tag_ids)


class InteractionTypeResolver:
    def __init__(
        self,
        db: Database,
        entities: EntityStore,
        tags: TagGraph,
        catalog: InteractionTypeCatalog,
    ) -> None:
        self.db = db
        self.entities = entities
        self.tags = tags
        self.catalog = catalog

    def _direct(self, entity: Entity, types: list[InteractionType]) -> list[InteractionType]:
        tag_ids = self.tags.entity_tag_ids(entity.id)
        if entity.kind == EntityKind.TOPIC.value:
            return [
                t
                for t in types
                if (t.is_global and t.name == GENERAL_CONTACT) or (t.tag_ids & tag_ids)
            ]
        return [t for t in types if is_eligible(t, entity.kind, tag_ids)]

    @when_ready(list)
    def eligible_types(self, entity_id: str) -> list[InteractionType]:
        """Eligible types, unique by id and sorted by name."""
        entity = self.entities.get_entity(entity_id)
        if entity is None:
            return []
        types = self.catalog.load_all()
        found = {t.id: t for t in self._direct(entity, types)}

        if entity.kind == EntityKind.GROUP.value:
            for member in self.entities.get_group_members(entity_id):
                if member.kind == EntityKind.GROUP.value:
                    logger.debug("Skipping nested group %s in %s", member.id, entity_id)
                    continue
                for t in self._direct(member, types):
                    found.setdefault(t.id, t)
            for t in types:
                if t.is_global and t.name == GENERAL_CONTACT:
                    found.setdefault(t.id, t)

        return sorted(found.values(), key=lambda t: (t.name.lower(), t.id))

    @when_ready(set)
    def inherited_tag_ids(self, entity_id: str) -> set[str]:
        """Tags a group gets from its members, or a person from its groups."""
        entity = self.entities.get_entity(entity_id)
        if entity is None:
            return set()
        if entity.kind == EntityKind.GROUP.value:
            related = self.entities.get_group_members(entity_id)
        elif entity.kind == EntityKind.PERSON.value:
            related = self.entities.get_entity_groups(entity_id)
        else:
            return set()
        inherited: set[str] = set()
        for other in related:
            inherited |= self.tags.entity_tag_ids(other.id)
        return inherited
