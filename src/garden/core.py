"""Garden: wires one Database handle into every store component.

Responsibilities:
1. Open the database file named by the configuration
2. Build each component once and pass the shared handle explicitly
3. Run schema migrations on start, before any write is accepted
4. Propagate settings changes to every entity's score
"""

from __future__ import annotations

import logging

from garden.backup.archive import BackupCodec
from garden.config import GardenConfig
from garden.defaults import DefaultConfig, load_default_config
from garden.store.birthdays import BirthdayBook
from garden.store.catalog import InteractionTypeCatalog
from garden.store.connection import Database
from garden.store.duplicates import DuplicateMatcher
from garden.store.entities import EntityStore
from garden.store.migrator import SchemaMigrator
from garden.store.resolver import InteractionTypeResolver
from garden.store.scoring import InteractionScorer
from garden.store.settings import Settings, SettingsStore
from garden.store.tags import TagGraph

logger = logging.getLogger(__name__)


class Garden:
    """The application's store, one instance per installation."""

    def __init__(
        self,
        config: GardenConfig,
        defaults: DefaultConfig | None = None,
        matcher: DuplicateMatcher | None = None,
    ) -> None:
        self.config = config
        self.defaults = defaults if defaults is not None else load_default_config(config.default_config)
        self.db = Database(config.db_path)

        self.catalog = InteractionTypeCatalog(self.db)
        self.scorer = InteractionScorer(self.db)
        self.settings = SettingsStore(self.db, self.scorer)
        self.tags = TagGraph(self.db, self.catalog)
        self.entities = EntityStore(
            self.db, self.scorer, self.settings, self.tags, self.catalog, self.defaults, matcher
        )
        self.resolver = InteractionTypeResolver(self.db, self.entities, self.tags, self.catalog)
        self.birthdays = BirthdayBook(self.db)
        self.backup = BackupCodec(self.db, self.tags, self.defaults, config.photos_dir)
        self.migrator = SchemaMigrator(self.db, self.defaults)

    @property
    def ready(self) -> bool:
        return self.db.ready

    def start(self) -> int:
        """Bring the schema up to date. Returns the schema version reached."""
        version = self.migrator.migrate()
        if self.migrator.last_error is not None:
            logger.error("Started at schema version %d after a failed migration", version)
        else:
            logger.info("Garden ready at %s (schema version %d)", self.config.db_path, version)
        return version

    def update_settings(self, settings: Settings) -> None:
        self.settings.update(settings)

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> Garden:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
