"""Relationship store: entities, interactions, tags and scores in one SQLite file.

Layout:
    ~/.garden/
    ├── garden.db                      # All tables, PRAGMA user_version = schema version
    ├── photos/                        # Photo files referenced by entity_photos.uri
    └── backups/                       # Default target for exported backups

Every component receives the same `Database` handle; none of them opens a
connection of its own. `SchemaMigrator.migrate()` must run before writes.
"""
