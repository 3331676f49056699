"""Table definitions at their final shape (used by the bulk path)."""

from __future__ import annotations

LATEST_VERSION = 12

SETTINGS_KEY = "app_settings"

CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS entities (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    details TEXT,
    image TEXT,
    interaction_score REAL DEFAULT 0,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    payload TEXT,
    is_hidden INTEGER NOT NULL DEFAULT 0,
    birthday TEXT
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    count INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS interaction_types (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    tag_id TEXT REFERENCES tags (id) ON DELETE SET NULL,
    icon TEXT NOT NULL,
    entity_type TEXT,
    score REAL DEFAULT 1,
    color TEXT DEFAULT '#666666'
);

CREATE TABLE IF NOT EXISTS interactions (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    type TEXT,
    type_id TEXT,
    notes TEXT,
    FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE,
    FOREIGN KEY (type_id) REFERENCES interaction_types (id) ON DELETE SET NULL
);
CREATE INDEX IF NOT EXISTS idx_interactions_entity ON interactions (entity_id, timestamp);

CREATE TABLE IF NOT EXISTS entity_photos (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    uri TEXT NOT NULL,
    caption TEXT,
    timestamp INTEGER NOT NULL,
    FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS entity_tags (
    entity_id TEXT NOT NULL,
    tag_id TEXT NOT NULL,
    PRIMARY KEY (entity_id, tag_id),
    FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS interaction_type_tags (
    interaction_type_id TEXT NOT NULL,
    tag_id TEXT NOT NULL,
    PRIMARY KEY (interaction_type_id, tag_id),
    FOREIGN KEY (interaction_type_id) REFERENCES interaction_types (id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS group_members (
    group_id TEXT NOT NULL,
    member_id TEXT NOT NULL,
    added_at INTEGER NOT NULL,
    PRIMARY KEY (group_id, member_id),
    FOREIGN KEY (group_id) REFERENCES entities (id) ON DELETE CASCADE,
    FOREIGN KEY (member_id) REFERENCES entities (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS favorites (
    entity_id TEXT PRIMARY KEY,
    added_at INTEGER NOT NULL,
    FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS birthday_reminders (
    id TEXT PRIMARY KEY,
    entity_id TEXT NOT NULL,
    birthday_date TEXT NOT NULL,
    reminder_time TEXT NOT NULL,
    days_in_advance INTEGER NOT NULL DEFAULT 0,
    is_enabled INTEGER NOT NULL DEFAULT 1,
    notification_id TEXT,
    created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL,
    FOREIGN KEY (entity_id) REFERENCES entities (id) ON DELETE CASCADE
);
"""

TAGS_TABLE = """
CREATE TABLE {name} (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    count INTEGER NOT NULL DEFAULT 0
)
"""
