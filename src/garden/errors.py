"""Exception types raised by the garden store and backup codec."""

from __future__ import annotations


class GardenError(Exception):
    """Base class for all garden errors."""


class MigrationError(GardenError):
    """A schema migration step could not reach its target shape."""


class StoreNotReadyError(GardenError):
    """A write was attempted before the schema migrator finished."""


class EntityNotFoundError(GardenError):
    """The referenced entity does not exist."""


class BackupError(GardenError):
    """Base class for backup export/import failures."""


class BackupFormatError(BackupError):
    """The backup file is structurally invalid (bad JSON, hex, version...)."""


class BackupIntegrityError(BackupError):
    """The passphrase is wrong or the backup data is corrupted."""


class InvalidPassphraseError(BackupError):
    """The passphrase is not six lowercase words."""


class BackupImportError(BackupError):
    """Restoring the dataset failed; the previous data was kept."""
