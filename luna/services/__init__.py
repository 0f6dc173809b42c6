"""Services - operator tasks over the stored data."""

from luna.services.ownership import CleanupReport, MigrationReport, OwnershipMigrator

__all__ = [
    "CleanupReport",
    "MigrationReport",
    "OwnershipMigrator",
]
