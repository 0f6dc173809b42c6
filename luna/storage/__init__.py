"""
Storage abstractions.

- IdentityStorage → MongoDB `users`
- SessionStorage  → MongoDB `sessions` (TTL index)
- ResourceStorage → MongoDB business collections (`clients`, `leads`)
"""

import logging

from luna.config import Settings
from luna.storage.base import (
    Collections,
    IdentityStorage,
    ResourceStorage,
    SessionStorage,
    StorageProvider,
)
from luna.storage.local import create_local_storage

logger = logging.getLogger(__name__)


async def open_storage(settings: Settings) -> StorageProvider:
    """Build the StorageProvider selected by STORAGE_BACKEND."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage - data is lost on restart")
        return create_local_storage()

    from luna.storage.mongo import create_mongo_storage
    return await create_mongo_storage(settings)


__all__ = [
    "Collections",
    "IdentityStorage",
    "ResourceStorage",
    "SessionStorage",
    "StorageProvider",
    "create_local_storage",
    "open_storage",
]
