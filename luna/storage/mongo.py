"""
MongoDB storage implementations.

Uses PyMongo's native asyncio client. Sessions rely on a TTL index on
`expiresAt` so MongoDB reaps expired sessions on its own; the session
store still checks expiry on load because the reaper runs only once a
minute.
"""

from __future__ import annotations

import logging
from typing import Any

from pymongo import ASCENDING, AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from luna.config import Settings
from luna.core.errors import DuplicateIdentityError
from luna.core.models import OWNER_FIELD, RESOURCE_TYPES, Identity, Session
from luna.storage.base import (
    Collections,
    IdentityStorage,
    ResourceStorage,
    SessionStorage,
    StorageProvider,
)

logger = logging.getLogger(__name__)


UNOWNED_FILTER: dict[str, Any] = {
    "$or": [
        {OWNER_FIELD: {"$exists": False}},
        {OWNER_FIELD: None},
        {OWNER_FIELD: ""},
    ]
}

NON_CANONICAL_FILTER: dict[str, Any] = {
    OWNER_FIELD: {
        "$exists": True,
        "$nin": [None, ""],
        "$not": {"$type": "string"},
    }
}


# =============================================================================
# Identities
# =============================================================================


class MongoIdentityStorage(IdentityStorage):
    """Identity repository backed by the `users` collection."""

    def __init__(self, db: AsyncDatabase):
        self.collection = db[Collections.USERS]

    async def get(self, identity_id: str) -> Identity | None:
        doc = await self.collection.find_one({"_id": identity_id})
        return Identity.from_document(doc) if doc else None

    async def find_by_external_id(self, external_id: str) -> Identity | None:
        doc = await self.collection.find_one({"externalId": external_id})
        return Identity.from_document(doc) if doc else None

    async def create(self, identity: Identity) -> Identity:
        try:
            await self.collection.insert_one(identity.to_document())
        except DuplicateKeyError as e:
            raise DuplicateIdentityError(identity.external_id) from e
        return identity

    async def update(self, identity: Identity) -> Identity:
        await self.collection.replace_one({"_id": identity.id}, identity.to_document())
        return identity

    async def earliest(self) -> Identity | None:
        doc = await self.collection.find_one({}, sort=[("createdAt", ASCENDING)])
        return Identity.from_document(doc) if doc else None


# =============================================================================
# Sessions
# =============================================================================


class MongoSessionStorage(SessionStorage):
    """Session store backed by the `sessions` collection."""

    def __init__(self, db: AsyncDatabase):
        self.db = db
        self.collection = db[Collections.SESSIONS]

    async def save(self, session: Session) -> None:
        await self.collection.replace_one({"_id": session.id}, session.to_document(), upsert=True)

    async def get(self, session_id: str) -> Session | None:
        doc = await self.collection.find_one({"_id": session_id})
        return Session.from_document(doc) if doc else None

    async def delete(self, session_id: str) -> bool:
        result = await self.collection.delete_one({"_id": session_id})
        return result.deleted_count > 0

    async def ping(self) -> bool:
        try:
            await self.db.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False


# =============================================================================
# Resources
# =============================================================================


class MongoResourceStorage(ResourceStorage):
    """Owner-reference operations over the business collections."""

    def __init__(self, db: AsyncDatabase):
        self.db = db

    async def count_unowned(self, resource_type: str) -> int:
        return await self.db[resource_type].count_documents(UNOWNED_FILTER)

    async def count_non_canonical(self, resource_type: str) -> int:
        return await self.db[resource_type].count_documents(NON_CANONICAL_FILTER)

    async def count_owned_by(self, resource_type: str, owner_id: str) -> int:
        return await self.db[resource_type].count_documents({OWNER_FIELD: owner_id})

    async def assign_unowned(self, resource_type: str, owner_id: str) -> int:
        result = await self.db[resource_type].update_many(
            UNOWNED_FILTER, {"$set": {OWNER_FIELD: owner_id}}
        )
        return result.modified_count

    async def delete_unowned(self, resource_type: str) -> int:
        result = await self.db[resource_type].delete_many(UNOWNED_FILTER)
        return result.deleted_count


# =============================================================================
# Provider
# =============================================================================


class MongoStorageProvider(StorageProvider):
    """StorageProvider that owns its MongoDB client."""

    client: AsyncMongoClient

    async def close(self) -> None:
        await self.client.close()


async def ensure_indexes(db: AsyncDatabase, resource_types: tuple[str, ...] = RESOURCE_TYPES) -> None:
    """Create the indexes the auth core depends on (idempotent)."""
    users = db[Collections.USERS]
    await users.create_index("externalId", unique=True)
    await users.create_index("createdAt")

    # expireAfterSeconds=0: each document expires at its own `expiresAt`.
    await db[Collections.SESSIONS].create_index("expiresAt", expireAfterSeconds=0)

    for resource_type in resource_types:
        await db[resource_type].create_index(OWNER_FIELD)


async def create_mongo_storage(settings: Settings) -> MongoStorageProvider:
    """Connect to MongoDB and build a StorageProvider."""
    client: AsyncMongoClient = AsyncMongoClient(
        settings.mongodb_uri,
        tz_aware=True,
        serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
    )
    db = client[settings.mongodb_db_name]
    await ensure_indexes(db)
    logger.info(f"Connected to MongoDB database '{settings.mongodb_db_name}'")

    return MongoStorageProvider(
        backend="mongo",
        client=client,
        identities=MongoIdentityStorage(db),
        sessions=MongoSessionStorage(db),
        resources=MongoResourceStorage(db),
    )
