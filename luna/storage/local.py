"""
Local storage implementations for development and tests.

In-memory implementations that work without MongoDB. They follow the
same semantics as the Mongo backend, including external-id uniqueness
and the unowned/non-canonical owner rules.
"""

from __future__ import annotations

from typing import Any

from luna.core.errors import DuplicateIdentityError
from luna.core.models import OWNER_FIELD, Identity, Session
from luna.storage.base import (
    IdentityStorage,
    ResourceStorage,
    SessionStorage,
    StorageProvider,
)


def is_unowned(value: Any) -> bool:
    return value is None or value == ""


# =============================================================================
# Identities
# =============================================================================


class InMemoryIdentityStorage(IdentityStorage):
    """In-memory identity repository."""

    def __init__(self):
        self._by_id: dict[str, Identity] = {}
        self._by_external_id: dict[str, str] = {}  # external_id -> id

    async def get(self, identity_id: str) -> Identity | None:
        identity = self._by_id.get(identity_id)
        return identity.model_copy() if identity else None

    async def find_by_external_id(self, external_id: str) -> Identity | None:
        identity_id = self._by_external_id.get(external_id)
        return await self.get(identity_id) if identity_id else None

    async def create(self, identity: Identity) -> Identity:
        if identity.external_id in self._by_external_id:
            raise DuplicateIdentityError(identity.external_id)
        self._by_id[identity.id] = identity.model_copy()
        self._by_external_id[identity.external_id] = identity.id
        return identity

    async def update(self, identity: Identity) -> Identity:
        self._by_id[identity.id] = identity.model_copy()
        self._by_external_id[identity.external_id] = identity.id
        return identity

    async def earliest(self) -> Identity | None:
        if not self._by_id:
            return None
        return min(self._by_id.values(), key=lambda i: i.created_at).model_copy()


# =============================================================================
# Sessions
# =============================================================================


class InMemorySessionStorage(SessionStorage):
    """In-memory session store."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    async def save(self, session: Session) -> None:
        self._sessions[session.id] = session.model_copy()

    async def get(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return session.model_copy() if session else None

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None


# =============================================================================
# Resources
# =============================================================================


class InMemoryResourceStorage(ResourceStorage):
    """Business collections as lists of plain documents."""

    def __init__(self, collections: dict[str, list[dict[str, Any]]] | None = None):
        self.collections: dict[str, list[dict[str, Any]]] = (
            collections if collections is not None else {}
        )

    def _docs(self, resource_type: str) -> list[dict[str, Any]]:
        return self.collections.setdefault(resource_type, [])

    def insert(self, resource_type: str, doc: dict[str, Any]) -> None:
        self._docs(resource_type).append(doc)

    async def count_unowned(self, resource_type: str) -> int:
        return sum(1 for d in self._docs(resource_type) if is_unowned(d.get(OWNER_FIELD)))

    async def count_non_canonical(self, resource_type: str) -> int:
        return sum(
            1
            for d in self._docs(resource_type)
            if not is_unowned(d.get(OWNER_FIELD)) and not isinstance(d.get(OWNER_FIELD), str)
        )

    async def count_owned_by(self, resource_type: str, owner_id: str) -> int:
        return sum(1 for d in self._docs(resource_type) if d.get(OWNER_FIELD) == owner_id)

    async def assign_unowned(self, resource_type: str, owner_id: str) -> int:
        targets = [d for d in self._docs(resource_type) if is_unowned(d.get(OWNER_FIELD))]
        for doc in targets:
            doc[OWNER_FIELD] = owner_id
        return len(targets)

    async def delete_unowned(self, resource_type: str) -> int:
        docs = self._docs(resource_type)
        kept = [d for d in docs if not is_unowned(d.get(OWNER_FIELD))]
        deleted = len(docs) - len(kept)
        docs[:] = kept
        return deleted


# =============================================================================
# Factory
# =============================================================================


def create_local_storage() -> StorageProvider:
    """Create a StorageProvider with in-memory implementations."""
    return StorageProvider(
        backend="memory",
        identities=InMemoryIdentityStorage(),
        sessions=InMemorySessionStorage(),
        resources=InMemoryResourceStorage(),
    )
