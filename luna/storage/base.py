"""
Storage abstraction layer.

All persistence goes through these interfaces so the auth core can run
against MongoDB in production and plain dicts in development and tests.

- IdentityStorage → users collection (identity repository)
- SessionStorage  → sessions collection with a TTL index
- ResourceStorage → business collections carrying an owner reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from luna.core.models import Identity, Session


# =============================================================================
# Storage Interfaces
# =============================================================================


class IdentityStorage(ABC):
    """
    Identity repository.

    Implementations must keep `external_id` unique and raise
    DuplicateIdentityError from `create` when it is not.
    """

    @abstractmethod
    async def get(self, identity_id: str) -> Identity | None:
        """Get an identity by primary key."""

    @abstractmethod
    async def find_by_external_id(self, external_id: str) -> Identity | None:
        """Get an identity by provider id."""

    @abstractmethod
    async def create(self, identity: Identity) -> Identity:
        """Insert a new identity."""

    @abstractmethod
    async def update(self, identity: Identity) -> Identity:
        """Replace a stored identity."""

    @abstractmethod
    async def earliest(self) -> Identity | None:
        """The identity with the oldest `created_at`, if any."""


class SessionStorage(ABC):
    """Durable key-value store for sessions. Writes are last-write-wins."""

    @abstractmethod
    async def save(self, session: Session) -> None:
        """Upsert a session. Must not return before the write is acknowledged."""

    @abstractmethod
    async def get(self, session_id: str) -> Session | None:
        """Get a session by id."""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Delete a session."""

    async def ping(self) -> bool:
        """Whether the backend is reachable."""
        return True


class ResourceStorage(ABC):
    """
    Owner-reference operations over the business collections.

    "Unowned" means the owner field is absent, null or the empty string.
    "Non-canonical" means it holds something other than a string.
    """

    @abstractmethod
    async def count_unowned(self, resource_type: str) -> int:
        ...

    @abstractmethod
    async def count_non_canonical(self, resource_type: str) -> int:
        ...

    @abstractmethod
    async def count_owned_by(self, resource_type: str, owner_id: str) -> int:
        ...

    @abstractmethod
    async def assign_unowned(self, resource_type: str, owner_id: str) -> int:
        """Set the owner on every unowned record in one batch; return the count."""

    @abstractmethod
    async def delete_unowned(self, resource_type: str) -> int:
        """Delete every unowned record in one batch; return the count."""


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with the appropriate implementations.
    """

    model_config = {"arbitrary_types_allowed": True}

    backend: str
    identities: IdentityStorage
    sessions: SessionStorage
    resources: ResourceStorage

    async def close(self) -> None:
        """Release backend connections (no-op for in-memory storage)."""


# =============================================================================
# Collection Names
# =============================================================================


class Collections:
    """Standard collection names."""

    USERS = "users"
    SESSIONS = "sessions"
    CLIENTS = "clients"
    LEADS = "leads"
