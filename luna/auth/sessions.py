"""
Session store - create, load, touch and destroy server-side sessions.

Expiry is enforced here on every load: a session idle for longer than the
TTL (or past its hard expiry) is deleted and reported as absent, whether
or not the backend has reaped it yet.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from luna.core import events
from luna.core.errors import SessionPersistenceError
from luna.core.events import EventBus
from luna.core.models import Identity, Session
from luna.core.utils import utc_now
from luna.storage.base import SessionStorage

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore:
    """Session lifecycle over a durable SessionStorage backend."""

    def __init__(self, storage: SessionStorage, ttl_seconds: int, bus: EventBus):
        self.storage = storage
        self.ttl_seconds = ttl_seconds
        self.bus = bus

    async def create(self, identity: Identity) -> Session:
        """
        Create a session for an identity and flush it to the backend.

        Returns only after the backend acknowledged the write, so a client
        following the login redirect immediately will find the session.

        Raises:
            SessionPersistenceError: if the write failed
        """
        now = utc_now()
        session = Session(
            id=new_session_id(),
            identity_ref=identity.id,
            created_at=now,
            last_access_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        )
        try:
            await self.storage.save(session)
        except Exception as e:
            logger.error(f"Session save failed for {identity.email}: {e}")
            await self.bus.publish(events.session_save_failed(session.id, identity.id, str(e)))
            raise SessionPersistenceError(f"Session could not be saved: {e}") from e

        await self.bus.publish(events.session_created(session.id, identity.id))
        await self.bus.publish(events.session_saved(session.id, identity.id))
        return session

    async def load(self, session_id: str | None) -> Session | None:
        """Get a live session, or None if it is missing or expired."""
        if not session_id:
            return None

        session = await self.storage.get(session_id)
        if session is None:
            return None

        if session.is_expired(self.ttl_seconds):
            logger.info(f"Session {session_id[:8]}… expired")
            await self.storage.delete(session_id)
            await self.bus.publish(events.session_expired(session_id, session.identity_ref))
            return None

        return session

    async def touch(self, session: Session) -> Session:
        """Slide the idle window forward. Concurrent touches: last write wins."""
        now = utc_now()
        touched = session.model_copy(
            update={
                "last_access_at": now,
                "expires_at": now + timedelta(seconds=self.ttl_seconds),
            }
        )
        await self.storage.save(touched)
        return touched

    async def destroy(self, session_id: str | None) -> bool:
        """Delete a session. Returns False when there was nothing to delete."""
        if not session_id:
            return False
        deleted = await self.storage.delete(session_id)
        if deleted:
            await self.bus.publish(events.session_destroyed(session_id))
        return deleted
