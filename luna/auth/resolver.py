"""
Identity resolver - the session ⇄ identity mapping.

Sessions store only the identity's primary key; the full identity is
looked up again on every request.
"""

from __future__ import annotations

import logging

from luna.core.errors import IdentityNotFound
from luna.core.models import Identity
from luna.storage.base import IdentityStorage

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, identities: IdentityStorage):
        self.identities = identities

    def serialize(self, identity: Identity) -> str:
        return identity.id

    async def deserialize(self, reference: str | None) -> Identity:
        """
        Raises:
            IdentityNotFound: empty reference, or the identity no longer exists
        """
        if not reference:
            raise IdentityNotFound("Empty session reference")
        identity = await self.identities.get(reference)
        if identity is None:
            raise IdentityNotFound(f"No identity for reference {reference!r}")
        return identity

    async def try_deserialize(self, reference: str | None) -> Identity | None:
        """Request-path variant: any failure means "no identity"."""
        try:
            return await self.deserialize(reference)
        except IdentityNotFound:
            logger.info(f"Session references unknown identity {reference!r}")
            return None
        except Exception as e:
            logger.warning(f"Identity lookup failed for {reference!r}: {e}")
            return None
