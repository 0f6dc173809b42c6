"""
Core data models for the luna auth core.

Identities and sessions are persisted; principals are the per-request
view of "who is asking" that downstream handlers consume.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from luna.core.utils import ensure_utc, generate_id, utc_now


# Field that links a business record to its owner in every resource collection.
OWNER_FIELD = "userId"

# Collections the ownership migration sweeps by default.
RESOURCE_TYPES = ("clients", "leads")


class _Document(BaseModel):
    """Base for models stored as camelCase documents keyed by `_id`."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data["_id"] = data.pop("id")
        return data

    @classmethod
    def from_document(cls, doc: dict[str, Any]):
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["id"] = str(doc["_id"])
        return cls.model_validate(data)


# =============================================================================
# Identity (a person authenticated by the external provider)
# =============================================================================


class Identity(_Document):
    """
    A person authenticated via Google.

    `external_id` is unique across identities; `id` is the canonical owner
    reference stored on business records.
    """

    id: str = Field(default_factory=lambda: generate_id("user"))
    external_id: str
    email: str
    name: str = ""
    picture: str = ""

    access_token: str = ""
    refresh_token: str | None = None
    token_expiry: datetime | None = None

    created_at: datetime = Field(default_factory=utc_now)
    last_login: datetime = Field(default_factory=utc_now)

    def profile(self) -> dict[str, Any]:
        """Public profile fields (no tokens)."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "picture": self.picture,
        }


# =============================================================================
# Session (server-side record behind the browser cookie)
# =============================================================================


class Session(_Document):
    """Links an opaque session id to an identity reference."""

    id: str
    identity_ref: str
    created_at: datetime = Field(default_factory=utc_now)
    last_access_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    def is_expired(self, ttl_seconds: int, now: datetime | None = None) -> bool:
        """Expired when idle longer than the TTL or past its hard expiry."""
        now = now or utc_now()
        idle = now - ensure_utc(self.last_access_at)
        return idle > timedelta(seconds=ttl_seconds) or now >= ensure_utc(self.expires_at)


# =============================================================================
# Principals (who a request runs as)
# =============================================================================


ANONYMOUS_ID = "default-user-id"


@dataclass(frozen=True)
class Authenticated:
    """A request backed by a real, stored identity."""
    identity: Identity

    @property
    def owner_id(self) -> str:
        return self.identity.id

    def profile(self) -> dict[str, Any]:
        return self.identity.profile()


@dataclass(frozen=True)
class Anonymous:
    """The fixed single-tenant principal used when no provider is configured."""
    id: str = ANONYMOUS_ID
    email: str = "default@luna.local"
    name: str = "Default User"

    @property
    def owner_id(self) -> str:
        return self.id

    def profile(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "picture": ""}


Principal = Authenticated | Anonymous

ANONYMOUS = Anonymous()
