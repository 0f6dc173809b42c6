"""
Error taxonomy for the auth core.

Only `ConfigurationError` is fatal. Everything else is caught at a
boundary (OAuth callback, auth gate, CLI) and turned into a redirect, an
anonymous request or an operator message.
"""

from __future__ import annotations


class LunaError(Exception):
    """Base class for all luna errors."""


class ConfigurationError(LunaError):
    """Missing or inconsistent provider/store configuration."""


class AuthError(LunaError):
    """Provider rejected the login, the exchange failed or timed out."""


class ClaimValidationError(AuthError):
    """Provider profile is missing a claim we require (e.g. email)."""


class SessionPersistenceError(LunaError):
    """The session store did not acknowledge a write."""


class IdentityNotFound(LunaError):
    """A session reference points at no identity."""


class DuplicateIdentityError(LunaError):
    """An identity with the same external id already exists."""

    def __init__(self, external_id: str):
        super().__init__(f"Identity already exists for external id {external_id!r}")
        self.external_id = external_id


class MigrationError(LunaError):
    """Ownership migration could not run."""


class NoIdentityError(MigrationError):
    """There is no identity to assign un-owned records to."""
