"""
OAuth client adapter - turns a provider callback into a stored identity.

One callback produces exactly one identity write:

- known external id → update tokens, profile and last-login
- unknown external id with an email claim → create
- unknown external id without an email claim → ClaimValidationError
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from luna.core import events
from luna.core.errors import AuthError, ClaimValidationError, DuplicateIdentityError
from luna.core.events import EventBus
from luna.core.models import Identity
from luna.core.utils import utc_now
from luna.integrations.oauth import GoogleOAuth, OAuthTokens, OAuthUserInfo
from luna.storage.base import IdentityStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    state: str


class OAuthClientAdapter:
    def __init__(self, provider: GoogleOAuth, identities: IdentityStorage, bus: EventBus):
        self.provider = provider
        self.identities = identities
        self.bus = bus

    def begin_authorization(self) -> AuthorizationRequest:
        """Provider redirect URL plus the CSRF state the callback must echo."""
        state = secrets.token_urlsafe(24)
        return AuthorizationRequest(url=self.provider.get_authorize_url(state), state=state)

    async def complete_authorization(self, code: str) -> Identity:
        """
        Exchange the code, fetch the profile and create or update the identity.

        Raises:
            AuthError: provider failure, timeout or missing claims
        """
        if not code:
            raise AuthError("Missing authorization code")

        tokens = await self.provider.exchange_code(code)
        profile = await self.provider.get_user_info(tokens.access_token)
        logger.info(f"OAuth callback for external id {profile.provider_user_id}")

        existing = await self.identities.find_by_external_id(profile.provider_user_id)
        if existing is not None:
            return await self._update_identity(existing, tokens, profile)

        try:
            return await self._create_identity(tokens, profile)
        except DuplicateIdentityError:
            # Lost a race with a concurrent first login for the same account.
            existing = await self.identities.find_by_external_id(profile.provider_user_id)
            if existing is None:
                raise AuthError("Identity vanished during concurrent login")
            return await self._update_identity(existing, tokens, profile)

    async def _update_identity(
        self, identity: Identity, tokens: OAuthTokens, profile: OAuthUserInfo
    ) -> Identity:
        now = utc_now()
        updates = {
            "access_token": tokens.access_token,
            "token_expiry": now + timedelta(seconds=tokens.expires_in),
            "last_login": now,
        }
        if tokens.refresh_token:
            updates["refresh_token"] = tokens.refresh_token
        if profile.email:
            updates["email"] = profile.email
        if profile.name:
            updates["name"] = profile.name
        if profile.picture_url:
            updates["picture"] = profile.picture_url

        updated = await self.identities.update(identity.model_copy(update=updates))
        logger.info(f"Existing user signed in: {updated.email}")
        await self.bus.publish(
            events.identity_updated(updated.id, updated.email, bool(tokens.refresh_token))
        )
        return updated

    async def _create_identity(self, tokens: OAuthTokens, profile: OAuthUserInfo) -> Identity:
        if not profile.email:
            raise ClaimValidationError(
                f"Provider profile {profile.provider_user_id} has no email claim"
            )

        now = utc_now()
        identity = Identity(
            external_id=profile.provider_user_id,
            email=profile.email,
            name=profile.name,
            picture=profile.picture_url,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_expiry=now + timedelta(seconds=tokens.expires_in),
            created_at=now,
            last_login=now,
        )
        created = await self.identities.create(identity)
        logger.info(f"Created new user: {created.email}")
        await self.bus.publish(events.identity_created(created.id, created.email))
        return created
