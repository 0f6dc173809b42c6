"""
Cookie policy and session-cookie signing.

SameSite=lax is what survives the OAuth redirect round-trip while still
being accepted by mobile browsers, which reject SameSite=None without
Secure. The Domain attribute is never set: explicit domain scoping lost
sessions on some mobile clients (see test_cookies.py before changing it).
"""

from __future__ import annotations

from dataclasses import dataclass

from itsdangerous import BadSignature, BadTimeSignature, Signer, URLSafeTimedSerializer
from starlette.requests import Request

SESSION_COOKIE = "luna.sid"
STATE_COOKIE = "luna.oauth_state"
STATE_MAX_AGE = 600

SESSION_SALT = "luna-session-v1"
STATE_SALT = "luna-oauth-state-v1"


@dataclass(frozen=True)
class CookiePolicy:
    """Attributes applied to every auth cookie."""
    secure: bool
    same_site: str = "lax"
    domain: str | None = None
    http_only: bool = True
    path: str = "/"


def cookie_policy(is_production: bool, is_mobile: bool, protocol: str) -> CookiePolicy:
    """
    Decide cookie attributes for a response.

    Mobile clients get the same attributes as desktop ones; the flag is an
    input so the decision table stays explicit about it.
    """
    secure = is_production or protocol == "https"
    return CookiePolicy(secure=secure, same_site="lax", domain=None)


def request_protocol(request: Request) -> str:
    """Scheme as seen by the client, honouring a fronting proxy."""
    forwarded = request.headers.get("x-forwarded-proto", "")
    if forwarded:
        return forwarded.split(",")[0].strip().lower()
    return request.url.scheme


def cookie_kwargs(policy: CookiePolicy, key: str, value: str, max_age: int) -> dict:
    """Keyword arguments for `Response.set_cookie`."""
    return {
        "key": key,
        "value": value,
        "max_age": max_age,
        "httponly": policy.http_only,
        "secure": policy.secure,
        "samesite": policy.same_site,
        "path": policy.path,
        "domain": policy.domain,
    }


def clear_cookie_kwargs(policy: CookiePolicy, key: str) -> dict:
    """Keyword arguments for `Response.delete_cookie`, matching how it was set."""
    return {
        "key": key,
        "httponly": policy.http_only,
        "secure": policy.secure,
        "samesite": policy.same_site,
        "path": policy.path,
        "domain": policy.domain,
    }


# =============================================================================
# Signing
# =============================================================================


class CookieCodec:
    """Signs session ids and OAuth state values with the session secret."""

    def __init__(self, secret: str):
        self._session_signer = Signer(secret, salt=SESSION_SALT)
        self._state_serializer = URLSafeTimedSerializer(secret, salt=STATE_SALT)

    def sign_session(self, session_id: str) -> str:
        return self._session_signer.sign(session_id).decode("utf-8")

    def unsign_session(self, value: str | None) -> str | None:
        """The session id, or None for a missing or tampered cookie."""
        if not value:
            return None
        try:
            return self._session_signer.unsign(value).decode("utf-8")
        except BadSignature:
            return None

    def dump_state(self, state: str) -> str:
        return self._state_serializer.dumps(state)

    def load_state(self, value: str | None) -> str | None:
        if not value:
            return None
        try:
            return self._state_serializer.loads(value, max_age=STATE_MAX_AGE)
        except (BadSignature, BadTimeSignature):
            return None
