"""
Authentication - OAuth login, server-side sessions and the auth gate.

Route handlers only ever see a Principal:
    principal: Principal = Depends(require_auth)
"""

from luna.auth.cookies import CookieCodec, CookiePolicy, cookie_policy
from luna.auth.gate import (
    Admitted,
    AdmittedAnonymous,
    AuthGate,
    AuthRequired,
    Denied,
    GateDecision,
    Requirement,
    Unidentified,
    auth_required_handler,
    optional_auth,
    require_auth,
)
from luna.auth.oauth import AuthorizationRequest, OAuthClientAdapter
from luna.auth.resolver import IdentityResolver
from luna.auth.routes import build_auth_router
from luna.auth.sessions import SessionStore

__all__ = [
    # Gate
    "AuthGate",
    "Requirement",
    "GateDecision",
    "Admitted",
    "AdmittedAnonymous",
    "Unidentified",
    "Denied",
    "AuthRequired",
    "auth_required_handler",
    "require_auth",
    "optional_auth",
    # Sessions & cookies
    "SessionStore",
    "CookieCodec",
    "CookiePolicy",
    "cookie_policy",
    # Identity
    "IdentityResolver",
    "OAuthClientAdapter",
    "AuthorizationRequest",
    # Router
    "build_auth_router",
]
