"""
Auth gate - decides who a request runs as.

Usage in routes:
    async def dashboard(principal: Principal = Depends(require_auth)):
        ...
    async def status(principal: Principal | None = Depends(optional_auth)):
        ...

With no provider configured every request is admitted as the anonymous
principal. Otherwise the signed cookie is unsigned, the session loaded and
the identity resolved; any failure along that chain means "nobody".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse

from luna.auth.cookies import SESSION_COOKIE, CookieCodec
from luna.auth.resolver import IdentityResolver
from luna.auth.sessions import SessionStore
from luna.config import AuthDisabled, AuthMode
from luna.core.models import ANONYMOUS, Anonymous, Authenticated, Principal

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


class Requirement(str, Enum):
    REQUIRED = "required"
    OPTIONAL = "optional"


# =============================================================================
# Decisions
# =============================================================================


@dataclass(frozen=True)
class Admitted:
    principal: Authenticated


@dataclass(frozen=True)
class AdmittedAnonymous:
    principal: Anonymous


@dataclass(frozen=True)
class Unidentified:
    """Optional route and nobody is signed in."""


@dataclass(frozen=True)
class Denied:
    redirect_to: str = LOGIN_PATH
    message: str = "Please log in to access this resource"


GateDecision = Admitted | AdmittedAnonymous | Unidentified | Denied


class AuthRequired(Exception):
    """Raised by `require_auth` when the gate denies a request."""

    def __init__(self, decision: Denied):
        super().__init__(decision.message)
        self.decision = decision


# =============================================================================
# Gate
# =============================================================================


class AuthGate:
    def __init__(
        self,
        mode: AuthMode,
        sessions: SessionStore,
        resolver: IdentityResolver,
        codec: CookieCodec,
    ):
        self.mode = mode
        self.sessions = sessions
        self.resolver = resolver
        self.codec = codec

    @property
    def anonymous(self) -> bool:
        return isinstance(self.mode, AuthDisabled)

    async def decide(self, cookie_value: str | None, requirement: Requirement) -> GateDecision:
        if self.anonymous:
            return AdmittedAnonymous(principal=ANONYMOUS)

        principal = await self._resolve(cookie_value)
        if principal is not None:
            return Admitted(principal=principal)

        if requirement is Requirement.REQUIRED:
            return Denied()
        return Unidentified()

    async def _resolve(self, cookie_value: str | None) -> Authenticated | None:
        session_id = self.codec.unsign_session(cookie_value)
        if session_id is None:
            if cookie_value:
                logger.info("Ignoring session cookie with a bad signature")
            return None

        try:
            session = await self.sessions.load(session_id)
        except Exception as e:
            logger.warning(f"Session lookup failed: {e}")
            return None
        if session is None:
            return None

        identity = await self.resolver.try_deserialize(session.identity_ref)
        if identity is None:
            return None

        try:
            await self.sessions.touch(session)
        except Exception as e:
            # The request is still admitted; the idle window just doesn't slide.
            logger.warning(f"Session touch failed for {identity.email}: {e}")

        return Authenticated(identity=identity)


# =============================================================================
# FastAPI integration
# =============================================================================


def get_gate(request: Request) -> AuthGate:
    return request.app.state.gate


async def require_auth(request: Request) -> Principal:
    """Dependency: the request's principal, or AuthRequired."""
    decision = await get_gate(request).decide(
        request.cookies.get(SESSION_COOKIE), Requirement.REQUIRED
    )
    if isinstance(decision, Denied):
        logger.info(f"Unauthenticated request to {request.url.path}")
        raise AuthRequired(decision)
    return decision.principal


async def optional_auth(request: Request) -> Principal | None:
    """Dependency: the request's principal, or None when nobody is signed in."""
    decision = await get_gate(request).decide(
        request.cookies.get(SESSION_COOKIE), Requirement.OPTIONAL
    )
    if isinstance(decision, (Admitted, AdmittedAnonymous)):
        return decision.principal
    return None


async def auth_required_handler(request: Request, exc: AuthRequired):
    """API callers get a 401 body; browsers are sent to the login page."""
    decision = exc.decision
    if request.url.path.startswith("/api/"):
        return JSONResponse(
            status_code=401,
            content={
                "error": "Authentication required",
                "redirectTo": decision.redirect_to,
                "message": decision.message,
            },
        )
    return RedirectResponse(decision.redirect_to, status_code=302)
