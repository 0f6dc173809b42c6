# =============================================================================
# Auth Routes
# =============================================================================
#
# Browser:
#   GET  /login                  - Login page (or redirect home if signed in)
#   GET  /auth/google            - Redirect to Google consent screen
#   GET  /auth/google/callback   - Complete OAuth, start a session
#   GET  /auth/logout            - End session, redirect home
#
# API:
#   POST /auth/logout            - End session, JSON confirmation
#   GET  /api/auth/status        - Who is signed in (never 401)
#   GET  /api/auth/me            - Current user profile (401 if signed out)
#
# The two /auth/google routes only exist when Google credentials are set.
#
# =============================================================================

import html
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response

from luna.auth.cookies import (
    SESSION_COOKIE,
    STATE_COOKIE,
    STATE_MAX_AGE,
    clear_cookie_kwargs,
    cookie_kwargs,
    cookie_policy,
    request_protocol,
)
from luna.auth.diagnostics import is_mobile_user_agent, log_cookie_policy
from luna.auth.gate import optional_auth, require_auth
from luna.config import AuthEnabled, AuthMode
from luna.core.errors import AuthError, SessionPersistenceError
from luna.core.models import Authenticated, Principal
from luna.integrations.sentry import capture_exception, set_user

logger = logging.getLogger(__name__)

LOGIN_ERRORS = {
    "auth_failed": "Sign-in with Google failed. Please try again.",
    "session_failed": "Signed in, but the session could not be saved. Please try again.",
}


def _policy_for(request: Request):
    settings = request.app.state.settings
    protocol = request_protocol(request)
    is_mobile = is_mobile_user_agent(request.headers.get("user-agent"))
    return cookie_policy(settings.is_production, is_mobile, protocol), protocol, is_mobile


def _login_page(error: str | None) -> str:
    message = ""
    if error:
        text = LOGIN_ERRORS.get(error, "Sign-in failed. Please try again.")
        message = f'<p class="error">{html.escape(text)}</p>'
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1">
<title>Luna CRM - Sign in</title></head>
<body>
<h1>Luna CRM</h1>
{message}
<a href="/auth/google">Sign in with Google</a>
</body>
</html>"""


async def _end_session(request: Request, response: Response) -> None:
    state = request.app.state
    session_id = state.codec.unsign_session(request.cookies.get(SESSION_COOKIE))
    if await state.sessions.destroy(session_id):
        logger.info("User logged out")
    policy, _, _ = _policy_for(request)
    response.delete_cookie(**clear_cookie_kwargs(policy, SESSION_COOKIE))


def build_auth_router(mode: AuthMode) -> APIRouter:
    """Auth routes for the given mode."""
    router = APIRouter(tags=["auth"])

    # =========================================================================
    # Login page
    # =========================================================================

    @router.get("/login")
    async def login_page(
        request: Request,
        error: str | None = None,
        principal: Principal | None = Depends(optional_auth),
    ):
        if principal is not None:
            return RedirectResponse("/", status_code=302)
        return HTMLResponse(_login_page(error))

    # =========================================================================
    # OAuth (provider configured only)
    # =========================================================================

    if isinstance(mode, AuthEnabled):

        @router.get("/auth/google")
        async def google_login(request: Request):
            state = request.app.state
            authorization = state.oauth.begin_authorization()
            policy, _, _ = _policy_for(request)

            response = RedirectResponse(authorization.url, status_code=302)
            response.set_cookie(
                **cookie_kwargs(
                    policy, STATE_COOKIE, state.codec.dump_state(authorization.state), STATE_MAX_AGE
                )
            )
            return response

        @router.get("/auth/google/callback")
        async def google_callback(
            request: Request,
            code: str | None = None,
            state: str | None = None,
            error: str | None = None,
        ):
            app_state = request.app.state
            policy, protocol, is_mobile = _policy_for(request)

            def failed(reason: str) -> RedirectResponse:
                response = RedirectResponse(f"/login?error={reason}", status_code=302)
                response.delete_cookie(**clear_cookie_kwargs(policy, STATE_COOKIE))
                return response

            try:
                if error:
                    raise AuthError(f"Provider returned error: {error}")
                expected = app_state.codec.load_state(request.cookies.get(STATE_COOKIE))
                if not expected or expected != state:
                    raise AuthError("OAuth state mismatch")
                identity = await app_state.oauth.complete_authorization(code or "")
            except AuthError as e:
                logger.warning(f"OAuth callback failed: {e}")
                capture_exception(e, stage="oauth_callback")
                return failed("auth_failed")
            except Exception as e:
                logger.exception("OAuth callback failed unexpectedly")
                capture_exception(e, stage="oauth_callback")
                return failed("auth_failed")

            # A session that existed before login is never reused.
            previous = app_state.codec.unsign_session(request.cookies.get(SESSION_COOKIE))
            try:
                if previous:
                    await app_state.sessions.destroy(previous)
                session = await app_state.sessions.create(identity)
            except SessionPersistenceError:
                # Reported through the session.save_failed event.
                return failed("session_failed")
            except Exception as e:
                logger.exception(f"Session setup failed for {identity.email}")
                capture_exception(e, stage="session_setup", identity_id=identity.id)
                return failed("session_failed")

            logger.info(f"Login complete for {identity.email}, redirecting to dashboard")
            set_user(identity.id, identity.email)
            log_cookie_policy(policy, protocol, is_mobile, app_state.settings.auth_debug)

            response = RedirectResponse("/", status_code=302)
            response.set_cookie(
                **cookie_kwargs(
                    policy,
                    SESSION_COOKIE,
                    app_state.codec.sign_session(session.id),
                    app_state.settings.session_ttl_seconds,
                )
            )
            response.delete_cookie(**clear_cookie_kwargs(policy, STATE_COOKIE))
            return response

    # =========================================================================
    # Logout
    # =========================================================================

    @router.get("/auth/logout")
    async def logout_redirect(request: Request):
        response = RedirectResponse("/", status_code=302)
        await _end_session(request, response)
        return response

    @router.post("/auth/logout")
    async def logout(request: Request, response: Response):
        await _end_session(request, response)
        return {"success": True, "message": "Logged out successfully"}

    # =========================================================================
    # Status
    # =========================================================================

    @router.get("/api/auth/status")
    async def auth_status(
        request: Request,
        principal: Principal | None = Depends(optional_auth),
    ):
        """
        Authentication status for the frontend.

        In anonymous mode nobody is "signed in" even though every request
        is admitted; `mode` tells the two cases apart.
        """
        mode_name = "oauth" if isinstance(mode, AuthEnabled) else "anonymous"
        if isinstance(principal, Authenticated):
            return {"authenticated": True, "user": principal.profile(), "mode": mode_name}
        return {"authenticated": False, "mode": mode_name}

    @router.get("/api/auth/me")
    async def current_user(principal: Principal = Depends(require_auth)):
        body = principal.profile()
        if isinstance(principal, Authenticated):
            body["createdAt"] = principal.identity.created_at.isoformat()
            body["lastLogin"] = principal.identity.last_login.isoformat()
        else:
            body["createdAt"] = None
            body["lastLogin"] = None
        return body

    return router
