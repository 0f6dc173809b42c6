"""
Auth diagnostics.

Mobile browsers were where sessions went missing, so the login path for a
mobile client (or any client when AUTH_DEBUG is on) logs the cookie
attributes it is about to send and any combination known to break the
OAuth round-trip. Session lifecycle is logged from event-bus subscribers.
"""

from __future__ import annotations

import logging
import re

from luna.auth.cookies import CookiePolicy
from luna.core.events import Event, EventBus, Subscription
from luna.integrations.sentry import capture_message

logger = logging.getLogger(__name__)

MOBILE_UA = re.compile(
    r"Mobile|Android|iPhone|iPad|iPod|webOS|BlackBerry|IEMobile|Opera Mini",
    re.IGNORECASE,
)


def is_mobile_user_agent(user_agent: str | None) -> bool:
    return bool(user_agent) and MOBILE_UA.search(user_agent) is not None


def cookie_warnings(policy: CookiePolicy, protocol: str, is_mobile: bool) -> list[str]:
    """Problems with a cookie policy for a given request, empty if none."""
    warnings = []
    if protocol == "https" and not policy.secure:
        warnings.append("Cookie is not Secure on an https request")
    if policy.same_site == "none" and not policy.secure:
        warnings.append("SameSite=None without Secure is rejected by browsers")
    if policy.same_site == "strict":
        warnings.append("SameSite=Strict drops the cookie on the OAuth redirect back")
    if is_mobile and policy.domain:
        warnings.append(f"Explicit cookie domain {policy.domain!r} loses sessions on mobile")
    return warnings


def log_cookie_policy(policy: CookiePolicy, protocol: str, is_mobile: bool, debug: bool) -> None:
    """Log the outgoing session cookie for mobile clients, or always in debug."""
    if not (is_mobile or debug):
        return
    logger.info(
        f"Session cookie: secure={policy.secure} samesite={policy.same_site} "
        f"httponly={policy.http_only} protocol={protocol} mobile={is_mobile}"
    )
    for warning in cookie_warnings(policy, protocol, is_mobile):
        logger.warning(f"Cookie issue: {warning}")


# =============================================================================
# Lifecycle subscribers
# =============================================================================


async def _log_session_event(event: Event) -> None:
    session = (event.session_id or "")[:8]
    if event.event_type == "session.save_failed":
        error = event.payload.get("error", "unknown")
        logger.error(f"Session {session}… save failed for {event.identity_id}: {error}")
        capture_message(
            "Session save failed",
            level="error",
            identity_id=event.identity_id,
            error=error,
        )
        return
    logger.debug(f"{event.event_type}: session {session}… identity {event.identity_id}")


async def _log_identity_event(event: Event) -> None:
    if event.event_type == "identity.created":
        logger.info(f"New identity {event.identity_id} ({event.payload.get('email')})")
    elif event.payload.get("refresh_token_rotated"):
        logger.info(f"Refresh token rotated for {event.identity_id}")


def install_diagnostics(bus: EventBus) -> list[Subscription]:
    """Subscribe the lifecycle loggers. Returns the subscriptions."""
    return [
        bus.subscribe("session.*", _log_session_event),
        bus.subscribe("identity.*", _log_identity_event),
    ]
