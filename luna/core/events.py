"""
Event system for the auth core.

Lifecycle points (session created/saved/failed/destroyed, identity
created/updated, ownership migrated) are published here. Diagnostics and
error tracking subscribe instead of wrapping the code paths they observe.
"""

from __future__ import annotations

import fnmatch
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

# Type for event handlers
EventHandler = Callable[["Event"], Awaitable[None]]


@dataclass
class Event:
    """
    An event in the system.

    Events are immutable records of something that happened. They carry
    the context handlers need without giving them access to the request.
    """

    event_type: str  # e.g., "session.created", "identity.updated"
    payload: dict[str, Any] = field(default_factory=dict)

    # Optional context
    session_id: str | None = None
    identity_id: str | None = None

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        return {
            "id": self.id,
            "event_type": self.event_type,
            "session_id": self.session_id,
            "identity_id": self.identity_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Subscription:
    """A subscription to events matching a pattern."""

    pattern: str  # e.g., "session.*" or "identity.created"
    handler: EventHandler

    def matches(self, event: Event) -> bool:
        return fnmatch.fnmatch(event.event_type, self.pattern)


class EventBus:
    """
    In-memory event bus.

    Handler failures are logged and never propagate into the code path
    that published the event.
    """

    def __init__(self, max_history: int = 1000):
        self._subscriptions: list[Subscription] = []
        self._event_history: list[Event] = []
        self._max_history = max_history

    def subscribe(self, pattern: str, handler: EventHandler) -> Subscription:
        """
        Subscribe to events matching a pattern.

        Args:
            pattern: Event type pattern (supports wildcards like "session.*")
            handler: Async function to handle matching events

        Returns:
            The subscription object (can be used to unsubscribe)
        """
        subscription = Subscription(pattern=pattern, handler=handler)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: Event) -> None:
        """Record the event and run every matching handler."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        for subscription in [s for s in self._subscriptions if s.matches(event)]:
            try:
                await subscription.handler(event)
            except Exception:
                logger.exception(f"Error in event handler for {event.event_type}")

    def get_history(self, event_type: str | None = None, limit: int = 100) -> list[Event]:
        """Query event history, optionally filtered by a type pattern."""
        results = self._event_history
        if event_type:
            results = [e for e in results if fnmatch.fnmatch(e.event_type, event_type)]
        return results[-limit:]


# Singleton event bus for the application
_default_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the default event bus instance."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    """Reset the default event bus (useful for testing)."""
    global _default_bus
    _default_bus = None


# =============================================================================
# Convenience constructors for lifecycle events
# =============================================================================


def session_created(session_id: str, identity_id: str, **extra_payload) -> Event:
    return Event("session.created", payload=extra_payload, session_id=session_id, identity_id=identity_id)


def session_saved(session_id: str, identity_id: str, **extra_payload) -> Event:
    return Event("session.saved", payload=extra_payload, session_id=session_id, identity_id=identity_id)


def session_save_failed(session_id: str, identity_id: str, error: str, **extra_payload) -> Event:
    return Event(
        "session.save_failed",
        payload={"error": error, **extra_payload},
        session_id=session_id,
        identity_id=identity_id,
    )


def session_destroyed(session_id: str, **extra_payload) -> Event:
    return Event("session.destroyed", payload=extra_payload, session_id=session_id)


def session_expired(session_id: str, identity_id: str) -> Event:
    return Event("session.expired", session_id=session_id, identity_id=identity_id)


def identity_created(identity_id: str, email: str) -> Event:
    return Event("identity.created", payload={"email": email}, identity_id=identity_id)


def identity_updated(identity_id: str, email: str, refresh_token_rotated: bool) -> Event:
    return Event(
        "identity.updated",
        payload={"email": email, "refresh_token_rotated": refresh_token_rotated},
        identity_id=identity_id,
    )


def ownership_migrated(owner_id: str, migrated: dict[str, int]) -> Event:
    return Event("ownership.migrated", payload={"migrated": migrated}, identity_id=owner_id)
