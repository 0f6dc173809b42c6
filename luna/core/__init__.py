"""
Core module - data models, errors and the lifecycle event bus.
"""

from luna.core.models import (
    ANONYMOUS,
    ANONYMOUS_ID,
    OWNER_FIELD,
    RESOURCE_TYPES,
    Anonymous,
    Authenticated,
    Identity,
    Principal,
    Session,
)
from luna.core.events import Event, EventBus, get_event_bus, reset_event_bus
from luna.core.errors import (
    AuthError,
    ClaimValidationError,
    ConfigurationError,
    DuplicateIdentityError,
    IdentityNotFound,
    LunaError,
    MigrationError,
    NoIdentityError,
    SessionPersistenceError,
)

__all__ = [
    # Models
    "ANONYMOUS",
    "ANONYMOUS_ID",
    "OWNER_FIELD",
    "RESOURCE_TYPES",
    "Anonymous",
    "Authenticated",
    "Identity",
    "Principal",
    "Session",
    # Events
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    # Errors
    "AuthError",
    "ClaimValidationError",
    "ConfigurationError",
    "DuplicateIdentityError",
    "IdentityNotFound",
    "LunaError",
    "MigrationError",
    "NoIdentityError",
    "SessionPersistenceError",
]
