"""Core: configuration, models, transport, tokens, credentials and routing."""

from .config import IntegrationConfig, Settings, configure_logging, get_settings
from .credentials import CredentialVerifier, KeySetResolver, NonceStore, get_nonce_store
from .errors import (
    AuthError,
    CredentialError,
    IntegrationError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from .http import Transport
from .models import (
    AccessToken,
    ActionNotification,
    AppConfig,
    AppInfo,
    Credential,
    EventsNotification,
    HealthCheckNotification,
    Notification,
    StatusNotification,
    UnknownNotification,
    parse_notification,
)
from .paths import path_match
from .router import ListenerRegistration, NotificationRouter
from .timer import LoopTimer
from .tokens import TokenManager

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "IntegrationConfig",
    "configure_logging",
    # Errors
    "IntegrationError",
    "AuthError",
    "CredentialError",
    "TransportError",
    "ValidationError",
    "NotFoundError",
    # Models
    "Credential",
    "AccessToken",
    "AppConfig",
    "AppInfo",
    "Notification",
    "StatusNotification",
    "EventsNotification",
    "HealthCheckNotification",
    "ActionNotification",
    "UnknownNotification",
    "parse_notification",
    # Services
    "Transport",
    "TokenManager",
    "LoopTimer",
    "CredentialVerifier",
    "KeySetResolver",
    "NonceStore",
    "get_nonce_store",
    "NotificationRouter",
    "ListenerRegistration",
    "path_match",
]
