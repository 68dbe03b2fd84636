"""
Client for workspace integrations: receive device status and events from
the device cloud and send commands and configuration changes back.

    integration = await connect({
        "clientId": ..., "clientSecret": ..., "activationCode": ...,
        "notifications": "longpolling",
    })
    integration.xapi.status.on("RoomAnalytics.PeopleCount", on_people_count)
"""

from .core.errors import (
    AuthError,
    CredentialError,
    IntegrationError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from .integration import Integration, connect

__all__ = [
    "connect",
    "Integration",
    "IntegrationError",
    "AuthError",
    "CredentialError",
    "TransportError",
    "ValidationError",
    "NotFoundError",
]
