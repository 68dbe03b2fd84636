"""Exception hierarchy for the integration client."""

from typing import Any


class IntegrationError(Exception):
    """Base class for all errors raised by this library."""

    pass


class AuthError(IntegrationError):
    """Raised when the token exchange or integration activation fails."""

    pass


class CredentialError(IntegrationError):
    """Raised when an activation code is malformed, replayed, expired or unverifiable."""

    pass


class TransportError(IntegrationError):
    """Raised for non-2xx responses and network-level failures."""

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ValidationError(IntegrationError, ValueError):
    """Raised for malformed caller input, before any network call is made."""

    pass


class NotFoundError(IntegrationError):
    """Raised when a status or config path returns nothing (usually missing from the manifest)."""

    pass
