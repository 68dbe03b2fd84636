"""
Access token lifecycle.

The token is obtained by exchanging the activation code's refresh token
at the OAuth endpoint and renewed on a timer 15 minutes before it expires.
A failed renewal is reported to the error handler and is not retried:
the owning application decides whether to reconnect.
"""

import asyncio
import inspect
import math
from datetime import datetime, timedelta
from typing import Any, Callable

import structlog

from .config import get_settings
from .errors import AuthError, TransportError
from .http import Transport
from .metrics import get_metrics
from .models import AccessToken, Credential, utcnow
from .timer import LoopTimer, Timer, TimerHandle

logger = structlog.get_logger()

ErrorHandler = Callable[[str], Any]


class TokenManager:
    """Owns the current access token and its refresh schedule."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        credential: Credential,
        transport: Transport,
        *,
        timer: Timer | None = None,
        token: AccessToken | None = None,
    ):
        self.settings = get_settings()
        self.client_id = client_id
        self.client_secret = client_secret
        self.credential = credential
        self.transport = transport
        self._timer = timer or LoopTimer()
        self._handle: TimerHandle | None = None
        self._token = token
        self._lock = asyncio.Lock()
        self._error_handler: ErrorHandler | None = None
        self._closed = False

    @property
    def token(self) -> AccessToken | None:
        return self._token

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def current(self) -> str | None:
        """Token provider for the transport: the value current right now."""
        token = self._token
        return token.value if token else None

    def on_error(self, handler: ErrorHandler | None) -> None:
        self._error_handler = handler

    def refresh_delay(self, lifetime: float) -> float:
        """Seconds until the next refresh, keeping a safety margin before expiry."""
        margin = self.settings.token_refresh_margin_seconds
        if lifetime > margin:
            return lifetime - margin
        return lifetime / 2

    async def _exchange(self) -> tuple[AccessToken, float]:
        form = {
            "grant_type": "refresh_token",
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": self.credential.refresh_token,
        }
        try:
            data = await self.transport.post_form(self.credential.oauth_url, form)
        except TransportError as e:
            raise AuthError(f"Token exchange failed: {e}") from e

        if not isinstance(data, dict) or "access_token" not in data or "expires_in" not in data:
            raise AuthError("Token exchange returned an unexpected body")
        value = data["access_token"]
        if not isinstance(value, str) or not value:
            raise AuthError("Token exchange returned an empty access_token")
        try:
            lifetime = float(data["expires_in"])
        except (TypeError, ValueError) as e:
            raise AuthError(f"Token exchange returned invalid expires_in: {data['expires_in']!r}") from e
        if not math.isfinite(lifetime) or lifetime <= 0:
            raise AuthError(f"Token exchange returned invalid expires_in: {data['expires_in']!r}")

        try:
            token = AccessToken(value=value, expires_at=utcnow() + timedelta(seconds=lifetime))
        except (OverflowError, ValueError) as e:
            raise AuthError(f"Token exchange returned invalid expires_in: {data['expires_in']!r}") from e
        return token, lifetime

    async def acquire(self) -> AccessToken:
        """
        Initial token acquisition.

        Raises:
            AuthError: if the exchange fails for any reason
        """
        metrics = get_metrics()
        async with self._lock:
            try:
                token, lifetime = await self._exchange()
            except AuthError:
                metrics.increment("wi_token_requests_total", {"kind": "acquire", "status": "error"})
                raise
            self._token = token
            metrics.increment("wi_token_requests_total", {"kind": "acquire", "status": "success"})
            logger.info("token_acquired", expires_at=token.expires_at.isoformat())
            self.schedule(self.refresh_delay(lifetime))
            return token

    async def refresh(self) -> bool:
        """
        Renew the token with the stored refresh token.

        On success the new token replaces the old one in a single assignment
        and the next refresh is armed. On failure the error handler is
        called and nothing is rescheduled. After cancel() it does nothing
        and returns False, even if the exchange was already under way.
        """
        metrics = get_metrics()
        async with self._lock:
            if self._closed:
                return False
            self._cancel_timer()
            try:
                token, lifetime = await self._exchange()
            except AuthError as e:
                if self._closed:
                    logger.info("token_refresh_discarded", reason="closed")
                    return False
                metrics.increment("wi_token_requests_total", {"kind": "refresh", "status": "error"})
                logger.error("token_refresh_failed", error=str(e))
                await self._notify_error(f"Not able to refresh token. {e}")
                return False

            if self._closed:
                logger.info("token_refresh_discarded", reason="closed")
                return False
            self._token = token
            metrics.increment("wi_token_requests_total", {"kind": "refresh", "status": "success"})
            logger.info("token_refreshed", expires_at=token.expires_at.isoformat())
            self.schedule(self.refresh_delay(lifetime))
            return True

    def schedule(self, delay: float) -> None:
        """Arm the single refresh timer, replacing any armed one."""
        if self._closed:
            return
        self._cancel_timer()
        logger.debug(
            "token_refresh_scheduled",
            at=(utcnow() + timedelta(seconds=delay)).isoformat(),
        )
        self._handle = self._timer.after(delay, self.refresh)

    def schedule_from_expiry(self, expires_at: datetime) -> None:
        """Arm the refresh timer for a token restored from saved state."""
        remaining = (expires_at - utcnow()).total_seconds()
        self.schedule(max(remaining - self.settings.token_refresh_margin_seconds, 0))

    def cancel(self) -> None:
        """Stop for good: disarm the timer and discard any refresh still in flight."""
        self._closed = True
        self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def _notify_error(self, message: str) -> None:
        if self._error_handler is None:
            return
        try:
            result = self._error_handler(message)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("error_handler_failed", error=repr(e))
