"""
Integration session.

connect() validates the options, verifies the activation code, gets the
first access token, activates the integration in the cloud and (for long
polling) starts the poll loop. The returned Integration exposes the
device/workspace/xAPI facades and keeps its token fresh in the background.
"""

import inspect
from typing import Any, Callable

import httpx
import structlog
from pydantic import ValidationError as PydanticValidationError

from workspace_integrations.apis import Devices, Workspaces, Xapi
from workspace_integrations.core.config import IntegrationConfig, configure_logging
from workspace_integrations.core.credentials import CredentialVerifier
from workspace_integrations.core.errors import AuthError, CredentialError, TransportError, ValidationError
from workspace_integrations.core.http import Transport
from workspace_integrations.core.models import AccessToken, ActionNotification, AppConfig, AppInfo, Credential
from workspace_integrations.core.router import NotificationRouter
from workspace_integrations.core.timer import Timer
from workspace_integrations.core.tokens import ErrorHandler, TokenManager
from workspace_integrations.workers.poller import PollLoop

logger = structlog.get_logger()

ActionHandler = Callable[[dict[str, Any]], Any]


def validate_config(config: IntegrationConfig | dict[str, Any]) -> IntegrationConfig:
    """
    Check the connect() options. Unknown keys are logged and otherwise ignored.

    Raises:
        ValidationError: missing client id, client secret or activation code
    """
    if isinstance(config, IntegrationConfig):
        options = config
    else:
        if not isinstance(config, dict):
            raise ValidationError("Config must be a mapping")
        try:
            options = IntegrationConfig.model_validate(config)
        except PydanticValidationError as e:
            raise ValidationError(f"Missing clientId, clientSecret or activationCode in config: {e}") from e

    if not options.client_id or not options.client_secret or not options.activation_code:
        raise ValidationError("Missing clientId, clientSecret or activationCode in config")
    for key in options.unknown_keys():
        logger.error("config_key_unknown", key=key)
    return options


async def load_credential(
    activation_code: str | dict[str, Any], verifier: CredentialVerifier
) -> Credential:
    """
    Turn the activation code into a Credential, verifying it if still signed.

    Raises:
        CredentialError: undecodable, unverifiable or missing required endpoints
    """
    if isinstance(activation_code, str):
        claims = await verifier.verify(activation_code)
    else:
        claims = activation_code
    try:
        credential = Credential.model_validate(claims)
    except PydanticValidationError as e:
        raise CredentialError(
            "activationCode does not contain the expected data (oauthUrl, webexapisBaseUrl)"
        ) from e
    if not credential.oauth_url or not credential.webexapis_base_url:
        raise CredentialError("activationCode does not contain the expected data (oauthUrl, webexapisBaseUrl)")
    return credential


async def _activate(transport: Transport, credential: Credential, options: IntegrationConfig) -> dict:
    """Mark the integration as provisioned and select how notifications are delivered."""
    if not credential.app_url:
        logger.warning("activation_skipped_no_app_url")
        return {}

    body: dict[str, Any] = {"provisioningState": "completed"}
    if options.webhook:
        body["webhook"] = options.webhook.model_dump(by_alias=True, exclude_none=True)
        if options.actions_url:
            body["actionsUrl"] = options.actions_url
    else:
        body["queue"] = {"state": "enabled"}

    try:
        app_info = await transport.patch(credential.app_url, body)
    except TransportError as e:
        raise AuthError(f"Not able to activate integration: {e}") from e
    logger.info("integration_activated", notifications=options.notifications)
    return app_info if isinstance(app_info, dict) else {}


async def connect(
    config: IntegrationConfig | dict[str, Any],
    *,
    client: httpx.AsyncClient | None = None,
    timer: Timer | None = None,
    verifier: CredentialVerifier | None = None,
) -> "Integration":
    """
    Connect an integration and return the running session.

    Raises:
        ValidationError: bad options
        CredentialError: bad activation code
        AuthError: token exchange or activation failed
    """
    options = validate_config(config)
    if options.log_level:
        configure_logging(options.log_level)

    owns_verifier = verifier is None
    verifier = verifier or CredentialVerifier()
    try:
        credential = await load_credential(options.activation_code, verifier)
    except CredentialError:
        if owns_verifier:
            await verifier.close()
        raise

    tokens: TokenManager | None = None
    transport = Transport(
        credential.webexapis_base_url,
        lambda: tokens.current() if tokens else None,
        client=client,
    )
    tokens = TokenManager(
        options.client_id, options.client_secret, credential, transport, timer=timer
    )

    try:
        token = await tokens.acquire()
        logger.info("initial_token_acquired")
        app_info = await _activate(transport, credential, options)
    except AuthError:
        tokens.cancel()
        await transport.close()
        if owns_verifier:
            await verifier.close()
        raise

    poll_url = None
    if options.notifications == "longpolling":
        poll_url = (app_info.get("queue") or {}).get("pollUrl")
        if not poll_url:
            logger.error("poll_url_missing")

    app_config = AppConfig(
        app_id=options.client_id,
        app_secret=options.client_secret,
        access_token=token.value,
        token_expiry_time=token.expires_at,
        activation_code=credential,
        poll_url=poll_url,
        notifications=options.notifications,
    )
    integration = Integration(app_config, transport=transport, tokens=tokens, verifier=verifier)
    integration.start()
    return integration


class Integration:
    """
    A connected integration.

    Facades: devices, workspaces, xapi. Background work: token refresh
    timer, and the poll loop when notifications are long-polled.
    """

    def __init__(
        self,
        app_config: AppConfig,
        *,
        transport: Transport | None = None,
        tokens: TokenManager | None = None,
        timer: Timer | None = None,
        verifier: CredentialVerifier | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.app_config = app_config
        credential = app_config.activation_code

        self.transport = transport or Transport(
            credential.webexapis_base_url, self._current_token, client=client
        )
        self.tokens = tokens or TokenManager(
            app_config.app_id,
            app_config.app_secret,
            credential,
            self.transport,
            timer=timer,
            token=AccessToken(value=app_config.access_token, expires_at=app_config.token_expiry_time),
        )
        self._verifier = verifier or CredentialVerifier()
        self._action_handler: ActionHandler | None = None

        self.router = NotificationRouter()
        self.router.on_action(self._verify_action)
        self.devices = Devices(self.transport)
        self.workspaces = Workspaces(self.transport)
        self.xapi = Xapi(self.transport, self.router)
        self.poller: PollLoop | None = None
        if app_config.poll_url:
            self.poller = PollLoop(self.transport, self.router, app_config.poll_url)

    def _current_token(self) -> str | None:
        return self.tokens.current()

    def start(self) -> None:
        """Arm the token refresh (if not armed yet) and start polling. Needs a running loop."""
        token = self.tokens.token
        if not self.tokens.scheduled and token is not None:
            self.tokens.schedule_from_expiry(token.expires_at)
        if self.poller is not None and not self.poller.running:
            logger.info("notifications_long_polling")
            self.poller.start()
        elif self.app_config.notifications == "webhook":
            logger.info("notifications_web_hook")

    @property
    def token_expiry_time(self):
        token = self.tokens.token
        return token.expires_at if token else None

    def on_error(self, handler: ErrorHandler | None) -> None:
        """Called with a message when the background token refresh fails."""
        self.tokens.on_error(handler)

    def on_action(self, handler: ActionHandler | None) -> None:
        """Called with the verified claims of each action message."""
        self._action_handler = handler

    async def refresh_token(self) -> bool:
        return await self.tokens.refresh()

    async def web_api_call(
        self,
        partial_url: str,
        method: str = "GET",
        body: Any = None,
        content_type: str | None = None,
    ) -> Any:
        """Call any REST endpoint not covered by the facades, e.g. "locations"."""
        return await self.transport.request(method, partial_url, body=body, content_type=content_type)

    async def ping(self) -> dict:
        if not self.app_config.activation_code.app_url:
            raise ValidationError("No app URL in the activation code")
        return await self.transport.get(self.app_config.activation_code.app_url)

    async def get_app_info(self) -> AppInfo:
        return AppInfo.model_validate(await self.ping())

    async def decode_jwt(self, token: str):
        """Verify a signed message from the cloud. Returns its claims, or False."""
        return await self._verifier.decode_and_verify(token)

    async def process_notifications(self, records: list[dict]) -> None:
        """Entry point for notification batches, e.g. received on a web hook."""
        await self.router.process_notifications(records)

    async def _verify_action(self, notification: ActionNotification) -> None:
        if self._action_handler is None:
            return
        claims = await self._verifier.decode_and_verify(notification.jwt)
        if not claims:
            logger.error("action_verification_failed", device=notification.device_id)
            return
        result = self._action_handler(claims)
        if inspect.isawaitable(result):
            await result

    def serialize(self) -> dict[str, Any]:
        """Resumption state for deserialize(). Contains secrets: store it safely."""
        token = self.tokens.token
        state = self.app_config
        if token is not None:
            state = state.model_copy(
                update={"access_token": token.value, "token_expiry_time": token.expires_at}
            )
        return state.model_dump(mode="json", by_alias=True)

    @classmethod
    async def deserialize(cls, data: dict[str, Any], **kwargs) -> "Integration":
        """Restore a session saved with serialize() and start its background work."""
        integration = cls(AppConfig.model_validate(data), **kwargs)
        integration.start()
        return integration

    connect = staticmethod(connect)

    async def close(self) -> None:
        """Stop polling and the refresh timer, and close the HTTP clients (verifier included)."""
        self.tokens.cancel()
        if self.poller is not None:
            await self.poller.close()
        await self.transport.close()
        await self._verifier.close()
        logger.info("integration_closed")
