"""
Core domain models for the integration client.

- Credential: decoded activation code (endpoints + refresh token)
- AccessToken: current bearer token and its absolute expiry
- Notification variants: typed views of the records delivered by polling or web hooks
- AppConfig: resumption state for serialize()/deserialize()
"""

from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .config import NotificationMode


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Credential(BaseModel):
    """
    Decoded activation code.

    Only oauth_url and webexapis_base_url are required for connecting;
    the remaining claims matter when the code is verified.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    oauth_url: str = Field(alias="oauthUrl")
    refresh_token: str = Field(default="", alias="refreshToken")
    webexapis_base_url: str = Field(alias="webexapisBaseUrl")
    app_url: str | None = Field(default=None, alias="appUrl")
    kid: str | None = None
    region: str | None = None
    jti: str | None = None
    expiry_time: datetime | None = Field(default=None, alias="expiryTime")
    iat: float | None = None


class AccessToken(BaseModel):
    """Bearer token value with its absolute expiry. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    value: str
    expires_at: datetime


# ------------------------------------------------------------------
# Notifications
# ------------------------------------------------------------------


class _NotificationBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    device_id: str | None = Field(default=None, alias="deviceId")
    workspace_id: str | None = Field(default=None, alias="workspaceId")
    org_id: str | None = Field(default=None, alias="orgId")
    app_id: str | None = Field(default=None, alias="appId")
    timestamp: str | None = None


class StatusChanges(BaseModel):
    model_config = ConfigDict(extra="allow")

    updated: dict[str, Any] = Field(default_factory=dict)


class StatusNotification(_NotificationBase):
    type: Literal["status"] = "status"
    changes: StatusChanges = Field(default_factory=StatusChanges)


class EventEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str
    value: Any = None


class EventsNotification(_NotificationBase):
    type: Literal["events"] = "events"
    events: list[EventEntry] = Field(default_factory=list)


class HealthCheckNotification(_NotificationBase):
    type: Literal["healthCheck"] = "healthCheck"


class ActionNotification(_NotificationBase):
    type: Literal["action"] = "action"
    jwt: str


class UnknownNotification(_NotificationBase):
    type: str | None = None


Notification = Union[
    StatusNotification,
    EventsNotification,
    HealthCheckNotification,
    ActionNotification,
    UnknownNotification,
]

_NOTIFICATION_TYPES: dict[str, type[BaseModel]] = {
    "status": StatusNotification,
    "events": EventsNotification,
    "healthCheck": HealthCheckNotification,
    "action": ActionNotification,
}


def parse_notification(raw: dict[str, Any] | BaseModel) -> Notification:
    """
    Convert a raw notification record into its typed variant.

    Raises pydantic.ValidationError if a known type has the wrong shape.
    """
    if isinstance(raw, BaseModel):
        return raw  # type: ignore[return-value]
    model = _NOTIFICATION_TYPES.get(raw.get("type"), UnknownNotification)
    return model.model_validate(raw)  # type: ignore[return-value]


# ------------------------------------------------------------------
# Session state and API shapes
# ------------------------------------------------------------------


class AppConfig(BaseModel):
    """Everything needed to resume a connected integration without reconnecting."""

    model_config = ConfigDict(populate_by_name=True)

    app_id: str = Field(alias="appId")
    app_secret: str = Field(alias="appSecret")
    access_token: str = Field(alias="accessToken")
    token_expiry_time: datetime = Field(alias="tokenExpiryTime")
    activation_code: Credential = Field(alias="activationCode")
    poll_url: str | None = Field(default=None, alias="pollUrl")
    notifications: NotificationMode = "none"


class AppInfo(BaseModel):
    """Integration details as returned by the app URL."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    manifest_version: int | None = Field(default=None, alias="manifestVersion")
    scopes: list[str] = Field(default_factory=list)
    provisioning_state: str | None = Field(default=None, alias="provisioningState")
    public_location_ids: list[str] = Field(default_factory=list, alias="publicLocationIds")
    queue: dict[str, Any] | None = None
