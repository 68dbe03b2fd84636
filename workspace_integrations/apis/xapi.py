"""
xAPI facade: commands, statuses, configurations and events on devices.

Paths may use dots or spaces ("Audio Volume" == "Audio.Volume").
Input is validated before any HTTP call is made.
"""

from typing import Any

import structlog

from workspace_integrations.core.errors import NotFoundError, ValidationError
from workspace_integrations.core.http import JSON_PATCH, Transport
from workspace_integrations.core.paths import normalize_path, remove_path, to_tree
from workspace_integrations.core.router import Listener, ListenerRegistration, NotificationRouter

logger = structlog.get_logger()


def _require(device_id: Any, path: Any, operation: str) -> None:
    if not isinstance(device_id, str) or not device_id or not isinstance(path, str) or not path:
        raise ValidationError(f"{operation}: missing deviceId or path")


class Status:
    def __init__(self, transport: Transport, router: NotificationRouter):
        self._transport = transport
        self._router = router

    async def get(self, device_id: str, path: str) -> Any:
        """
        Read a status value or subtree. "Audio.*" returns the whole Audio subtree.

        Raises:
            NotFoundError: the path returned nothing (is it in the manifest?)
        """
        _require(device_id, path, "xStatus")
        name = normalize_path(path)
        res = await self._transport.get("xapi/status", params={"deviceId": device_id, "name": name})
        answer = res.get("result") if isinstance(res, dict) else None
        if not answer:
            raise NotFoundError("xStatus not found. Did you include the API in the manifest?")
        return remove_path(name, answer)

    def on(self, path: str, listener: Listener) -> ListenerRegistration:
        return self._router.on_status(path, listener)


class Config:
    def __init__(self, transport: Transport):
        self._transport = transport

    async def get(self, device_id: str, path: str) -> Any:
        _require(device_id, path, "xConfig")
        name = normalize_path(path)
        res = await self._transport.get(
            "deviceConfigurations", params={"deviceId": device_id, "key": name}
        )
        items = res.get("items") if isinstance(res, dict) else None
        if not items:
            raise NotFoundError("xConfig not found on device. Did you include the API in the manifest?")
        return remove_path(name, to_tree(items))

    async def set(self, device_id: str, path: str, value: Any) -> Any:
        """Requires the spark-admin:devices-write scope."""
        _require(device_id, path, "xConfig")
        return await self._patch(device_id, {normalize_path(path): value})

    async def set_many(self, device_id: str, values: dict[str, Any]) -> Any:
        """
        Set several configs with a single HTTP call:

            await xapi.config.set_many(device_id, {"Audio.DefaultVolume": 60})
        """
        if not isinstance(device_id, str) or not device_id:
            raise ValidationError("xConfig: missing deviceId")
        if not isinstance(values, dict) or not values:
            raise ValidationError("xConfig: values must be a non-empty mapping of path to value")
        return await self._patch(device_id, {normalize_path(p): v for p, v in values.items()})

    async def _patch(self, device_id: str, values: dict[str, Any]) -> Any:
        body = [
            {"op": "replace", "path": f"{path}/sources/configured/value", "value": value}
            for path, value in values.items()
        ]
        return await self._transport.patch(
            "deviceConfigurations", body, content_type=JSON_PATCH, params={"deviceId": device_id}
        )


class Event:
    def __init__(self, router: NotificationRouter):
        self._router = router

    def on(self, path: str, listener: Listener) -> ListenerRegistration:
        return self._router.on_event(path, listener)


class Xapi:
    """Commands, status, config and events for devices in the org."""

    def __init__(self, transport: Transport, router: NotificationRouter):
        self._transport = transport
        self.status = Status(transport, router)
        self.config = Config(transport)
        self.event = Event(router)

    async def command(
        self,
        device_id: str,
        path: str,
        params: dict[str, Any] | None = None,
        multiline: str | None = None,
    ) -> Any:
        """Invoke a command on a device and return its result."""
        _require(device_id, path, "xCommand")
        if params is not None and not isinstance(params, dict):
            raise ValidationError("xCommand: params must be a mapping")

        body: dict[str, Any] = {"deviceId": device_id}
        if params:
            body["arguments"] = params
        if multiline:
            body["body"] = multiline

        res = await self._transport.post(f"xapi/command/{normalize_path(path)}", body)
        return res.get("result") if isinstance(res, dict) else None
