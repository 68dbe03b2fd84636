"""Devices facade: list and look up devices in the org."""

from typing import Any

import structlog

from workspace_integrations.core.cache import TTLCache
from workspace_integrations.core.config import get_settings
from workspace_integrations.core.http import Transport

logger = structlog.get_logger()


async def fetch_all(transport: Transport, resource: str, filters: dict[str, Any] | None = None) -> list[dict]:
    """
    Page through a list endpoint until a short page comes back.

    Shared by the devices and workspaces facades.
    """
    page_size = get_settings().page_size
    result: list[dict] = []
    start = 0
    while True:
        params = {**(filters or {}), "max": page_size, "start": start}
        res = await transport.get(resource, params=params)
        items = res.get("items", []) if isinstance(res, dict) else []
        result.extend(items)
        if len(items) < page_size:
            break
        start += page_size
    logger.debug("list_fetched", resource=resource, count=len(result))
    return result


class Devices:
    """Device metadata changes seldom, so single-device lookups are cached."""

    def __init__(self, transport: Transport):
        self._transport = transport
        self._cache = TTLCache(ttl=get_settings().cache_ttl_seconds)

    async def get_devices(self, filters: dict[str, Any] | None = None) -> list[dict]:
        return await fetch_all(self._transport, "devices", filters)

    async def get_device(self, device_id: str) -> dict:
        url = f"devices/{device_id}"
        return await self._cache.fetch(url, lambda: self._transport.get(url))
