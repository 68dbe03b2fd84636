"""Workspaces facade: rooms, desks and other locations that hold devices."""

from typing import Any

from workspace_integrations.core.cache import TTLCache
from workspace_integrations.core.config import get_settings
from workspace_integrations.core.http import Transport

from .devices import fetch_all


class Workspaces:
    def __init__(self, transport: Transport):
        self._transport = transport
        self._cache = TTLCache(ttl=get_settings().cache_ttl_seconds)

    async def get_workspaces(self, filters: dict[str, Any] | None = None) -> list[dict]:
        return await fetch_all(self._transport, "workspaces", filters)

    async def get_workspace(self, workspace_id: str) -> dict:
        url = f"workspaces/{workspace_id}"
        return await self._cache.fetch(url, lambda: self._transport.get(url))
