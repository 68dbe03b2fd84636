"""
Tests for the devices and workspaces facades: paging and metadata caching.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from workspace_integrations.apis.devices import Devices
from workspace_integrations.apis.workspaces import Workspaces
from workspace_integrations.core.http import Transport

BASE = "https://api.example.com/v1"


def _small_pages():
    settings = MagicMock()
    settings.page_size = 2
    settings.cache_ttl_seconds = 3600
    return settings


@pytest.mark.asyncio
async def test_get_devices_pages_until_short_page(cloud):
    pages = {"0": [{"id": "a"}, {"id": "b"}], "2": [{"id": "c"}, {"id": "d"}], "4": [{"id": "e"}]}
    cloud.on(
        "GET",
        f"{BASE}/devices",
        lambda request: httpx.Response(200, json={"items": pages[request.url.params["start"]]}),
    )

    with patch("workspace_integrations.apis.devices.get_settings", return_value=_small_pages()):
        devices = Devices(Transport(BASE, lambda: "T1", client=cloud.client()))
        result = await devices.get_devices({"tag": "wi-demo"})

    assert [d["id"] for d in result] == ["a", "b", "c", "d", "e"]
    assert [r.url.params["start"] for r in cloud.requests] == ["0", "2", "4"]
    assert all(r.url.params["tag"] == "wi-demo" for r in cloud.requests)
    assert all(r.url.params["max"] == "2" for r in cloud.requests)


@pytest.mark.asyncio
async def test_get_device_is_cached(cloud):
    cloud.on("GET", f"{BASE}/devices/d1", {"id": "d1", "displayName": "Room 1"})
    devices = Devices(Transport(BASE, lambda: "T1", client=cloud.client()))

    first = await devices.get_device("d1")
    second = await devices.get_device("d1")

    assert first == second == {"id": "d1", "displayName": "Room 1"}
    assert len(cloud.requests) == 1


@pytest.mark.asyncio
async def test_workspaces_list_and_lookup(cloud):
    cloud.on("GET", f"{BASE}/workspaces", {"items": [{"id": "w1"}]})
    cloud.on("GET", f"{BASE}/workspaces/w1", {"id": "w1", "displayName": "Huddle"})
    workspaces = Workspaces(Transport(BASE, lambda: "T1", client=cloud.client()))

    assert await workspaces.get_workspaces() == [{"id": "w1"}]
    assert (await workspaces.get_workspace("w1"))["displayName"] == "Huddle"
