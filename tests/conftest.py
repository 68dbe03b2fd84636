"""
Shared fixtures: a manual timer, RSA signing helpers and a mocked HTTP cloud.
"""

import inspect
import time
import uuid
from typing import Any, Callable

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa


class FakeHandle:
    def __init__(self, delay: float, callback: Callable[[], Any]):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    async def fire(self):
        result = self.callback()
        if inspect.isawaitable(result):
            await result


class FakeTimer:
    """Records armed timers instead of scheduling them; tests fire them by hand."""

    def __init__(self):
        self.handles: list[FakeHandle] = []

    def after(self, delay, callback):
        handle = FakeHandle(delay, callback)
        self.handles.append(handle)
        return handle

    @property
    def armed(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]


@pytest.fixture
def fake_timer():
    return FakeTimer()


@pytest.fixture(scope="session")
def private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def public_key(private_key):
    return private_key.public_key()


@pytest.fixture
def sign(private_key):
    """Sign claims as the device cloud would. Fresh iat and jti unless given."""

    def _sign(claims: dict | None = None, *, kid: str | None = "key-1", key=None) -> str:
        payload = {"jti": str(uuid.uuid4()), "iat": int(time.time()), "region": "us-east-2_a"}
        payload.update(claims or {})
        headers = {"kid": kid} if kid else {}
        return jwt.encode(payload, key or private_key, algorithm="RS256", headers=headers)

    return _sign


class MockCloud:
    """
    Route table for httpx.MockTransport. Records every request.

    Handlers receive the request and return a Response (sync or async).
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Callable] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, url: str, handler: Callable | dict | list):
        if not callable(handler):
            payload = handler
            handler = lambda request: httpx.Response(200, json=payload)  # noqa: E731
        self.routes[(method.upper(), url)] = handler

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url).split("?")[0]
        handler = self.routes.get((request.method, url))
        if handler is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {url}"})
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method and str(r.url).split("?")[0] == url
        ]


@pytest.fixture
def cloud():
    return MockCloud()
