"""
HTTP transport for the device cloud.

Every call reads the bearer token through a provider callable at request
time, so a token swapped by the refresh cycle is picked up by the next
request without rebuilding the transport.
"""

import json
import time
from typing import Any, Callable

import httpx
import structlog

from .config import get_settings
from .errors import TransportError
from .metrics import get_metrics

logger = structlog.get_logger()

JSON = "application/json"
JSON_PATCH = "application/json-patch+json"


class Transport:
    """JSON-over-HTTP client bound to a device API base URL."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str | None],
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = get_settings()
        self.base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self.client = client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.settings.request_timeout
        )

    def full_url(self, url: str) -> str:
        """Partial URLs are relative to the device API base URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def _headers(self, content_type: str | None, auth: bool) -> dict[str, str]:
        headers = {"Accept": JSON}
        if content_type:
            headers["Content-Type"] = content_type
        if auth:
            token = self._token_provider()
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        body: Any = None,
        data: dict[str, Any] | None = None,
        content_type: str | None = None,
        auth: bool = True,
        timeout: float | None = None,
    ) -> Any:
        """
        Issue a request and return the decoded JSON body.

        Raises TransportError for network failures, non-2xx responses and
        bodies that are not valid JSON. An empty body decodes to {}.
        """
        method = method.upper()
        full_url = self.full_url(url)
        kwargs: dict[str, Any] = {"params": params}
        if timeout is not None:
            kwargs["timeout"] = timeout
        if data is not None:
            kwargs["data"] = data
        elif body is not None:
            content_type = content_type or JSON
            kwargs["content"] = json.dumps(body)

        metrics = get_metrics()
        start = time.time()
        try:
            response = await self.client.request(
                method,
                full_url,
                headers=self._headers(content_type, auth),
                **kwargs,
            )
        except httpx.TimeoutException as e:
            logger.warning("http_timeout", method=method, url=full_url)
            metrics.increment("wi_http_requests_total", {"method": method, "status": "timeout"})
            raise TransportError(f"{method} {full_url} timed out") from e
        except httpx.RequestError as e:
            logger.warning("http_request_error", method=method, url=full_url, error=repr(e))
            metrics.increment("wi_http_requests_total", {"method": method, "status": "error"})
            raise TransportError(f"{method} {full_url} failed: {type(e).__name__}: {e}") from e
        finally:
            metrics.observe("wi_http_latency_seconds", {"method": method}, value=time.time() - start)

        metrics.increment(
            "wi_http_requests_total", {"method": method, "status": str(response.status_code)}
        )

        if not response.is_success:
            try:
                error_body = response.json()
            except ValueError:
                error_body = response.text
            logger.warning(
                "http_request_failed",
                method=method,
                url=full_url,
                status=response.status_code,
            )
            raise TransportError(
                f"{method} {full_url} failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
                body=error_body,
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {full_url} returned malformed JSON",
                status_code=response.status_code,
                body=response.text,
            ) from e

    async def get(self, url: str, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return await self.request("GET", url, params=params, **kwargs)

    async def post(self, url: str, body: Any = None, **kwargs) -> Any:
        return await self.request("POST", url, body=body, **kwargs)

    async def post_form(self, url: str, data: dict[str, Any]) -> Any:
        """Form-encoded POST without a bearer token (used for the token exchange)."""
        return await self.request("POST", url, data=data, auth=False)

    async def patch(self, url: str, body: Any, content_type: str = JSON, **kwargs) -> Any:
        return await self.request("PATCH", url, body=body, content_type=content_type, **kwargs)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
