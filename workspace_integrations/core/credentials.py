"""
Activation code and action message verification.

Both are JWTs signed by the device cloud. Verification, in order:
1. Decode header and payload without trusting them
2. Reject a missing or already seen jti (replay protection)
3. Reject expired codes: explicit expiryTime/exp, otherwise iat older than 5 minutes
4. Look up the key-set URL for the code's region and fetch the key by kid
5. Verify the signature
"""

import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Literal

import httpx
import jwt
import structlog

from .cache import TTLCache
from .config import Settings, get_settings
from .errors import CredentialError
from .metrics import get_metrics

logger = structlog.get_logger()

ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "PS256", "PS384", "PS512", "ES256", "ES384", "ES512"]

KeyResolver = Callable[[str, str], Awaitable[Any]]


class NonceStore:
    """
    Seen jti values, each kept until the end of its credential's validity window.

    A credential outside that window already fails the freshness check, so
    forgetting its jti afterwards does not reopen a replay.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._seen: dict[str, float] = {}

    def add(self, jti: str, valid_until: float) -> bool:
        """Record jti. Returns False if it was already recorded."""
        self._evict()
        if jti in self._seen:
            return False
        self._seen[jti] = valid_until
        return True

    def _evict(self) -> None:
        now = self._clock()
        expired = [jti for jti, until in self._seen.items() if until < now]
        for jti in expired:
            del self._seen[jti]

    def __contains__(self, jti: str) -> bool:
        return jti in self._seen

    def __len__(self) -> int:
        return len(self._seen)


class KeySetResolver:
    """Fetch signing keys from a JWKS endpoint, caching each key set."""

    def __init__(self, client: httpx.AsyncClient | None = None, ttl: float | None = None):
        settings = get_settings()
        self.client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._cache = TTLCache(ttl=ttl if ttl is not None else settings.cache_ttl_seconds)

    async def _load(self, jwks_url: str) -> list[dict]:
        try:
            response = await self.client.get(jwks_url)
            response.raise_for_status()
            keys = response.json().get("keys", [])
        except (httpx.HTTPError, ValueError) as e:
            raise CredentialError(f"Not able to fetch key set from {jwks_url}: {e}") from e
        if not isinstance(keys, list):
            raise CredentialError(f"Malformed key set from {jwks_url}")
        return keys

    async def __call__(self, jwks_url: str, kid: str) -> Any:
        keys = await self._cache.fetch(jwks_url, lambda: self._load(jwks_url))
        match = next((k for k in keys if k.get("kid") == kid), None)
        if match is None:
            # Keys may have rotated since the set was cached
            keys = await self._load(jwks_url)
            self._cache.set(jwks_url, keys)
            match = next((k for k in keys if k.get("kid") == kid), None)
        if match is None:
            raise CredentialError(f"No signing key with kid {kid}")
        try:
            return jwt.PyJWK(match).key
        except jwt.PyJWTError as e:
            raise CredentialError(f"Unusable signing key {kid}: {e}") from e

    async def close(self):
        await self.client.aclose()


def _parse_expiry(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise CredentialError(f"Invalid expiry time {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.timestamp()
    raise CredentialError(f"Invalid expiry time {value!r}")


class CredentialVerifier:
    """Decode and verify signed activation codes and action messages."""

    def __init__(
        self,
        *,
        key_resolver: KeyResolver | None = None,
        nonces: NonceStore | None = None,
        settings: Settings | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self._owns_resolver = key_resolver is None
        self._key_resolver = key_resolver or KeySetResolver()
        self._nonces = nonces if nonces is not None else get_nonce_store()
        self._clock = clock

    def jwks_url(self, region: str | None) -> str:
        region = region or self.settings.default_region
        url = self.settings.jwks_urls.get(region)
        if not url:
            raise CredentialError(f"Unknown region {region}")
        return url

    def _check_freshness(self, claims: dict) -> None:
        now = self._clock()
        explicit = claims.get("expiryTime") or claims.get("exp")
        if explicit:
            if now > _parse_expiry(explicit):
                raise CredentialError("JWT expired")
            return

        iat = claims.get("iat")
        if not isinstance(iat, (int, float)) or iat < now - self.settings.credential_max_age_seconds:
            raise CredentialError("JWT iat too old")

    def _nonce_lifetime(self, claims: dict) -> float:
        """Until when a jti must be remembered: the later of its expiry and the max-age window."""
        until = self._clock() + self.settings.credential_max_age_seconds
        explicit = claims.get("expiryTime") or claims.get("exp")
        if explicit:
            try:
                until = max(until, _parse_expiry(explicit))
            except CredentialError:
                pass  # Reported by _check_freshness

        return until

    async def verify(self, token: str) -> dict[str, Any]:
        """
        Verify a signed code and return its claims.

        Raises:
            CredentialError: malformed, replayed, stale or badly signed
        """
        try:
            header = jwt.get_unverified_header(token)
            claims = jwt.decode(token, options={"verify_signature": False})
        except jwt.PyJWTError as e:
            raise CredentialError(f"Not able to decode JWT: {e}") from e
        if not isinstance(header, dict) or not isinstance(claims, dict):
            raise CredentialError("Not able to decode JWT")

        jti = claims.get("jti")
        if not jti or not self._nonces.add(jti, self._nonce_lifetime(claims)):
            raise CredentialError("JWT jti not valid")

        self._check_freshness(claims)

        jwks_url = self.jwks_url(claims.get("region"))
        kid = header.get("kid")
        if not kid:
            raise CredentialError("Not able to find kid")
        algorithm = header.get("alg")
        if algorithm not in ALLOWED_ALGORITHMS:
            raise CredentialError(f"Unsupported signing algorithm {algorithm}")

        key = await self._key_resolver(jwks_url, kid)
        try:
            return jwt.decode(
                token,
                key,
                algorithms=[algorithm],
                options={"verify_aud": False},
            )
        except jwt.PyJWTError as e:
            raise CredentialError(f"JWT signature not valid: {e}") from e

    async def decode_and_verify(self, token: str) -> dict[str, Any] | Literal[False]:
        """Non-raising variant: returns the claims, or False if the code is rejected."""
        metrics = get_metrics()
        try:
            claims = await self.verify(token)
        except CredentialError as e:
            logger.warning("credential_rejected", reason=str(e))
            metrics.increment("wi_credential_verifications_total", {"status": "rejected"})
            return False
        except Exception as e:
            logger.error("credential_verification_error", error=repr(e), error_type=type(e).__name__)
            metrics.increment("wi_credential_verifications_total", {"status": "error"})
            return False
        metrics.increment("wi_credential_verifications_total", {"status": "verified"})
        return claims

    async def close(self) -> None:
        """Close the key-set client, if this verifier created it."""
        if self._owns_resolver:
            await self._key_resolver.close()


# Process-lifetime nonce store shared by all verifiers
_nonce_store: NonceStore | None = None


def get_nonce_store() -> NonceStore:
    """Get or create the process-wide nonce store."""
    global _nonce_store
    if _nonce_store is None:
        _nonce_store = NonceStore()
    return _nonce_store
