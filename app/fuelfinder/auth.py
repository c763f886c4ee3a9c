import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

import httpx

from app.fuelfinder.errors import AuthenticationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

EXPIRY_MARGIN_SECONDS = 60
DEFAULT_EXPIRES_IN = 3600


class TokenProvider:
    """
    OAuth2 client-credentials token cache.

    One instance per process. The cached token is reused until it is within
    60 seconds of expiry; invalidate() drops it (callers do that on a 401).
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self._http = http
        self._timeout = timeout
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _cached(self) -> str | None:
        if self._token and self._expires_at and self._clock() < self._expires_at - EXPIRY_MARGIN_SECONDS:
            return self._token
        return None

    async def get_access_token(self) -> str:
        token = self._cached()
        if token:
            return token
        async with self._lock:
            # another caller may have refreshed while we waited
            token = self._cached()
            if token:
                return token
            try:
                return await self._request_token()
            except Exception:
                self.clear_token()
                raise

    def clear_token(self) -> None:
        self._token = None
        self._expires_at = None

    invalidate = clear_token

    async def call_with_token(self, fn: Callable[[str], Awaitable[T]], is_unauthorized: Callable[[T], bool]) -> T:
        """Run fn(token); on a 401 refresh the token and retry exactly once."""
        token = await self.get_access_token()
        result = await fn(token)
        if not is_unauthorized(result):
            return result
        logger.info("Got 401 from Fuel Finder API, refreshing access token")
        if self._token == token:
            self.invalidate()
        token = await self.get_access_token()
        return await fn(token)

    async def _post(self, data: dict) -> httpx.Response:
        headers = {"Accept": "application/json", "User-Agent": "FuelFinder/1.0"}
        if self._http is not None:
            return await self._http.post(self.token_url, data=data, headers=headers)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self.token_url, data=data, headers=headers)

    async def _request_token(self) -> str:
        if not self.is_configured:
            raise AuthenticationError("OAuth credentials not configured")

        logger.info("Requesting OAuth token (client id %s...)", self.client_id[:10])
        r = await self._post(
            {
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            }
        )
        if r.status_code < 200 or r.status_code >= 300:
            raise AuthenticationError("OAuth failed", status=r.status_code, body=r.text)

        try:
            payload = r.json()
        except ValueError:
            raise AuthenticationError("OAuth response was not JSON", status=r.status_code, body=r.text)

        data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else payload
        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("No access token in response", status=r.status_code, body=r.text)

        try:
            expires_in = float(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self._token = str(token)
        self._expires_at = self._clock() + expires_in
        return self._token
