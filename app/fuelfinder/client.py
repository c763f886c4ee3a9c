import logging

import httpx

from app.core.settings import settings
from app.fuelfinder.auth import TokenProvider
from app.fuelfinder.errors import FetchError, InvalidResponseError
from app.fuelfinder.parsers import unwrap_list

logger = logging.getLogger(__name__)

STATIONS_PATH = "/pfs"
PRICES_PATH = "/pfs/fuel-prices"


def build_token_provider() -> TokenProvider:
    return TokenProvider(
        settings.FUEL_FINDER_TOKEN_URL,
        settings.FUEL_FINDER_CLIENT_ID,
        settings.FUEL_FINDER_CLIENT_SECRET,
        timeout=settings.FUEL_FINDER_TIMEOUT_SECONDS,
    )


class FuelFinderClient:
    def __init__(
        self,
        tokens: TokenProvider | None = None,
        *,
        base_url: str | None = None,
        page_size: int | None = None,
        max_batches: int | None = None,
        timeout: float | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.base = (base_url or settings.FUEL_FINDER_API_URL).rstrip("/")
        self.tokens = tokens or build_token_provider()
        self.page_size = page_size or settings.SYNC_PAGE_SIZE
        self.max_batches = max_batches if max_batches is not None else settings.SYNC_MAX_BATCHES
        self.timeout = timeout or settings.FUEL_FINDER_TIMEOUT_SECONDS
        self._http = http

    def _headers(self, token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def get_batch(self, client: httpx.AsyncClient, path: str, batch_number: int, params: dict | None = None) -> list:
        url = f"{self.base}{path}"
        query = dict(params or {})
        query["batch-number"] = batch_number

        async def _get(token: str) -> httpx.Response:
            try:
                return await client.get(url, params=query, headers=self._headers(token))
            except httpx.HTTPError as e:
                raise FetchError(
                    batch_number,
                    message=f"API request failed on batch {batch_number}: {e.__class__.__name__}: {e}",
                ) from e

        r = await self.tokens.call_with_token(_get, lambda resp: resp.status_code == 401)
        if r.status_code < 200 or r.status_code >= 300:
            raise FetchError(batch_number, status=r.status_code, body=r.text)

        try:
            payload = r.json()
        except ValueError:
            raise InvalidResponseError(batch_number)

        items = unwrap_list(payload, ["data", "stations", "prices"])
        if items is None:
            raise InvalidResponseError(batch_number)
        return items

    async def fetch_all_batches(
        self,
        path: str,
        extra_params: dict | None = None,
        *,
        max_batches: int | None = None,
        allow_partial: bool = False,
    ) -> list:
        """
        Walk batch-number pages from 1 until an empty batch or one shorter
        than the page size. A dataset that is an exact multiple of the page
        size costs one extra (empty) request.

        With allow_partial, a failure after at least one good batch returns
        what was fetched so far instead of raising.
        """
        cap = max_batches if max_batches is not None else self.max_batches

        if self._http is not None:
            return await self._walk(self._http, path, extra_params, cap, allow_partial)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._walk(client, path, extra_params, cap, allow_partial)

    async def _walk(self, client, path, extra_params, cap, allow_partial) -> list:
        records: list = []
        batch_number = 1
        while True:
            if cap is not None and batch_number > cap:
                logger.warning("Stopping %s after %d batches (max batches reached)", path, cap)
                break

            try:
                items = await self.get_batch(client, path, batch_number, extra_params)
            except FetchError as e:
                if allow_partial and records:
                    logger.error("Batch %d of %s failed, continuing with %d records: %s", batch_number, path, len(records), e)
                    break
                raise

            size = len(items)
            logger.info("%s batch %d: %d records", path, batch_number, size)
            if size == 0:
                break
            records.extend(items)
            if size < self.page_size:
                break
            batch_number += 1

        logger.info("Fetched %d records from %s", len(records), path)
        return records

    async def fetch_stations(self, *, allow_partial: bool = True) -> list:
        return await self.fetch_all_batches(STATIONS_PATH, allow_partial=allow_partial)

    async def fetch_prices(self, since: str | None = None) -> list:
        params = {"since": since} if since else None
        return await self.fetch_all_batches(PRICES_PATH, params)
