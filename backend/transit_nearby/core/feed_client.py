"""HTTP fetch capability used to download the static GTFS archive."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from transit_nearby.core.errors import DownloadError

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
RETRY_BACKOFF = [2, 4, 8]  # seconds between retries


@dataclass
class FetchResponse:
    status_code: int
    content: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class FeedFetcher(Protocol):
    async def get(self, url: str) -> FetchResponse: ...


class HttpxFeedFetcher:
    """Downloads binary content over HTTP with retry on transient failures."""

    def __init__(
        self,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
            headers={"Accept": "application/zip, application/octet-stream"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get(self, url: str) -> FetchResponse:
        """GET request with retry and exponential backoff.

        Non-2xx responses are returned once retries are exhausted; transport
        failures raise DownloadError.
        """
        for attempt in range(MAX_RETRIES + 1):
            try:
                resp = await self._client.get(url)
            except (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError) as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BACKOFF[attempt]
                    logger.warning(
                        "GET %s attempt %d/%d failed (%s), retrying in %ds",
                        url, attempt + 1, MAX_RETRIES + 1, type(e).__name__, wait,
                    )
                    await asyncio.sleep(wait)
                    continue
                logger.error("GET %s failed after %d attempts: %s", url, MAX_RETRIES + 1, e)
                raise DownloadError(None, f"GTFS download failed ({type(e).__name__})") from e
            except httpx.HTTPError as e:
                raise DownloadError(None, f"GTFS download failed ({type(e).__name__})") from e

            if resp.status_code >= 500 and attempt < MAX_RETRIES:
                wait = RETRY_BACKOFF[attempt]
                logger.warning(
                    "GET %s attempt %d/%d got HTTP %d, retrying in %ds",
                    url, attempt + 1, MAX_RETRIES + 1, resp.status_code, wait,
                )
                await asyncio.sleep(wait)
                continue
            return FetchResponse(status_code=resp.status_code, content=resp.content)

        raise DownloadError(None)
