"""
BGGClient - async transport for the BoardGameGeek XML API2.

Performs one HTTP GET per call and returns the parsed XML document. It does
no throttling, caching or retrying of its own: every call is expected to go
through the RequestQueue.
"""

from typing import Any

import httpx
from loguru import logger

from bggcache.datasource.bgg.xml import parse_xml
from bggcache.services.errors import RequestTimeoutError, UpstreamError
from bggcache.settings import global_settings

# Body substituted for an empty HTTP 202, so it classifies as deferred
ACCEPTED_DOCUMENT = {"message": "Request accepted, try again later"}


class BGGClient:
    """
    Transport with a single capability: fetch(endpoint, params) -> document.

    Usage:
        async with BGGClient() as client:
            doc = await client.fetch("thing", {"id": 13, "stats": 1})
    """

    SERVICE_ID = "bgg"

    def __init__(
        self,
        base_url: str | None = None,
        user_agent: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or global_settings.bgg_api_base).rstrip("/")
        self._user_agent = user_agent or global_settings.bgg_user_agent
        self._timeout = timeout or global_settings.bgg_request_timeout

        # HTTP client (lazy initialization)
        self._http_client: httpx.AsyncClient | None = None

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers={
                    "Accept": "application/xml",
                    "User-Agent": self._user_agent,
                },
            )
        return self._http_client

    async def fetch(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        GET {base_url}/{endpoint} and parse the XML body.

        Raises:
            RequestTimeoutError: If the request times out
            UpstreamError: For HTTP error statuses and connection failures
            ResponseParseError: If the body is not well-formed XML
        """
        client = await self._get_http_client()
        url = f"{self.base_url}/{endpoint}"
        query = {k: str(v) for k, v in params.items() if v is not None}
        logger.debug(f"Fetching {url} {query}")

        try:
            response = await client.get(url, params=query)
            response.raise_for_status()

        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.SERVICE_ID, self._timeout) from e

        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"HTTP {e.response.status_code}: {e.response.text[:200]}",
                service_id=self.SERVICE_ID,
            ) from e

        except httpx.RequestError as e:
            raise UpstreamError(str(e), service_id=self.SERVICE_ID) from e

        if response.status_code == 202 and not response.text.strip():
            return dict(ACCEPTED_DOCUMENT)

        return parse_xml(response.text)

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("BGGClient closed")

    async def __aenter__(self) -> "BGGClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
