"""
Results Site Client
===================

Thin HTTP layer over the results site: the event search endpoint and the
HTML detail pages. Transport failures are classified here so the retry
wrapper only ever sees errors worth retrying.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from trial_harvest.config import HttpConfig, SiteConfig
from trial_harvest.core.schema import TimeWindow
from trial_harvest.errors import FetchError, ParseError, TransientFetchError

logger = logging.getLogger(__name__)

# Status codes that indicate the server is busy rather than the request being wrong
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def build_search_body(window: TimeWindow, site: SiteConfig) -> dict[str, Any]:
    """
    Build the JSON body of a search request for one window.

    The search form wants every location filter spelled out even when
    searching everywhere.
    """
    date_from, date_to = window.as_query()
    return {
        "address": {
            "eventSetting": {"indoor": True, "outdoor": True, "outsideCovered": True},
            "location": {"cityState": "", "latitude": 0, "longitude": 0, "zipCode": None},
            "radius": "any",
            "searchByState": False,
            "searchByCity": False,
            "searchText": "All Cities & States",
        },
        "breedCode": "4444",
        "breedName": "All-American Dogs",
        "breedId": "ALL_AMERICAN",
        "dateRange": {"from": date_from, "to": date_to, "type": "event"},
        "competition": {
            "items": [
                {
                    "selected": True,
                    "value": {"compType": site.competition_type},
                    "label": site.competition_label,
                }
            ],
            "filters": [],
        },
    }


class ResultsClient:
    """
    Async client for the results site.

    Holds a single ``httpx.AsyncClient`` with the static browser-like
    headers the site expects. Use as an async context manager or call
    ``close()`` when done.
    """

    def __init__(
        self,
        site: SiteConfig | None = None,
        http: HttpConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.site = site or SiteConfig()
        self.http = http or HttpConfig()
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.site.user_agent,
            "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "x-csrf-token": self.site.csrf_token,
        }

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.headers,
                timeout=self.http.request_timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> ResultsClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request and classify any failure."""
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientFetchError(f"Timeout after {self.http.request_timeout}s", url=url) from e
        except httpx.TransportError as e:
            raise TransientFetchError(f"Connection error: {e}", url=url) from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientFetchError(
                f"HTTP {response.status_code}", url=url, status_code=response.status_code
            )
        if response.is_error:
            raise FetchError(f"HTTP {response.status_code}", url=url, status_code=response.status_code)
        return response

    async def fetch_page(self, url: str) -> str:
        """Fetch a page and return its decoded body."""
        logger.debug(f"Fetching: {url}")
        response = await self._request("GET", url)
        return response.text

    async def fetch_event_page(self, event_number: str) -> str:
        """Fetch the detail page for an event."""
        return await self.fetch_page(self.site.event_url(event_number))

    async def search_events(self, window: TimeWindow) -> list[dict[str, Any]]:
        """
        Query the search endpoint for one window.

        Returns:
            The raw event objects from the response

        Raises:
            TransientFetchError: On connection problems or busy responses
            FetchError: On other HTTP errors
            ParseError: If the response is not the expected JSON
        """
        response = await self._request(
            "POST",
            self.site.search_url,
            json=build_search_body(window, self.site),
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Sec-Fetch-Dest": "empty",
                "Sec-Fetch-Mode": "cors",
                "Sec-Fetch-Site": "same-origin",
            },
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise ParseError(f"Search response for {window} is not JSON: {e}") from e

        if isinstance(payload, dict):
            payload = payload.get("events")
        if not isinstance(payload, list):
            raise ParseError(f"Search response for {window} has no event list")
        return payload
