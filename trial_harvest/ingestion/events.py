"""
Event Lister
============

Turns one search window into the events worth scraping: those that have
already finished.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date
from typing import Any

from pydantic import ValidationError

from trial_harvest.core.schema import EventSummary, TimeWindow
from trial_harvest.errors import ParseError, TransientFetchError
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.retry import RetryPolicy

logger = logging.getLogger(__name__)


def to_event_summary(raw: dict[str, Any]) -> EventSummary:
    """
    Map a raw search result onto an EventSummary.

    Raises:
        ParseError: If a required key is missing or malformed
    """
    try:
        return EventSummary.model_validate(raw)
    except ValidationError as e:
        number = raw.get("eventNumber", "?") if isinstance(raw, dict) else "?"
        raise ParseError(f"Malformed event {number}: {e.error_count()} field error(s)") from e


class EventLister:
    """Lists concluded events for a window."""

    def __init__(
        self,
        client: ResultsClient,
        retry: RetryPolicy | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.client = client
        self.retry = retry or RetryPolicy(retry_on=(TransientFetchError,))
        self._today = today

    async def list(self, window: TimeWindow) -> list[EventSummary]:
        """
        Query the search endpoint and keep the events that ended before today.

        Errors from the query are not caught here; the caller treats them as
        a failure of this window only.
        """
        raw_events = await self.retry.run(
            lambda: self.client.search_events(window),
            description=f"search {window}",
        )
        today = self._today()
        events: list[EventSummary] = []
        for raw in raw_events:
            try:
                events.append(to_event_summary(raw))
            except ParseError as e:
                logger.warning(f"Skipping event in {window}: {e}")
        concluded = [e for e in events if e.has_concluded(today)]
        logger.info(
            f"Received {len(events)} events between {window.start} and {window.end}, "
            f"{len(concluded)} have concluded"
        )
        return concluded
