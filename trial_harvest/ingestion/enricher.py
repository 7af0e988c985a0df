"""
Placement Enricher
==================

Fetches a competition class's placement page and attaches the finishers.
"""

from __future__ import annotations

import logging

from trial_harvest.core.enums import FailureKind, TaskStage
from trial_harvest.core.outcomes import Failure, Outcome, Success
from trial_harvest.core.schema import CompetitionClass, EnrichedClass
from trial_harvest.errors import FetchError, ParseError, TransientFetchError
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.parser import extract_placement, find_placement_rows, parse_html
from trial_harvest.ingestion.retry import RetryPolicy
from trial_harvest.ingestion.scraper import fetch_failure

logger = logging.getLogger(__name__)


class PlacementEnricher:
    """
    Attaches placements to competition classes.

    The task moves FETCH -> PARSE -> EXTRACT_ROWS -> DONE. Only FETCH is
    retried; a page that does not parse will not parse on the next try
    either.
    """

    def __init__(self, client: ResultsClient, retry: RetryPolicy | None = None) -> None:
        self.client = client
        self.retry = retry or RetryPolicy(retry_on=(TransientFetchError,))

    async def enrich(self, competition: CompetitionClass) -> Outcome[EnrichedClass]:
        """
        Fetch placements for one class.

        Returns:
            Success with an EnrichedClass, or a Failure at FETCH or PARSE
        """
        url = competition.class_href

        # FETCH
        try:
            html = await self.retry.run(
                lambda: self.client.fetch_page(url),
                description=f"placements {competition.run_name}",
            )
        except FetchError as e:
            return fetch_failure(TaskStage.FETCH, e)

        # PARSE
        try:
            soup = parse_html(html)
        except ParseError as e:
            logger.warning(f"Could not read HTML response of {url}: {e}")
            return Failure(stage=TaskStage.PARSE, kind=FailureKind.PARSE, message=str(e), url=url)

        # EXTRACT_ROWS
        diagnostics: list[str] = []
        placements = []
        for row in find_placement_rows(soup):
            placement = extract_placement(row)
            if placement is None:
                message = f"Dropped placement row on {url}: {row.get_text(' ', strip=True)[:120]!r}"
                logger.warning(message)
                diagnostics.append(message)
                continue
            placements.append(placement)

        if not placements:
            logger.debug(f"No placements found on {url}")

        enriched = EnrichedClass(**competition.model_dump(), placements=placements)
        return Success(value=enriched, diagnostics=diagnostics)
