"""
Competition Scraper
===================

Fetches an event's detail page and extracts the scored competition
classes listed on it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from trial_harvest.core.enums import FailureKind, TaskStage
from trial_harvest.core.outcomes import Failure, Outcome, Success
from trial_harvest.core.schema import CompetitionClass, EventSummary
from trial_harvest.errors import FetchError, ParseError, TransientFetchError
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.parser import (
    child_tags,
    extract_class_info,
    extract_entries_info,
    extract_judge_info,
    find_candidate_rows,
    is_trial_row,
    parse_html,
)
from trial_harvest.ingestion.retry import RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ScrapedEvent:
    """Scored classes found on one event page, plus the page itself."""

    event: EventSummary
    classes: list[CompetitionClass] = field(default_factory=list)
    raw_html: str = ""
    candidate_rows: int = 0
    trial_rows: int = 0
    unscored_classes: int = 0
    diagnostics: list[str] = field(default_factory=list)


def fetch_failure(stage: TaskStage, error: FetchError) -> Failure:
    """Map a fetch exception onto a Failure value."""
    kind = FailureKind.TRANSIENT if isinstance(error, TransientFetchError) else FailureKind.FETCH
    return Failure(stage=stage, kind=kind, message=str(error), url=error.url)


class CompetitionScraper:
    """Scrapes competition classes from event detail pages."""

    def __init__(self, client: ResultsClient, retry: RetryPolicy | None = None) -> None:
        self.client = client
        self.retry = retry or RetryPolicy(retry_on=(TransientFetchError,))

    @property
    def domain(self) -> str:
        return self.client.site.domain

    async def scrape(self, event: EventSummary) -> Outcome[ScrapedEvent]:
        """
        Run FETCH -> PARSE -> EXTRACT_ROWS for one event.

        Returns:
            Success with the scored classes, or a Failure naming the stage
            that stopped the task. There is no partial fallback: a failed
            fetch or parse yields no classes at all.
        """
        url = self.client.site.event_url(event.event_number)

        # FETCH
        try:
            html = await self.retry.run(
                lambda: self.client.fetch_page(url),
                description=f"event {event.event_number}",
            )
        except FetchError as e:
            return fetch_failure(TaskStage.FETCH, e)

        # PARSE
        try:
            soup = parse_html(html)
        except ParseError as e:
            logger.warning(f"Cannot parse HTML for event {event.event_number}, skipping: {e}")
            return Failure(stage=TaskStage.PARSE, kind=FailureKind.PARSE, message=str(e), url=url)

        # EXTRACT_ROWS
        result = ScrapedEvent(event=event, raw_html=html)
        candidates = find_candidate_rows(soup)
        trial_rows = [row for row in candidates if is_trial_row(row)]
        result.candidate_rows = len(candidates)
        result.trial_rows = len(trial_rows)
        logger.debug(
            f"Event {event.event_number}: captured {len(candidates)} rows, "
            f"filtered down to {len(trial_rows)} trial rows"
        )

        for row in trial_rows:
            _, class_cell, judge_cell, entries_cell = child_tags(row)
            class_info = extract_class_info(class_cell, self.domain)
            judge_info = extract_judge_info(judge_cell, self.domain)
            entries_info = extract_entries_info(entries_cell)
            if class_info is None or judge_info is None or entries_info is None:
                missing = [
                    name
                    for name, info in (
                        ("class", class_info),
                        ("judge", judge_info),
                        ("entries", entries_info),
                    )
                    if info is None
                ]
                message = (
                    f"Event {event.event_number}: row missing {', '.join(missing)}: "
                    f"{row.get_text(' ', strip=True)[:120]!r}"
                )
                logger.warning(message)
                result.diagnostics.append(message)
                continue

            competition = CompetitionClass(
                run_name=class_info.run_name,
                class_name=class_info.class_name,
                division=class_info.division,
                height=class_info.height,
                class_href=class_info.class_href,
                judge_name=judge_info.judge_name,
                judge_href=judge_info.judge_href,
                num_entries=entries_info.num_entries,
                standard_completion_time=entries_info.standard_completion_time,
                num_yards=entries_info.num_yards,
            )
            # Classes without a course time and yardage are not scored
            if not competition.is_scored:
                result.unscored_classes += 1
                continue
            result.classes.append(competition)

        logger.info(
            f"Event {event.event_number}: {len(result.classes)} scored classes "
            f"({result.unscored_classes} unscored, {len(result.diagnostics)} rows dropped)"
        )
        return Success(value=result, diagnostics=list(result.diagnostics))
