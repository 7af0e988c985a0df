"""
Pipeline Orchestrator
=====================

Wires the harvest stages together:

1. Plan month windows over the date range
2. List concluded events per window
3. Scrape each event's classes (outer pool, ``event_concurrency``)
4. Fetch placements per class (inner pool per event, ``placement_concurrency``)
5. Reconcile dogs and runs into the store
6. Write the per-event artifact

Errors are collected per task and reported at the end; one event failing
never stops the others.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from trial_harvest.config import HarvestConfig, check_concurrency
from trial_harvest.core.enums import FailureKind, RunStatus, TaskStage
from trial_harvest.core.outcomes import Failure
from trial_harvest.core.schema import (
    CompetitionClass,
    EnrichedClass,
    EventResult,
    EventSummary,
    TimeWindow,
)
from trial_harvest.db.store import Store
from trial_harvest.errors import ConsistencyError, FetchError, ParseError, TransientFetchError
from trial_harvest.ingestion.artifacts import ArtifactStorage
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.enricher import PlacementEnricher
from trial_harvest.ingestion.events import EventLister
from trial_harvest.ingestion.intervals import intervals
from trial_harvest.ingestion.pool import WorkerPool
from trial_harvest.ingestion.reconciler import PersistenceReconciler, ReconcileSummary
from trial_harvest.ingestion.retry import RetryPolicy
from trial_harvest.ingestion.scraper import CompetitionScraper

logger = logging.getLogger(__name__)


@dataclass
class TaskError:
    """One failed unit of work."""

    scope: str  # window, event, placement, store
    key: str
    stage: TaskStage
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return f"[{self.scope} {self.key}] {self.stage.value}/{self.kind.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "scope": self.scope,
            "key": self.key,
            "stage": self.stage.value,
            "kind": self.kind.value,
            "message": self.message,
        }

    @classmethod
    def from_failure(cls, scope: str, key: str, failure: Failure) -> TaskError:
        message = f"{failure.message} ({failure.url})" if failure.url else failure.message
        return cls(scope=scope, key=key, stage=failure.stage, kind=failure.kind, message=message)

    @classmethod
    def from_exception(cls, scope: str, key: str, stage: TaskStage, error: BaseException) -> TaskError:
        if isinstance(error, TransientFetchError):
            kind = FailureKind.TRANSIENT
        elif isinstance(error, FetchError):
            kind = FailureKind.FETCH
        elif isinstance(error, ParseError):
            kind = FailureKind.PARSE
        elif isinstance(error, ConsistencyError):
            kind = FailureKind.CONSISTENCY
        elif isinstance(error, SQLAlchemyError):
            kind = FailureKind.STORE
        else:
            kind = FailureKind.UNEXPECTED
        return cls(scope=scope, key=key, stage=stage, kind=kind, message=f"{type(error).__name__}: {error}")


@dataclass
class EventReport:
    """What happened to one event."""

    event_number: str
    scraped: bool = False
    classes_found: int = 0
    classes_enriched: int = 0
    placements: int = 0
    reconcile: ReconcileSummary | None = None
    artifact_path: str | None = None
    diagnostics: list[str] = field(default_factory=list)
    errors: list[TaskError] = field(default_factory=list)


@dataclass
class RunReport:
    """Result of a pipeline run."""

    run_id: str
    status: RunStatus
    range_start: date | None = None
    range_end: date | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    windows_planned: int = 0
    windows_failed: int = 0
    events_listed: int = 0
    events_scraped: int = 0
    events_failed: int = 0
    classes_found: int = 0
    classes_enriched: int = 0
    placements: int = 0
    dogs_inserted: int = 0
    dogs_matched: int = 0
    runs_inserted: int = 0
    runs_matched: int = 0
    artifacts_written: int = 0
    diagnostics: int = 0
    peak_events_in_flight: int = 0
    errors: list[TaskError] = field(default_factory=list)
    duration_seconds: float | None = None

    def add_event(self, event_report: EventReport) -> None:
        """Fold one event's report into the totals."""
        if event_report.scraped:
            self.events_scraped += 1
        else:
            self.events_failed += 1
        self.classes_found += event_report.classes_found
        self.classes_enriched += event_report.classes_enriched
        self.placements += event_report.placements
        self.diagnostics += len(event_report.diagnostics)
        if event_report.reconcile is not None:
            self.dogs_inserted += event_report.reconcile.dogs.inserted
            self.dogs_matched += event_report.reconcile.dogs.matched
            self.runs_inserted += event_report.reconcile.runs.inserted
            self.runs_matched += event_report.reconcile.runs.matched
        if event_report.artifact_path:
            self.artifacts_written += 1
        self.errors.extend(event_report.errors)

    def errors_by_kind(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for error in self.errors:
            counts[error.kind.value] = counts.get(error.kind.value, 0) + 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "range_start": self.range_start.isoformat() if self.range_start else None,
            "range_end": self.range_end.isoformat() if self.range_end else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "windows_planned": self.windows_planned,
            "windows_failed": self.windows_failed,
            "events_listed": self.events_listed,
            "events_scraped": self.events_scraped,
            "events_failed": self.events_failed,
            "classes_found": self.classes_found,
            "classes_enriched": self.classes_enriched,
            "placements": self.placements,
            "dogs_inserted": self.dogs_inserted,
            "dogs_matched": self.dogs_matched,
            "runs_inserted": self.runs_inserted,
            "runs_matched": self.runs_matched,
            "artifacts_written": self.artifacts_written,
            "diagnostics": self.diagnostics,
            "peak_events_in_flight": self.peak_events_in_flight,
            "errors": [e.to_dict() for e in self.errors],
            "duration_seconds": self.duration_seconds,
        }


class PipelineOrchestrator:
    """
    Runs the scrape-fetch-reconcile pipeline.

    The store is optional: without one the pipeline scrapes and writes
    artifacts but persists nothing.
    """

    def __init__(
        self,
        client: ResultsClient,
        store: Store | None = None,
        artifacts: ArtifactStorage | None = None,
        retry: RetryPolicy | None = None,
        max_in_flight: int = 100,
        window_months: int = 1,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.client = client
        self.store = store
        self.artifacts = artifacts
        self.retry = retry or RetryPolicy(retry_on=(TransientFetchError,))
        self.max_in_flight = max_in_flight
        self.window_months = window_months

        self.lister = EventLister(client, self.retry, today=today)
        self.scraper = CompetitionScraper(client, self.retry)
        self.enricher = PlacementEnricher(client, self.retry)
        self.reconciler = PersistenceReconciler(store) if store is not None else None

    @classmethod
    def from_config(
        cls,
        config: HarvestConfig,
        client: ResultsClient,
        store: Store | None,
        today: Callable[[], date] = date.today,
    ) -> PipelineOrchestrator:
        """Build an orchestrator from a loaded configuration."""
        return cls(
            client=client,
            store=store,
            artifacts=ArtifactStorage(config.output_path, save_raw_html=config.harvest.save_raw_html),
            retry=RetryPolicy(
                max_attempts=config.http.max_attempts,
                delay=config.http.retry_delay,
                retry_on=(TransientFetchError,),
            ),
            max_in_flight=config.concurrency.max_in_flight,
            window_months=config.harvest.window_months,
            today=today,
        )

    async def list_events(self, windows: list[TimeWindow], report: RunReport) -> list[EventSummary]:
        """
        List concluded events across all windows.

        Events on a window boundary can appear in two windows; the first
        sighting wins.
        """
        events: dict[str, EventSummary] = {}
        for window in windows:
            try:
                found = await self.lister.list(window)
            except Exception as e:
                logger.error(f"Listing events for {window} failed: {e}")
                report.windows_failed += 1
                report.errors.append(TaskError.from_exception("window", str(window), TaskStage.LIST, e))
                continue
            for event in found:
                events.setdefault(event.event_number, event)
        return list(events.values())

    async def enrich_classes(
        self,
        event: EventSummary,
        classes: list[CompetitionClass],
        placement_concurrency: int,
        event_report: EventReport,
    ) -> list[EnrichedClass]:
        """Fetch placements for every class of one event through a fresh pool."""
        pool: WorkerPool = WorkerPool(placement_concurrency, name=f"placements:{event.event_number}")
        result = await pool.map(self.enricher.enrich, classes)

        enriched: list[EnrichedClass] = []
        for success in result.successes:
            outcome = success.value
            key = f"{event.event_number}/{success.item.run_name}"
            if isinstance(outcome, Failure):
                logger.error(f"Placements for {key} failed: {outcome}")
                event_report.errors.append(TaskError.from_failure("placement", key, outcome))
                continue
            event_report.diagnostics.extend(outcome.diagnostics)
            enriched.append(outcome.value)
        for failure in result.failures:
            key = f"{event.event_number}/{failure.item.run_name}"
            logger.error(f"Placements for {key} raised: {failure.error}")
            event_report.errors.append(
                TaskError.from_exception("placement", key, TaskStage.FETCH, failure.error)
            )
        return enriched

    async def process_event(self, event: EventSummary, placement_concurrency: int) -> EventReport:
        """Scrape, enrich, reconcile and record one event."""
        event_report = EventReport(event_number=event.event_number)

        outcome = await self.scraper.scrape(event)
        if isinstance(outcome, Failure):
            logger.error(f"Event {event.event_number} failed: {outcome}")
            event_report.errors.append(TaskError.from_failure("event", event.event_number, outcome))
            return event_report

        scraped = outcome.value
        event_report.scraped = True
        event_report.classes_found = len(scraped.classes)
        event_report.diagnostics.extend(outcome.diagnostics)

        enriched = await self.enrich_classes(event, scraped.classes, placement_concurrency, event_report)
        event_report.classes_enriched = len(enriched)
        event_report.placements = sum(len(c.placements) for c in enriched)
        logger.info(
            f"Event {event.event_number}: placements added to "
            f"{len(enriched)}/{len(scraped.classes)} classes"
        )

        if self.reconciler is not None:
            try:
                summary = await asyncio.to_thread(self.reconciler.reconcile, event, enriched)
            except (ConsistencyError, SQLAlchemyError) as e:
                logger.error(f"Reconciling event {event.event_number} failed: {e}")
                event_report.errors.append(
                    TaskError.from_exception("event", event.event_number, TaskStage.RECONCILE, e)
                )
            else:
                event_report.reconcile = summary
                for message in summary.errors:
                    event_report.errors.append(
                        TaskError(
                            scope="store",
                            key=event.event_number,
                            stage=TaskStage.RECONCILE,
                            kind=FailureKind.STORE,
                            message=message,
                        )
                    )

        if self.artifacts is not None:
            record = EventResult(
                event=event,
                competitions=enriched,
                diagnostics=event_report.diagnostics,
            )
            try:
                metadata = self.artifacts.save_event(record, scraped.raw_html)
                event_report.artifact_path = metadata.json_path
            except OSError as e:
                logger.error(f"Writing artifact for event {event.event_number} failed: {e}")
                event_report.errors.append(
                    TaskError.from_exception("event", event.event_number, TaskStage.ARTIFACT, e)
                )

        return event_report

    async def run(
        self,
        range_start: date,
        range_end: date,
        event_concurrency: int,
        placement_concurrency: int,
    ) -> RunReport:
        """
        Harvest every concluded event between two dates.

        Raises:
            ConfigError: If the pool sizes exceed the in-flight ceiling
        """
        check_concurrency(event_concurrency, placement_concurrency, self.max_in_flight)

        report = RunReport(
            run_id=str(uuid4()),
            status=RunStatus.RUNNING,
            range_start=range_start,
            range_end=range_end,
            started_at=datetime.now(),
        )

        try:
            windows = list(intervals(range_start, range_end, self.window_months))
            report.windows_planned = len(windows)
            logger.info(f"Planned {len(windows)} windows between {range_start} and {range_end}")

            events = await self.list_events(windows, report)
            report.events_listed = len(events)
            logger.info(f"Scraping {len(events)} events with {event_concurrency} workers")

            pool: WorkerPool = WorkerPool(event_concurrency, name="events")
            result = await pool.map(
                lambda event: self.process_event(event, placement_concurrency), events
            )
            report.peak_events_in_flight = pool.peak_in_flight

            for success in result.successes:
                report.add_event(success.value)
            for failure in result.failures:
                logger.error(f"Event {failure.item.event_number} raised: {failure.error}")
                report.events_failed += 1
                report.errors.append(
                    TaskError.from_exception("event", failure.item.event_number, TaskStage.FETCH, failure.error)
                )

            report.status = RunStatus.COMPLETED
        except Exception as e:
            logger.exception(f"Harvest run failed: {e}")
            report.status = RunStatus.FAILED
            report.errors.append(TaskError.from_exception("run", report.run_id, TaskStage.LIST, e))
        finally:
            report.completed_at = datetime.now()
            if report.started_at and report.completed_at:
                report.duration_seconds = (report.completed_at - report.started_at).total_seconds()

        logger.info(
            f"Run {report.run_id} {report.status.value}: {report.events_scraped} events scraped, "
            f"{report.events_failed} failed, {report.runs_inserted} runs inserted, "
            f"{len(report.errors)} errors"
        )
        return report
