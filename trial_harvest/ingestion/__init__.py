"""
Trial Harvest Ingestion Pipeline
================================

Collects agility trial results from the results site and persists them.

Pipeline Stages:
1. Plan - Split the date range into month windows
2. List - Search each window for events that have concluded
3. Scrape - Fetch each event page and extract its scored classes
4. Enrich - Fetch each class's placement page
5. Reconcile - Upsert dogs, then runs, into the store
6. Record - Write the per-event JSON artifact
"""

from trial_harvest.ingestion.artifacts import (
    ArtifactMetadata,
    ArtifactStorage,
)
from trial_harvest.ingestion.client import (
    ResultsClient,
    build_search_body,
)
from trial_harvest.ingestion.enricher import PlacementEnricher
from trial_harvest.ingestion.events import EventLister
from trial_harvest.ingestion.intervals import (
    IntervalPlan,
    add_months,
    intervals,
)
from trial_harvest.ingestion.pipeline import (
    EventReport,
    PipelineOrchestrator,
    RunReport,
    TaskError,
)
from trial_harvest.ingestion.pool import (
    PoolResult,
    WorkerPool,
)
from trial_harvest.ingestion.reconciler import (
    PersistenceReconciler,
    ReconcileSummary,
)
from trial_harvest.ingestion.retry import (
    RetryPolicy,
    with_retry,
)
from trial_harvest.ingestion.scraper import (
    CompetitionScraper,
    ScrapedEvent,
)

__all__ = [
    # Artifacts
    "ArtifactMetadata",
    "ArtifactStorage",
    # Client
    "ResultsClient",
    "build_search_body",
    # Stages
    "EventLister",
    "CompetitionScraper",
    "ScrapedEvent",
    "PlacementEnricher",
    "PersistenceReconciler",
    "ReconcileSummary",
    # Intervals
    "IntervalPlan",
    "add_months",
    "intervals",
    # Concurrency
    "PoolResult",
    "WorkerPool",
    "RetryPolicy",
    "with_retry",
    # Pipeline
    "EventReport",
    "PipelineOrchestrator",
    "RunReport",
    "TaskError",
]
