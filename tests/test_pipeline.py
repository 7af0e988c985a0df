"""End-to-end tests for the pipeline orchestrator."""

import asyncio
import json
from datetime import date
from pathlib import Path

import httpx
import pytest

from conftest import event_page, no_sleep, placement_page, placement_row, raw_event, trial_row
from trial_harvest.config import HarvestConfig, SiteConfig
from trial_harvest.core.enums import FailureKind, RunStatus, TaskStage
from trial_harvest.db.repositories import DogRepository, RunRepository
from trial_harvest.db.store import Store
from trial_harvest.errors import ConfigError, TransientFetchError
from trial_harvest.ingestion.artifacts import ArtifactStorage
from trial_harvest.ingestion.client import ResultsClient
from trial_harvest.ingestion.pipeline import PipelineOrchestrator, RunReport, TaskError
from trial_harvest.ingestion.retry import RetryPolicy

RETRY = RetryPolicy(max_attempts=2, delay=0, retry_on=(TransientFetchError,), sleep=no_sleep)
TODAY = date(2021, 6, 1)

EVENTS = [
    raw_event("100", "2021-01-09", "2021-01-10"),
    raw_event("200", "2021-01-16", "2021-01-17"),
    raw_event("300", "2021-06-05", "2021-06-06"),  # not over yet
]

EVENT_100 = event_page(
    trial_row('Ag Novice A (16")', "/apps/results?class=1"),
    trial_row('Ag JWW Novice A (16")', "/apps/results?class=2"),
    trial_row('Time 2 Beat Novice (16")', "/apps/results?class=3", entries="(3 ent)"),
)

CLASS_1 = placement_page(
    placement_row("1", "DN111", "MACH Speedy"),
    placement_row("2", "DN222", "Zoom Along", points="pts 90 Time 35.2"),
)


class SiteSimulator:
    """Serves the search endpoint, event pages and placement pages."""

    def __init__(self, site: SiteConfig, failing_windows: tuple[str, ...] = ()) -> None:
        self.site = site
        self.failing_windows = failing_windows
        self.requests: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.raw_path.decode()
        self.requests.append(f"{request.method} {path}")

        if request.method == "POST":
            window_from = json.loads(request.content)["dateRange"]["from"]
            if window_from in self.failing_windows:
                return httpx.Response(500)
            return httpx.Response(200, json={"events": EVENTS})
        if path == "/events?event_number=100":
            return httpx.Response(200, text=EVENT_100)
        if path == "/apps/results?class=1":
            return httpx.Response(200, text=CLASS_1)
        if path == "/apps/results?class=2":
            return httpx.Response(503)
        return httpx.Response(404)


def _orchestrator(
    site: SiteConfig,
    handler,
    store: Store | None,
    output_dir: Path,
) -> tuple[ResultsClient, PipelineOrchestrator]:
    client = ResultsClient(site=site, transport=httpx.MockTransport(handler))
    orchestrator = PipelineOrchestrator(
        client,
        store=store,
        artifacts=ArtifactStorage(output_dir),
        retry=RETRY,
        today=lambda: TODAY,
    )
    return client, orchestrator


class TestPipelineRun:
    """Tests for a complete run."""

    @pytest.mark.asyncio
    async def test_full_run(self, site: SiteConfig, store: Store, temp_dir: Path) -> None:
        simulator = SiteSimulator(site)
        client, orchestrator = _orchestrator(site, simulator, store, temp_dir / "out")

        async with client:
            report = await orchestrator.run(date(2021, 1, 1), date(2021, 3, 1), 2, 2)

        assert report.status == RunStatus.COMPLETED
        assert report.windows_planned == 2
        assert report.windows_failed == 0
        # Both windows return the same events; each is processed once
        assert report.events_listed == 2
        assert report.events_scraped == 1
        assert report.events_failed == 1
        assert report.classes_found == 2
        assert report.classes_enriched == 1
        assert report.placements == 2
        assert report.dogs_inserted == 2
        assert report.runs_inserted == 2
        assert report.artifacts_written == 1
        assert report.errors_by_kind() == {"fetch": 1, "transient": 1}

        by_scope = {e.scope: e for e in report.errors}
        assert by_scope["event"].key == "200"
        assert by_scope["event"].stage == TaskStage.FETCH
        assert by_scope["placement"].key == '100/Ag JWW Novice A (16")'
        # The unscored class is never fetched
        assert "GET /apps/results?class=3" not in simulator.requests

        with store.session() as session:
            assert DogRepository(session).count() == 2
            assert RunRepository(session).count() == 2

        artifact = json.loads((temp_dir / "out" / "100.json").read_text())
        assert artifact["event"]["event_number"] == "100"
        assert len(artifact["competitions"]) == 1
        assert (temp_dir / "out" / "100.html").exists()

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, site: SiteConfig, store: Store, temp_dir: Path) -> None:
        client, orchestrator = _orchestrator(site, SiteSimulator(site), store, temp_dir / "out")

        async with client:
            await orchestrator.run(date(2021, 1, 1), date(2021, 2, 1), 2, 2)
            report = await orchestrator.run(date(2021, 1, 1), date(2021, 2, 1), 2, 2)

        assert report.dogs_inserted == 0
        assert report.dogs_matched == 2
        assert report.runs_inserted == 0
        assert report.runs_matched == 2
        with store.session() as session:
            assert RunRepository(session).count() == 2

    @pytest.mark.asyncio
    async def test_failed_window_does_not_stop_others(
        self, site: SiteConfig, store: Store, temp_dir: Path
    ) -> None:
        simulator = SiteSimulator(site, failing_windows=("1/1/2021",))
        client, orchestrator = _orchestrator(site, simulator, store, temp_dir / "out")

        async with client:
            report = await orchestrator.run(date(2021, 1, 1), date(2021, 3, 1), 2, 2)

        assert report.status == RunStatus.COMPLETED
        assert report.windows_failed == 1
        assert report.events_listed == 2
        window_errors = [e for e in report.errors if e.scope == "window"]
        assert len(window_errors) == 1
        assert window_errors[0].kind == FailureKind.TRANSIENT
        assert window_errors[0].stage == TaskStage.LIST

    @pytest.mark.asyncio
    async def test_without_store(self, site: SiteConfig, temp_dir: Path) -> None:
        client, orchestrator = _orchestrator(site, SiteSimulator(site), None, temp_dir / "out")

        async with client:
            report = await orchestrator.run(date(2021, 1, 1), date(2021, 2, 1), 1, 1)

        assert report.placements == 2
        assert report.runs_inserted == 0
        assert report.artifacts_written == 1

    @pytest.mark.asyncio
    async def test_empty_range(self, site: SiteConfig, store: Store, temp_dir: Path) -> None:
        simulator = SiteSimulator(site)
        client, orchestrator = _orchestrator(site, simulator, store, temp_dir / "out")

        async with client:
            report = await orchestrator.run(date(2021, 3, 1), date(2021, 3, 1), 2, 2)

        assert report.status == RunStatus.COMPLETED
        assert report.windows_planned == 0
        assert simulator.requests == []

    @pytest.mark.asyncio
    async def test_unsafe_concurrency_is_rejected(self, site: SiteConfig, store: Store, temp_dir: Path) -> None:
        simulator = SiteSimulator(site)
        client, orchestrator = _orchestrator(site, simulator, store, temp_dir / "out")

        async with client:
            with pytest.raises(ConfigError):
                await orchestrator.run(date(2021, 1, 1), date(2021, 2, 1), 20, 10)

        assert simulator.requests == []

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, site: SiteConfig, temp_dir: Path) -> None:
        """Simultaneous requests never exceed event_concurrency x placement_concurrency."""
        events = [raw_event(str(n), "2021-01-09", "2021-01-10") for n in range(1, 9)]
        page = event_page(*(trial_row('Ag Novice A (16")', f"/apps/results?class={n}") for n in range(6)))
        state = {"active": 0, "peak": 0}

        async def handler(request: httpx.Request) -> httpx.Response:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
            try:
                await asyncio.sleep(0.005)
                if request.method == "POST":
                    return httpx.Response(200, json=events)
                if request.url.path == "/events":
                    return httpx.Response(200, text=page)
                return httpx.Response(200, text=CLASS_1)
            finally:
                state["active"] -= 1

        client = ResultsClient(site=site, transport=httpx.MockTransport(handler))
        orchestrator = PipelineOrchestrator(client, retry=RETRY, max_in_flight=6, today=lambda: TODAY)

        async with client:
            report = await orchestrator.run(date(2021, 1, 1), date(2021, 2, 1), 2, 3)

        assert report.events_scraped == 8
        assert report.classes_enriched == 48
        assert report.peak_events_in_flight <= 2
        assert state["peak"] <= 6


class TestFromConfig:
    """Tests for building an orchestrator from configuration."""

    def test_uses_config_values(self, site: SiteConfig, temp_dir: Path) -> None:
        config = HarvestConfig.from_dict(
            {
                "http": {"max_attempts": 4, "retry_delay": 1.5},
                "concurrency": {"max_in_flight": 50},
                "harvest": {"output_dir": str(temp_dir / "artifacts"), "window_months": 2},
            }
        )
        orchestrator = PipelineOrchestrator.from_config(config, ResultsClient(site=site), store=None)

        assert orchestrator.retry.max_attempts == 4
        assert orchestrator.retry.delay == 1.5
        assert orchestrator.max_in_flight == 50
        assert orchestrator.window_months == 2
        assert orchestrator.artifacts.base_path == (temp_dir / "artifacts").resolve()
        assert orchestrator.reconciler is None


class TestRunReport:
    """Tests for report serialization."""

    def test_to_dict(self) -> None:
        report = RunReport(run_id="r1", status=RunStatus.COMPLETED, range_start=date(2021, 1, 1))
        report.errors.append(
            TaskError(
                scope="event",
                key="100",
                stage=TaskStage.FETCH,
                kind=FailureKind.FETCH,
                message="HTTP 404",
            )
        )
        data = report.to_dict()

        assert data["status"] == "completed"
        assert data["range_start"] == "2021-01-01"
        assert data["errors"] == [
            {"scope": "event", "key": "100", "stage": "fetch", "kind": "fetch", "message": "HTTP 404"}
        ]

    def test_task_error_from_exception(self) -> None:
        error = TaskError.from_exception("window", "w", TaskStage.LIST, TransientFetchError("HTTP 503"))
        assert error.kind == FailureKind.TRANSIENT
        assert "HTTP 503" in str(error)
