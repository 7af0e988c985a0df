"""
Persistence Reconciler
======================

Writes one event's enriched results to the store as idempotent upserts:
first the dogs, then the runs that reference them. Reconciling the same
event twice inserts nothing the second time.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from trial_harvest.core.schema import (
    EnrichedClass,
    EventSummary,
    PlacementRecord,
    RunCriteria,
    RunDetails,
)
from trial_harvest.db.repositories import BulkWriteResult, DogRepository, RunRepository
from trial_harvest.db.store import Store
from trial_harvest.errors import ConsistencyError

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    """Write counts for one event."""

    event_number: str
    placements: int = 0
    dogs: BulkWriteResult = field(default_factory=BulkWriteResult)
    runs: BulkWriteResult = field(default_factory=BulkWriteResult)

    @property
    def errors(self) -> list[str]:
        return [f"dog {e}" for e in self.dogs.errors] + [f"run {e}" for e in self.runs.errors]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "event_number": self.event_number,
            "placements": self.placements,
            "dogs": self.dogs.to_dict(),
            "runs": self.runs.to_dict(),
        }


def distinct_dogs(classes: Sequence[EnrichedClass]) -> list[tuple[str, str]]:
    """Distinct ``(registration_number, registered_name)`` pairs, in first-seen order."""
    seen: dict[tuple[str, str], None] = {}
    for competition in classes:
        for placement in competition.placements:
            seen.setdefault((placement.registration_number, placement.registered_name), None)
    return list(seen)


def build_run(
    event: EventSummary,
    competition: EnrichedClass,
    placement: PlacementRecord,
    dog_id: str,
) -> tuple[RunCriteria, RunDetails]:
    """Build the natural key and descriptive columns for one placement."""
    criteria = RunCriteria(
        dog_id=dog_id,
        event_date=event.start_date,
        division=competition.division,
        class_name=competition.class_name,
        height=competition.height,
        judge_name=competition.judge_name,
        standard_completion_time=competition.standard_completion_time,
        num_yards=competition.num_yards,
        place=placement.place,
    )
    details = RunDetails(
        event_number=event.event_number,
        club_name=event.club_name or None,
        points=placement.points,
        time=placement.time,
        dog_handler=placement.dog_handler,
        dog_breed=placement.dog_breed,
    )
    return criteria, details


class PersistenceReconciler:
    """Upserts dogs and runs for an event into the store."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def reconcile(self, event: EventSummary, classes: Sequence[EnrichedClass]) -> ReconcileSummary:
        """
        Persist one event's results.

        Steps:
        1. Collect distinct dogs across all placements
        2. Upsert them (matching registration number and name) and commit
        3. Read them back by registration number
        4. Resolve every placement's dog; a miss aborts this event
        5. Upsert runs by natural key and commit

        Raises:
            ConsistencyError: If a dog cannot be read back after its upsert
        """
        summary = ReconcileSummary(event_number=event.event_number)
        summary.placements = sum(len(c.placements) for c in classes)
        pairs = distinct_dogs(classes)
        if not pairs:
            logger.info(f"Event {event.event_number}: no placements to persist")
            return summary

        with self.store.session() as session:
            dogs = DogRepository(session)
            summary.dogs = dogs.bulk_upsert(pairs)
            # Runs reference dogs, so the dogs must be committed first
            session.commit()
            logger.debug(
                f"Event {event.event_number}: dogs matched={summary.dogs.matched} "
                f"inserted={summary.dogs.inserted} failed={len(summary.dogs.errors)}"
            )

            stored = dogs.find_by_registration_numbers(number for number, _ in pairs)

            operations: list[tuple[RunCriteria, RunDetails]] = []
            for competition in classes:
                for placement in competition.placements:
                    dog = stored.get(placement.registration_number)
                    if dog is None:
                        raise ConsistencyError(
                            f"Event {event.event_number}: dog {placement.registration_number} "
                            f"({placement.registered_name!r}) not found after upsert"
                        )
                    operations.append(build_run(event, competition, placement, str(dog.id)))

            summary.runs = RunRepository(session).bulk_upsert(operations)
            session.commit()

        logger.info(
            f"Event {event.event_number}: runs matched={summary.runs.matched} "
            f"inserted={summary.runs.inserted} failed={len(summary.runs.errors)}"
        )
        return summary
