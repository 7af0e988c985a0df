"""Repository classes for dog and run upserts."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trial_harvest.core.schema import Dog, RunCriteria, RunDetails
from trial_harvest.db.models import DogDB, RunDB

logger = logging.getLogger(__name__)


@dataclass
class WriteError:
    """One failed operation in a batch."""

    index: int
    operation: dict[str, Any]
    message: str

    def __str__(self) -> str:
        return f"op #{self.index} {self.operation}: {self.message}"


@dataclass
class BulkWriteResult:
    """
    Outcome of an unordered batch of upserts.

    ``matched`` counts operations that found an existing row, ``modified``
    those that changed it, ``inserted`` those that created one.
    """

    matched: int = 0
    modified: int = 0
    inserted: int = 0
    errors: list[WriteError] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.matched + self.inserted + len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "matched": self.matched,
            "modified": self.modified,
            "inserted": self.inserted,
            "errors": [str(e) for e in self.errors],
        }


def _match(column: Any, value: Any) -> Any:
    """Equality that treats None as IS NULL."""
    return column.is_(None) if value is None else column == value


class DogRepository:
    """Repository for Dog upserts and lookups."""

    def __init__(self, session: Session):
        self.session = session

    def bulk_upsert(self, pairs: Iterable[tuple[str, str]]) -> BulkWriteResult:
        """
        Upsert dogs given as ``(registration_number, registered_name)`` pairs.

        Each pair is matched on both values and inserted if absent. Every
        operation runs in its own savepoint, so one failure leaves the rest
        of the batch intact. The caller commits.
        """
        result = BulkWriteResult()
        for index, (registration_number, registered_name) in enumerate(pairs):
            try:
                with self.session.begin_nested():
                    stmt = select(DogDB).where(
                        DogDB.registration_number == registration_number,
                        DogDB.registered_name == registered_name,
                    )
                    if self.session.execute(stmt).scalars().first() is not None:
                        result.matched += 1
                        continue
                    self.session.add(
                        DogDB(registration_number=registration_number, registered_name=registered_name)
                    )
                    self.session.flush()
                    result.inserted += 1
            except SQLAlchemyError as e:
                logger.warning(f"Dog upsert failed for {registration_number!r}: {e}")
                result.errors.append(
                    WriteError(
                        index=index,
                        operation={
                            "registration_number": registration_number,
                            "registered_name": registered_name,
                        },
                        message=str(e).splitlines()[0],
                    )
                )
        return result

    def find_by_registration_numbers(self, numbers: Iterable[str]) -> dict[str, Dog]:
        """Map registration number to the stored dog, for the numbers that exist."""
        numbers = list(set(numbers))
        if not numbers:
            return {}
        stmt = select(DogDB).where(DogDB.registration_number.in_(numbers))
        rows = self.session.execute(stmt).scalars().all()
        return {row.registration_number: self._to_domain(row) for row in rows}

    def get_by_registration_number(self, number: str) -> Dog | None:
        """Get a dog by registration number."""
        return self.find_by_registration_numbers([number]).get(number)

    def count(self) -> int:
        """Get total count of dogs."""
        stmt = select(func.count()).select_from(DogDB)
        return self.session.execute(stmt).scalar() or 0

    def _to_domain(self, db_item: DogDB) -> Dog:
        return Dog(
            id=db_item.id,
            registration_number=db_item.registration_number,
            registered_name=db_item.registered_name,
        )


class RunRepository:
    """Repository for Run upserts keyed by the natural run key."""

    def __init__(self, session: Session):
        self.session = session

    def _criteria_clause(self, criteria: RunCriteria) -> list[Any]:
        values = criteria.model_dump()
        return [_match(getattr(RunDB, name), values[name]) for name in RunDB.NATURAL_KEY]

    def find(self, criteria: RunCriteria) -> RunDB | None:
        """Find the run with this natural key."""
        stmt = select(RunDB).where(*self._criteria_clause(criteria))
        return self.session.execute(stmt).scalars().first()

    def bulk_upsert(self, items: Iterable[tuple[RunCriteria, RunDetails | None]]) -> BulkWriteResult:
        """
        Upsert runs by natural key.

        A run whose key already exists is left as is (counted as matched).
        Descriptive details are only written when the run is inserted.
        Failures are collected per operation; the caller commits.
        """
        result = BulkWriteResult()
        for index, (criteria, details) in enumerate(items):
            try:
                with self.session.begin_nested():
                    if self.find(criteria) is not None:
                        result.matched += 1
                        continue
                    fields = criteria.model_dump()
                    if details is not None:
                        fields.update(details.model_dump())
                    self.session.add(RunDB(**fields))
                    self.session.flush()
                    result.inserted += 1
            except SQLAlchemyError as e:
                logger.warning(f"Run upsert failed for {criteria}: {e}")
                result.errors.append(
                    WriteError(
                        index=index,
                        operation=criteria.model_dump(mode="json"),
                        message=str(e).splitlines()[0],
                    )
                )
        return result

    def list_for_dog(self, dog_id: str) -> list[RunDB]:
        """List runs for a dog, oldest first."""
        stmt = select(RunDB).where(RunDB.dog_id == dog_id).order_by(RunDB.event_date)
        return list(self.session.execute(stmt).scalars().all())

    def count(self) -> int:
        """Get total count of runs."""
        stmt = select(func.count()).select_from(RunDB)
        return self.session.execute(stmt).scalar() or 0
