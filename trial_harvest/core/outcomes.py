"""
Task Outcomes
=============

Per-page tasks (event detail, placement detail) run as a small state
machine: FETCH -> PARSE -> EXTRACT_ROWS -> DONE. Each transition either
advances or stops with a ``Failure`` naming the stage it stopped at, so
callers inspect values instead of catching exceptions from deep inside
chained coroutines.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar, Union

from trial_harvest.core.enums import FailureKind, TaskStage

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """A task that reached DONE."""

    value: T
    diagnostics: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Failure:
    """A task that stopped before DONE."""

    stage: TaskStage
    kind: FailureKind
    message: str
    url: str | None = None

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        where = f" ({self.url})" if self.url else ""
        return f"{self.stage.value}/{self.kind.value}: {self.message}{where}"


Outcome = Union[Success[T], Failure]
