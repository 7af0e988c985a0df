"""Pydantic v2 models for Trial Harvest.

These models describe what flows through the pipeline:
- TimeWindow (a slice of the search date range)
- EventSummary (one trial event from the search endpoint)
- CompetitionClass, PlacementRecord, EnrichedClass (scraped results)
- Dog, RunCriteria (what the reconciler writes to the store)

Optional fields are explicit ``X | None`` values. A missing standard course
time is ``None``, never ``0`` or ``NaN``.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def format_us_date(value: date) -> str:
    """Format a date the way the search endpoint expects (``m/d/yyyy``)."""
    return f"{value.month}/{value.day}/{value.year}"


def _coerce_date(value: Any) -> Any:
    """Accept ISO dates, ISO datetimes and US ``m/d/yyyy`` strings."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        text = value.strip()
        if "/" in text:
            return datetime.strptime(text, "%m/%d/%Y").date()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        if "T" in text or " " in text:
            return datetime.fromisoformat(text).date()
    return value


class TimeWindow(BaseModel):
    """A bounded date range used to page through the search endpoint."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def check_order(self) -> "TimeWindow":
        if self.end < self.start:
            raise ValueError(f"Window end {self.end} is before start {self.start}")
        return self

    def as_query(self) -> tuple[str, str]:
        """Return the window as ``(from, to)`` strings for the search body."""
        return format_us_date(self.start), format_us_date(self.end)

    def __str__(self) -> str:
        start, end = self.as_query()
        return f"{start}-{end}"


class EventSummary(BaseModel):
    """
    One event returned by the search endpoint.

    Identity is ``event_number``. Accepts both the camelCase keys of the
    search API and snake_case field names.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    event_number: str = Field(alias="eventNumber")
    event_name: str = Field(default="", alias="eventName")
    club_name: str = Field(default="", alias="clubName")
    start_date: date = Field(alias="startDate")
    end_date: date = Field(alias="endDate")

    @field_validator("event_number", mode="before")
    @classmethod
    def stringify_event_number(cls, v: Any) -> Any:
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("event_name", "club_name", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def parse_dates(cls, v: Any) -> Any:
        return _coerce_date(v)

    def has_concluded(self, today: date) -> bool:
        """True when the event ended strictly before ``today``."""
        return self.end_date < today


class CompetitionClass(BaseModel):
    """
    One scored category within an event.

    A class is only scored when both ``standard_completion_time`` and
    ``num_yards`` are present; anything else is an exhibition class.
    """

    run_name: str
    class_name: str | None = None
    division: str | None = None
    height: int | None = None
    class_href: str
    judge_name: str
    judge_href: str | None = None
    num_entries: int
    standard_completion_time: float | None = None
    num_yards: int | None = None

    @property
    def is_scored(self) -> bool:
        return self.standard_completion_time is not None and self.num_yards is not None


class PlacementRecord(BaseModel):
    """One finisher's result within a competition class."""

    place: int | None = None
    place_text: str = ""
    dog_breed: str | None = None
    dog_handler: str | None = None
    registered_name: str
    registration_number: str
    points: float | None = None
    time: float | None = None


class EnrichedClass(CompetitionClass):
    """A competition class with its placements attached."""

    placements: list[PlacementRecord] = Field(default_factory=list)


class EventResult(BaseModel):
    """The per-event record written to the output artifact."""

    event: EventSummary
    competitions: list[EnrichedClass] = Field(default_factory=list)
    diagnostics: list[str] = Field(default_factory=list)
    scraped_at: datetime = Field(default_factory=datetime.now)


class Dog(BaseModel):
    """A dog, identified by its external registration number."""

    id: UUID = Field(default_factory=uuid4)
    registration_number: str
    registered_name: str


class RunCriteria(BaseModel):
    """
    The natural key of a run.

    Two placements that produce equal criteria are the same run.
    """

    model_config = ConfigDict(frozen=True)

    dog_id: str
    event_date: date
    division: str | None = None
    class_name: str | None = None
    height: int | None = None
    judge_name: str | None = None
    standard_completion_time: float | None = None
    num_yards: int | None = None
    place: int | None = None


class RunDetails(BaseModel):
    """Descriptive run columns that are written with the key but never matched on."""

    event_number: str | None = None
    club_name: str | None = None
    points: float | None = None
    time: float | None = None
    dog_handler: str | None = None
    dog_breed: str | None = None
