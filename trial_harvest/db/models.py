"""SQLAlchemy ORM models for Trial Harvest.

- DogDB: one row per registration number
- RunDB: one row per natural run key (dog, date, class, judge, result)
"""

from datetime import UTC, date, datetime
from uuid import uuid4

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utc_now() -> datetime:
    """Return current UTC datetime (timezone-aware)."""
    return datetime.now(UTC)


def _generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class DogDB(Base):
    """
    Database model for dogs.

    Identity is the registration number. Upserts match on the number and
    the registered name together, so a name scraped with different spelling
    collides with this unique constraint instead of creating a second dog.
    """

    __tablename__ = "dogs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)
    registration_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    registered_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    runs: Mapped[list["RunDB"]] = relationship("RunDB", back_populates="dog")

    def __repr__(self) -> str:
        return f"<DogDB(id={self.id}, reg='{self.registration_number}', name='{self.registered_name}')>"


class RunDB(Base):
    """
    Database model for runs.

    The natural key columns are listed in ``NATURAL_KEY``. The remaining
    columns describe the run and are written once on insert.
    """

    __tablename__ = "runs"

    NATURAL_KEY = (
        "dog_id",
        "event_date",
        "division",
        "class_name",
        "height",
        "judge_name",
        "standard_completion_time",
        "num_yards",
        "place",
    )

    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_runs_natural_key"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_generate_uuid)

    # Natural key
    dog_id: Mapped[str] = mapped_column(String(36), ForeignKey("dogs.id"), nullable=False, index=True)
    event_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    division: Mapped[str | None] = mapped_column(String(100), nullable=True)
    class_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    judge_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    standard_completion_time: Mapped[float | None] = mapped_column(Float, nullable=True)
    num_yards: Mapped[int | None] = mapped_column(Integer, nullable=True)
    place: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Descriptive
    event_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    club_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    points: Mapped[float | None] = mapped_column(Float, nullable=True)
    time: Mapped[float | None] = mapped_column(Float, nullable=True)
    dog_handler: Mapped[str | None] = mapped_column(String(255), nullable=True)
    dog_breed: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utc_now, onupdate=_utc_now)

    dog: Mapped["DogDB"] = relationship("DogDB", back_populates="runs")

    def __repr__(self) -> str:
        return (
            f"<RunDB(id={self.id}, dog_id={self.dog_id}, date={self.event_date}, "
            f"class='{self.class_name}', place={self.place})>"
        )
