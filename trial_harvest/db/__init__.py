"""Database persistence layer."""

from trial_harvest.db.models import Base, DogDB, RunDB
from trial_harvest.db.repositories import (
    BulkWriteResult,
    DogRepository,
    RunRepository,
    WriteError,
)
from trial_harvest.db.store import Store, create_db_engine, get_database_url

__all__ = [
    # Store
    "Store",
    "create_db_engine",
    "get_database_url",
    # Models
    "Base",
    "DogDB",
    "RunDB",
    # Repositories
    "BulkWriteResult",
    "DogRepository",
    "RunRepository",
    "WriteError",
]
