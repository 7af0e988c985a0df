"""Enums for pipeline stages and failure classification."""

from enum import Enum


class TaskStage(str, Enum):
    """Stage of a per-page fetch task."""

    FETCH = "fetch"
    PARSE = "parse"
    EXTRACT_ROWS = "extract_rows"
    DONE = "done"
    LIST = "list"
    RECONCILE = "reconcile"
    ARTIFACT = "artifact"


class FailureKind(str, Enum):
    """Classification of a task failure."""

    TRANSIENT = "transient"  # retries exhausted
    FETCH = "fetch"  # non-retryable HTTP failure
    PARSE = "parse"
    EXTRACTION = "extraction"
    CONSISTENCY = "consistency"
    STORE = "store"
    UNEXPECTED = "unexpected"


class RunStatus(str, Enum):
    """Status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
