"""
Bounded Worker Pool
===================

Runs coroutines with a fixed ceiling on how many are in flight at once.
Each task's result or exception is collected separately; one task raising
never cancels its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class TaskSuccess(Generic[T, R]):
    """A task that returned a value."""

    item: T
    value: R


@dataclass
class TaskFailure(Generic[T]):
    """A task that raised."""

    item: T
    error: Exception


@dataclass
class PoolResult(Generic[T, R]):
    """Successes and failures of every task submitted to a pool."""

    successes: list[TaskSuccess[T, R]] = field(default_factory=list)
    failures: list[TaskFailure[T]] = field(default_factory=list)

    @property
    def values(self) -> list[R]:
        return [s.value for s in self.successes]

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)


class WorkerPool(Generic[T, R]):
    """
    Bounded-concurrency task pool.

    Usage:
        pool = WorkerPool(limit=5, name="events")
        for event in events:
            pool.submit(process, event)
        result = await pool.join()

    Or in one step:
        result = await WorkerPool(limit=5).map(process, events)
    """

    def __init__(self, limit: int, name: str = "pool") -> None:
        if limit < 1:
            raise ValueError(f"Pool limit must be >= 1, got {limit}")
        self.limit = limit
        self.name = name
        self._semaphore = asyncio.Semaphore(limit)
        self._tasks: list[tuple[T, asyncio.Task[Any]]] = []
        self._in_flight = 0
        self._peak_in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        """Highest number of tasks that were running at the same time."""
        return self._peak_in_flight

    async def _run_one(self, fn: Callable[[T], Awaitable[R]], item: T) -> R:
        async with self._semaphore:
            self._in_flight += 1
            self._peak_in_flight = max(self._peak_in_flight, self._in_flight)
            try:
                return await fn(item)
            finally:
                self._in_flight -= 1

    def submit(self, fn: Callable[[T], Awaitable[R]], item: T) -> None:
        """Schedule ``fn(item)``; it starts once a slot is free."""
        task = asyncio.create_task(self._run_one(fn, item))
        self._tasks.append((item, task))

    async def join(self) -> PoolResult[T, R]:
        """Wait for every submitted task and collect the outcomes."""
        tasks = self._tasks
        self._tasks = []
        outcomes = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)

        result: PoolResult[T, R] = PoolResult()
        for (item, _), outcome in zip(tasks, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.debug(f"[{self.name}] task for {item!r} failed: {outcome}")
                result.failures.append(TaskFailure(item=item, error=outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.successes.append(TaskSuccess(item=item, value=outcome))
        return result

    async def map(self, fn: Callable[[T], Awaitable[R]], items: Iterable[T]) -> PoolResult[T, R]:
        """Submit ``fn`` for every item and wait for all of them."""
        for item in items:
            self.submit(fn, item)
        return await self.join()
