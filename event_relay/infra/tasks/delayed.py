"""Delayed-task queue used to schedule webhook delivery attempts.

Delivery retries are queued through a small ``run_after`` contract rather
than raw timers, so scheduling is observable and tests can fast-forward
virtual time instead of sleeping.

Two implementations:
- APSchedulerTaskQueue: one-shot ``date`` jobs on an AsyncIOScheduler
- ManualTaskQueue: virtual clock advanced explicitly, for tests
"""

from __future__ import annotations

import heapq
import inspect
import itertools
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from apscheduler.events import (  # type: ignore[import-untyped]
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_JOB_REMOVED,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.date import DateTrigger  # type: ignore[import-untyped]

from event_relay.infra.metrics.prometheus import webhook_retries_scheduled

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ScheduledTask:
    """A task accepted by a delayed-task queue."""

    id: str
    name: str
    delay: float
    run_at: datetime


@runtime_checkable
class DelayedTaskQueue(Protocol):
    """Run-after contract for deferred work."""

    def run_after(
        self,
        delay: float,
        func: Callable[..., Awaitable[Any] | Any],
        *args: Any,
        name: str | None = None,
    ) -> ScheduledTask: ...

    def cancel(self, task_id: str) -> bool: ...

    def pending(self) -> list[ScheduledTask]: ...


class APSchedulerTaskQueue:
    """Delayed-task queue backed by APScheduler's AsyncIOScheduler.

    Jobs added before start() are held by the scheduler and fire once it
    starts. Jobs never expire as misfires: a retry that is due late still runs.
    """

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": False,
                "max_instances": 1,
                "misfire_grace_time": None,
            },
        )
        self._pending: dict[str, ScheduledTask] = {}
        self._started = False
        self._scheduler.add_listener(
            self._on_job_finished,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED | EVENT_JOB_REMOVED,
        )

    @property
    def running(self) -> bool:
        # AsyncIOScheduler finishes shutdown on a later loop tick
        return self._started and bool(self._scheduler.running)

    def start(self) -> None:
        """Start the scheduler (requires a running event loop)."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("Delayed-task scheduler started", extra={"pending": len(self._pending)})
        self._started = True

    def shutdown(self, *, wait: bool = False) -> None:
        """Stop the scheduler. Pending tasks are dropped."""
        self._started = False
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Delayed-task scheduler stopped", extra={"dropped": len(self._pending)})
        self._pending.clear()
        webhook_retries_scheduled.set(0)

    def run_after(
        self,
        delay: float,
        func: Callable[..., Awaitable[Any] | Any],
        *args: Any,
        name: str | None = None,
    ) -> ScheduledTask:
        task_id = uuid.uuid4().hex
        run_at = datetime.now(UTC) + timedelta(seconds=max(delay, 0.0))
        task = ScheduledTask(id=task_id, name=name or func.__name__, delay=delay, run_at=run_at)
        self._scheduler.add_job(
            func,
            trigger=DateTrigger(run_date=run_at),
            args=args,
            id=task_id,
            name=task.name,
        )
        self._pending[task_id] = task
        webhook_retries_scheduled.set(len(self._pending))
        return task

    def cancel(self, task_id: str) -> bool:
        if task_id not in self._pending:
            return False
        self._scheduler.remove_job(task_id)
        self._pending.pop(task_id, None)
        webhook_retries_scheduled.set(len(self._pending))
        return True

    def pending(self) -> list[ScheduledTask]:
        return sorted(self._pending.values(), key=lambda t: t.run_at)

    def _on_job_finished(self, event: Any) -> None:
        self._pending.pop(event.job_id, None)
        webhook_retries_scheduled.set(len(self._pending))
        if getattr(event, "exception", None) is not None:
            logger.error(
                "Delayed task raised",
                extra={"task_id": event.job_id, "error": str(event.exception)},
            )


@dataclass(order=True, slots=True)
class _Entry:
    due: datetime
    seq: int
    task: ScheduledTask = field(compare=False)
    func: Callable[..., Any] = field(compare=False)
    args: tuple[Any, ...] = field(compare=False)


class ManualTaskQueue:
    """Virtual-time delayed-task queue.

    Nothing runs until advance() (or drain()) is awaited. Tasks scheduled by
    running tasks are picked up in the same advance() call when they fall
    inside the window, always in due order.

    Example:
        queue = ManualTaskQueue()
        queue.run_after(2.0, deliver, delivery_id, 2)
        await queue.advance(1.9)   # nothing runs
        await queue.advance(0.1)   # deliver(delivery_id, 2) runs
    """

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(UTC)
        self._heap: list[_Entry] = []
        self._seq = itertools.count()
        self._cancelled: set[str] = set()
        self.history: list[ScheduledTask] = []

    def clock(self) -> datetime:
        """Current virtual time."""
        return self._now

    def run_after(
        self,
        delay: float,
        func: Callable[..., Awaitable[Any] | Any],
        *args: Any,
        name: str | None = None,
    ) -> ScheduledTask:
        run_at = self._now + timedelta(seconds=max(delay, 0.0))
        task = ScheduledTask(
            id=uuid.uuid4().hex,
            name=name or getattr(func, "__name__", "task"),
            delay=delay,
            run_at=run_at,
        )
        heapq.heappush(self._heap, _Entry(run_at, next(self._seq), task, func, args))
        self.history.append(task)
        return task

    def cancel(self, task_id: str) -> bool:
        if any(entry.task.id == task_id for entry in self._heap) and task_id not in self._cancelled:
            self._cancelled.add(task_id)
            return True
        return False

    def pending(self) -> list[ScheduledTask]:
        return [
            entry.task
            for entry in sorted(self._heap)
            if entry.task.id not in self._cancelled
        ]

    async def advance(self, seconds: float = 0.0) -> int:
        """Move virtual time forward, running every task that falls due.

        Returns:
            Number of tasks executed.
        """
        target = self._now + timedelta(seconds=seconds)
        executed = 0
        while self._heap and self._heap[0].due <= target:
            entry = heapq.heappop(self._heap)
            if entry.task.id in self._cancelled:
                self._cancelled.discard(entry.task.id)
                continue
            self._now = max(self._now, entry.due)
            await self._run(entry)
            executed += 1
        self._now = max(self._now, target)
        return executed

    async def drain(self, max_tasks: int = 10_000) -> int:
        """Run tasks in due order until the queue is empty.

        Raises:
            RuntimeError: If more than ``max_tasks`` tasks run (a task that
                keeps rescheduling itself).
        """
        executed = 0
        while self._heap:
            if executed >= max_tasks:
                msg = f"ManualTaskQueue.drain exceeded {max_tasks} tasks"
                raise RuntimeError(msg)
            delay = (self._heap[0].due - self._now).total_seconds()
            executed += await self.advance(max(delay, 0.0))
        return executed

    async def _run(self, entry: _Entry) -> None:
        result = entry.func(*entry.args)
        if inspect.isawaitable(result):
            await result


__all__ = [
    "APSchedulerTaskQueue",
    "DelayedTaskQueue",
    "ManualTaskQueue",
    "ScheduledTask",
]
