"""Deferred task execution."""

from event_relay.infra.tasks.delayed import (
    APSchedulerTaskQueue,
    DelayedTaskQueue,
    ManualTaskQueue,
    ScheduledTask,
)

__all__ = ["APSchedulerTaskQueue", "DelayedTaskQueue", "ManualTaskQueue", "ScheduledTask"]
