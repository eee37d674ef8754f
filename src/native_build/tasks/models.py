"""Domain models for build tasks and their per-run execution."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from native_build.tasks.context import BuildContext
    from native_build.tasks.errors import TaskFailedError

TaskBody = Callable[["BuildContext"], Any]


class TaskState(str, Enum):
    """In-memory lifecycle of one task within a single build run."""

    UNVISITED = "unvisited"
    CHECKING = "checking"
    CLEAN = "clean"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Task:
    """A named unit of build work.

    Tasks without a ``cache_tag`` always execute. Tasks with one are skipped
    when their dependencies are clean and the last recorded run with the same
    tag succeeded.
    """

    name: str
    run: TaskBody
    cache_tag: str | None = None
    dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Accept any iterable of names from catalogs, store a tuple.
        object.__setattr__(self, "dependencies", tuple(self.dependencies))


@dataclass(slots=True)
class StatusRecord:
    """Persisted outcome of the last run of a cacheable task."""

    cache_tag: str
    last_run: datetime
    success: bool


@dataclass(slots=True)
class TaskResult:
    """Shared outcome of one task attempt."""

    clean: bool
    value: Any = None


@dataclass(slots=True)
class BuildOutcome:
    """Aggregated result of one ``Scheduler.build`` call."""

    root: str
    success: bool
    failures: list[TaskFailedError] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)
    clean: list[str] = field(default_factory=list)
    states: dict[str, TaskState] = field(default_factory=dict)
