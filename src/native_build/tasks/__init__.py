"""Dependency-graph task engine for native library builds.

Why not make / ninja / doit?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~
The libraries built here each ship their own build system (autotools,
CMake, hand-written scripts), so file-level dependency tracking belongs to
them. What the chain needs on top is coarser:

- Whole-task caching keyed by an opaque tag (a git revision, an archive
  digest, a recipe nonce), with dirtiness flowing up to every dependent.
- Tasks that discover sub-tasks while running, for example a roll-up that
  builds one library for every platform.
- One log file per task, because parallel configure/make output is
  unreadable once interleaved.
- A global cap on concurrent compiler processes across all tasks.

That is a few hundred lines on top of asyncio, with recipes written as
plain Python coroutines.
"""

from native_build.tasks.context import BuildContext
from native_build.tasks.errors import (
    BuildError,
    ConfigurationError,
    CycleError,
    ProcessError,
    TaskFailedError,
)
from native_build.tasks.models import BuildOutcome, StatusRecord, Task, TaskResult, TaskState
from native_build.tasks.registry import TaskRegistry
from native_build.tasks.scheduler import Scheduler

__all__ = [
    "BuildContext",
    "BuildError",
    "BuildOutcome",
    "ConfigurationError",
    "CycleError",
    "ProcessError",
    "Scheduler",
    "StatusRecord",
    "Task",
    "TaskFailedError",
    "TaskRegistry",
    "TaskResult",
    "TaskState",
]
