"""Error taxonomy for the build task orchestrator."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path


class BuildError(RuntimeError):
    """Base class for orchestrator errors."""


class ConfigurationError(BuildError):
    """Task graph or settings are misconfigured. Aborts the whole build."""


class CycleError(BuildError):
    """A task transitively depends on itself."""

    def __init__(self, path: Sequence[str]) -> None:
        self.path = tuple(path)
        super().__init__(f"Build recursion detected: {' > '.join(self.path)}")


class ProcessError(BuildError):
    """External command exited non-zero or could not be spawned."""

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        exit_code: int | None = None,
        spawn_error: OSError | None = None,
    ) -> None:
        self.command = command
        self.args_list = tuple(args)
        self.exit_code = exit_code
        self.spawn_error = spawn_error
        if spawn_error is not None:
            message = f"{command} failed to start: {spawn_error}"
        else:
            message = f"{command} exited with code {exit_code}"
        super().__init__(message)


class TaskFailedError(BuildError):
    """A task body failed; carried to every requester of that task."""

    def __init__(self, task_name: str, log_path: Path, cause: BaseException) -> None:
        self.task_name = task_name
        self.log_path = log_path
        self.cause = cause
        super().__init__(f"{task_name} failed: {cause}")


class CacheIOError(BuildError):
    """Status record is unreadable or malformed. Never leaves the status store."""


FATAL_ERRORS: tuple[type[BuildError], ...] = (ConfigurationError, CycleError)
