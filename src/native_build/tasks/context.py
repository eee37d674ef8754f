"""Per-execution environment handed to task bodies."""

from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from native_build.tasks.executor import ProcessExecutor
from native_build.tasks.log_sink import LogSink
from native_build.tasks.models import Task, TaskResult

TaskRequester = Callable[[str | Task], Awaitable[TaskResult]]


class BuildContext:
    """Working directory, environment, logging and exec for one task run.

    Nothing here is shared: ``cd`` and ``export_env`` only affect this
    context, and the log sink belongs to this execution alone.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        task_name: str,
        base_path: Path,
        log_sink: LogSink,
        executor: ProcessExecutor,
        requester: TaskRequester,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.task_name = task_name
        self._base_path = base_path
        self._cwd = base_path
        self._env = dict(os.environ if environ is None else environ)
        self._log_sink = log_sink
        self._executor = executor
        self._requester = requester

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def cwd(self) -> Path:
        return self._cwd

    @property
    def env(self) -> dict[str, str]:
        return self._env

    @property
    def log_sink(self) -> LogSink:
        return self._log_sink

    def cd(self, path: str | os.PathLike[str]) -> None:
        """Change the default directory for ``exec``; relative paths resolve against ``cwd``."""

        self._cwd = self._cwd / Path(path)

    def export_env(self, values: Mapping[str, str | None]) -> None:
        """Set variables for ``exec``; a ``None`` value removes the variable."""

        _apply_env(self._env, values)

    def log(self, message: str) -> None:
        self._log_sink.log(message)

    async def exec(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        capture: bool = False,
        cwd: str | os.PathLike[str] | None = None,
        env: Mapping[str, str | None] | None = None,
    ) -> str:
        """Run an external tool with output going to this task's log.

        ``env`` is layered over the context environment for this call only.
        """

        run_env = self._env
        if env is not None:
            run_env = dict(self._env)
            _apply_env(run_env, env)
        run_cwd = self._cwd if cwd is None else self._cwd / Path(cwd)
        return await self._executor.exec(
            command,
            list(args),
            cwd=run_cwd,
            env=run_env,
            log_sink=self._log_sink,
            capture=capture,
        )

    async def run_task(self, task: str | Task) -> Any:
        """Request another task by name (or an inline ``Task``) and return its value.

        Clean cache hits return ``None`` since their body did not run.
        """

        result = await self._requester(task)
        return result.value


def _apply_env(target: dict[str, str], values: Mapping[str, str | None]) -> None:
    for key, value in values.items():
        if value is None:
            target.pop(key, None)
        else:
            target[key] = str(value)
