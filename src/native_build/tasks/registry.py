"""Task registry keyed by unique task name."""

from __future__ import annotations

from collections.abc import Iterable

from native_build.tasks.errors import ConfigurationError
from native_build.tasks.models import Task, TaskBody


class TaskRegistry:
    """Name-to-task table populated before a build and read-only afterwards."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._frozen = False

    def register(self, task: Task) -> Task:
        if self._frozen:
            raise ConfigurationError(
                f'Cannot register task "{task.name}" while a build is running',
            )
        if not task.name:
            raise ConfigurationError("Task name must be a non-empty string")
        if task.name in self._tasks:
            raise ConfigurationError(f'Task "{task.name}" already exists')
        self._tasks[task.name] = task
        return task

    def add(
        self,
        name: str,
        run: TaskBody,
        *,
        cache_tag: str | None = None,
        dependencies: Iterable[str] = (),
    ) -> Task:
        """Build a task in place and register it."""

        return self.register(
            Task(name=name, run=run, cache_tag=cache_tag, dependencies=tuple(dependencies)),
        )

    def lookup(self, name: str) -> Task:
        task = self._tasks.get(name)
        if task is None:
            raise ConfigurationError(f'Cannot find task "{name}"')
        return task

    def names(self) -> list[str]:
        return list(self._tasks)

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)
