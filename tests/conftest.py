"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from native_build.tasks.executor import ProcessExecutor
from native_build.tasks.rate_limiter import RateLimiter
from native_build.tasks.registry import TaskRegistry
from native_build.tasks.scheduler import Scheduler


class CountingExecutor(ProcessExecutor):
    """Executor that tracks how many children are alive at once."""

    def __init__(self, rate_limiter: RateLimiter) -> None:
        super().__init__(rate_limiter)
        self.live = 0
        self.peak = 0

    async def _spawn(self, argv, **kwargs):
        self.live += 1
        self.peak = max(self.peak, self.live)
        try:
            return await super()._spawn(argv, **kwargs)
        finally:
            self.live -= 1


@pytest.fixture()
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture()
def make_scheduler(tmp_path: Path) -> Callable[..., Scheduler]:
    """Build schedulers sharing one build tree, as repeated CLI runs would."""

    base_path = tmp_path / "build-tree"

    def _make(registry: TaskRegistry, *, max_exec: int = 4) -> Scheduler:
        return Scheduler(
            registry,
            base_path=base_path,
            executor=CountingExecutor(RateLimiter(max_exec)),
        )

    return _make
