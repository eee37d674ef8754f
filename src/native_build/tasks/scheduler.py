"""Dependency-graph scheduler with disk-backed task caching.

One ``Scheduler`` drives one build. Every request for a task, whether it is
the root, a declared dependency or a sub-task requested by a running body,
goes through ``_request``:

1. refuse the request if the task is already on the requester's ancestor
   chain, or if joining its in-flight attempt would close a wait cycle;
2. share the task's single attempt for this run;
3. inside the attempt, resolve declared dependencies concurrently, then skip
   the body when the cache tag, the status record and every dependency are
   clean, or run it in a fresh ``BuildContext`` otherwise.

All concurrency is cooperative on one event loop; real parallelism only
exists in child processes, bounded by the executor's rate limiter.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from native_build.tasks.context import BuildContext
from native_build.tasks.errors import (
    FATAL_ERRORS,
    ConfigurationError,
    CycleError,
    TaskFailedError,
)
from native_build.tasks.executor import ProcessExecutor
from native_build.tasks.log_sink import LogSink
from native_build.tasks.models import BuildOutcome, StatusRecord, Task, TaskResult, TaskState
from native_build.tasks.rate_limiter import RateLimiter
from native_build.tasks.registry import TaskRegistry
from native_build.tasks.status_store import StatusStore, task_file_stem

if TYPE_CHECKING:
    from native_build.config import Settings

logger = logging.getLogger(__name__)


class Scheduler:
    """Builds a root task and everything it needs, at most once per task."""

    def __init__(  # noqa: PLR0913
        self,
        registry: TaskRegistry,
        *,
        base_path: Path,
        max_exec: int | None = None,
        executor: ProcessExecutor | None = None,
        status_store: StatusStore | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.registry = registry
        self.base_path = base_path
        self.logs_dir = base_path / "logs"
        self.status_store = status_store or StatusStore(base_path / "status")
        self.executor = executor or ProcessExecutor(
            RateLimiter(max_exec or os.cpu_count() or 1),
        )
        self._environ = environ
        self._tasks: dict[str, Task] = {}
        self._attempts: dict[str, asyncio.Task[TaskResult]] = {}
        self._waits: dict[str, set[str]] = {}
        self._states: dict[str, TaskState] = {}
        self._executed: list[str] = []
        self._clean: list[str] = []
        self._started = False

    @classmethod
    def from_settings(cls, registry: TaskRegistry, settings: Settings) -> Scheduler:
        return cls(registry, base_path=settings.base_path, max_exec=settings.max_exec)

    def state_of(self, name: str) -> TaskState:
        return self._states.get(name, TaskState.UNVISITED)

    async def build(self, root_name: str) -> BuildOutcome:
        """Build ``root_name``; fatal graph errors propagate, task failures are reported."""

        if self._started:
            raise ConfigurationError("A scheduler can only run one build")
        self._started = True
        self.registry.freeze()
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.status_store.status_dir.mkdir(parents=True, exist_ok=True)

        root_failed = False
        try:
            await self._request(root_name, ())
        except TaskFailedError:
            root_failed = True
        except FATAL_ERRORS:
            await self._abort()
            raise

        # Started work runs to completion; nothing is cancelled.
        await self._settle()

        failures = self._collect_failures()
        return BuildOutcome(
            root=root_name,
            success=not root_failed and not failures,
            failures=failures,
            executed=list(self._executed),
            clean=list(self._clean),
            states=dict(self._states),
        )

    async def _request(self, target: str | Task, stack: tuple[str, ...]) -> TaskResult:
        task = self._resolve(target)
        name = task.name
        if name in stack:
            raise CycleError((*stack[stack.index(name) :], name))

        requester = stack[-1] if stack else None
        attempt = self._attempts.get(name)
        if attempt is None:
            attempt = asyncio.create_task(self._check_task(task, stack), name=f"task:{name}")
            self._attempts[name] = attempt
        elif requester is not None and not attempt.done():
            self._check_wait_cycle(requester, name)

        if requester is not None:
            self._waits.setdefault(requester, set()).add(name)
        # A cancelled requester must not cancel an attempt other requesters share.
        return await asyncio.shield(attempt)

    def _resolve(self, target: str | Task) -> Task:
        if isinstance(target, Task):
            if target.name in self.registry and self.registry.lookup(target.name) is not target:
                raise ConfigurationError(
                    f'Inline task "{target.name}" conflicts with a registered task',
                )
            return self._tasks.setdefault(target.name, target)

        task = self._tasks.get(target)
        if task is None:
            task = self.registry.lookup(target)
            self._tasks[target] = task
        return task

    def _check_wait_cycle(self, requester: str, target: str) -> None:
        path = self._find_wait_path(target, requester)
        if path is not None:
            raise CycleError((requester, *path))

    def _find_wait_path(self, start: str, goal: str) -> list[str] | None:
        """Follow unfinished wait edges from ``start``; return the path to ``goal`` if any."""

        pending: list[list[str]] = [[start]]
        seen = {start}
        while pending:
            path = pending.pop()
            node = path[-1]
            if node == goal:
                return path
            for waited in sorted(self._waits.get(node, ())):
                attempt = self._attempts.get(waited)
                if waited in seen or attempt is None or attempt.done():
                    continue
                seen.add(waited)
                pending.append([*path, waited])
        return None

    async def _check_task(self, task: Task, stack: tuple[str, ...]) -> TaskResult:
        name = task.name
        child_stack = (*stack, name)
        self._states[name] = TaskState.CHECKING
        try:
            deps_clean = await self._resolve_dependencies(task, child_stack)
        except Exception:
            self._states[name] = TaskState.FAILED
            raise

        if task.cache_tag is not None and deps_clean and self._has_clean_record(task):
            self._states[name] = TaskState.CLEAN
            self._clean.append(name)
            logger.info("%s is clean", name)
            return TaskResult(clean=True)

        value = await self._execute(task, child_stack)
        return TaskResult(clean=False, value=value)

    async def _resolve_dependencies(self, task: Task, child_stack: tuple[str, ...]) -> bool:
        if not task.dependencies:
            return True

        requests = [
            asyncio.ensure_future(self._request(dependency, child_stack))
            for dependency in task.dependencies
        ]
        try:
            pending = set(requests)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                for request in done:
                    error = request.exception()
                    # Fatal errors abort at once; task failures wait for siblings.
                    if isinstance(error, FATAL_ERRORS):
                        raise error
        finally:
            # Only the requests are cancelled; shared attempts are shielded.
            for request in requests:
                if not request.done():
                    request.cancel()

        for request in requests:
            error = request.exception()
            if error is not None:
                raise error
        return all(request.result().clean for request in requests)

    def _has_clean_record(self, task: Task) -> bool:
        record = self.status_store.load(task.name)
        return record is not None and record.success and record.cache_tag == task.cache_tag

    async def _execute(self, task: Task, child_stack: tuple[str, ...]) -> Any:
        name = task.name
        log_path = self.logs_dir / f"{task_file_stem(name)}.log"
        log_sink = LogSink(log_path)

        def requester(target: str | Task) -> Any:
            return self._request(target, child_stack)

        context = BuildContext(
            task_name=name,
            base_path=self.base_path,
            log_sink=log_sink,
            executor=self.executor,
            requester=requester,
            environ=self._environ,
        )

        self._states[name] = TaskState.RUNNING
        self._executed.append(name)
        logger.info("%s started", name)
        try:
            value = task.run(context)
            if inspect.isawaitable(value):
                value = await value
        except FATAL_ERRORS:
            self._finish(task, success=False)
            raise
        except TaskFailedError as error:
            # A sub-task requested by the body failed; keep its name as the cause.
            self._finish(task, success=False)
            logger.error("%s failed: %s (see %s)", name, error, log_path)
            raise
        except Exception as error:  # noqa: BLE001
            self._finish(task, success=False)
            log_sink.log(f"{name} failed: {error}")
            logger.error("%s failed: %s (see %s)", name, error, log_path)
            raise TaskFailedError(name, log_path, error) from error
        else:
            self._finish(task, success=True)
            logger.info("%s completed", name)
            return value
        finally:
            log_sink.close()

    def _finish(self, task: Task, *, success: bool) -> None:
        self._states[task.name] = TaskState.SUCCEEDED if success else TaskState.FAILED
        if task.cache_tag is None:
            return
        record = StatusRecord(cache_tag=task.cache_tag, last_run=datetime.now(UTC), success=success)
        try:
            self.status_store.save(task.name, record)
        except OSError as error:
            logger.warning("Could not write status for %s: %s", task.name, error)

    async def _settle(self) -> None:
        while pending := [attempt for attempt in self._attempts.values() if not attempt.done()]:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _abort(self) -> None:
        """Cancel every unfinished attempt; their child processes are killed."""

        attempts = list(self._attempts.values())
        for attempt in attempts:
            if not attempt.done():
                attempt.cancel()
        await asyncio.gather(*attempts, return_exceptions=True)
        logger.debug("Build aborted with %d attempts", len(attempts))

    def _collect_failures(self) -> list[TaskFailedError]:
        failures: list[TaskFailedError] = []
        for name, attempt in self._attempts.items():
            if not attempt.done() or attempt.cancelled():
                continue
            error = attempt.exception()
            if isinstance(error, TaskFailedError) and error.task_name == name:
                failures.append(error)
        return failures
