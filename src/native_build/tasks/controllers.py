"""Controller behind the build CLI command."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from native_build.catalog import load_catalog
from native_build.config import Settings
from native_build.tasks.errors import ConfigurationError
from native_build.tasks.models import BuildOutcome
from native_build.tasks.registry import TaskRegistry
from native_build.tasks.scheduler import Scheduler

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BuildCommand:
    """CLI input for one build invocation."""

    task_name: str
    base_path: Path | None = None
    max_exec: int | None = None
    catalog: str | None = None
    log_level: str | None = None
    list_tasks: bool = False


@dataclass(slots=True)
class BuildCommandResult:
    """Rendered outcome for the CLI."""

    success: bool
    lines: list[str] = field(default_factory=list)


class BuildCliController:
    """Wires settings, catalog, registry and scheduler for one invocation."""

    def __init__(self, registry_factory: Callable[[], TaskRegistry] = TaskRegistry) -> None:
        self.registry_factory = registry_factory

    def run(self, command: BuildCommand) -> BuildCommandResult:
        settings = self._load_settings(command)
        settings.configure_logging()

        registry = self.registry_factory()
        if settings.catalog is None:
            raise ConfigurationError(
                "No recipe catalog configured. Set NATIVE_BUILD_CATALOG or pass --catalog.",
            )
        load_catalog(settings.catalog, registry)

        if command.list_tasks:
            return BuildCommandResult(success=True, lines=registry.names())

        logger.debug("Building %s with up to %d processes", command.task_name, settings.max_exec)
        scheduler = Scheduler.from_settings(registry, settings)
        outcome = asyncio.run(scheduler.build(command.task_name))
        return BuildCommandResult(success=outcome.success, lines=render_outcome(outcome))

    @staticmethod
    def _load_settings(command: BuildCommand) -> Settings:
        try:
            settings = Settings.from_env(
                base_path=command.base_path,
                max_exec=command.max_exec,
                catalog=command.catalog,
                log_level=command.log_level,
            )
            settings.validate()
        except ValueError as error:
            raise ConfigurationError(str(error)) from error
        return settings


def render_outcome(outcome: BuildOutcome) -> list[str]:
    if outcome.success:
        return [
            f"{outcome.root} succeeded: "
            f"{len(outcome.executed)} executed, {len(outcome.clean)} clean",
        ]

    lines: list[str] = []
    for failure in outcome.failures:
        lines.append(f"{failure.task_name} failed: {failure.cause}")
        lines.append(f"  See {failure.log_path}")
    lines.append(f"{outcome.root} failed")
    return lines
