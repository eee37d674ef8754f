"""Helpers for writing library recipe catalogs.

A library recipe expands into ordinary tasks:

- ``<lib>.clone`` or ``<lib>.download`` fetches the sources once per build tree,
- ``<lib>.build.<platform>`` unpacks and builds the library for one platform,
- ``<lib>.build`` builds every platform.

The helpers only know how to fetch and unpack sources. What a build step runs
is entirely up to the recipe's ``build`` callable.
"""

from __future__ import annotations

import asyncio
import inspect
import shlex
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from native_build.tasks.context import BuildContext
from native_build.tasks.models import Task
from native_build.tasks.registry import TaskRegistry

LibraryBuild = Callable[[BuildContext, str, Path], Any]


@dataclass(frozen=True, slots=True)
class LibraryRecipe:
    """Declarative description of one third-party library."""

    name: str
    build: LibraryBuild
    url: str | None = None
    revision: str = ""
    dependencies: tuple[str, ...] = ()
    nonce: int = 0
    recycle: bool = False

    @property
    def is_git(self) -> bool:
        return self.url is not None and self.url.endswith(".git")

    @property
    def is_archive(self) -> bool:
        return self.url is not None and not self.url.endswith(".git")


def clone_task_name(name: str) -> str:
    return f"{name}.clone"


def download_task_name(name: str) -> str:
    return f"{name}.download"


def platform_task_name(name: str, platform: str) -> str:
    return f"{name}.build.{platform}"


def rollup_task_name(name: str) -> str:
    return f"{name}.build"


def archive_filename(url: str) -> str:
    return url.rstrip("/").rsplit("/", 1)[-1]


def add_git_clone_task(registry: TaskRegistry, name: str, url: str, revision: str) -> Task:
    """Register ``<name>.clone``: a bare clone under ``downloads/``, fetched when present."""

    async def clone(context: BuildContext) -> str:
        download_path = context.base_path / "downloads"
        download_path.mkdir(parents=True, exist_ok=True)
        repo_path = download_path / f"{name}.git"

        if repo_path.exists():
            await context.exec("git", ["-C", str(repo_path), "fetch", "--all", "--tags", "--prune"])
        else:
            await context.exec("git", ["clone", "--bare", url, str(repo_path)])
        return revision

    return registry.add(clone_task_name(name), clone, cache_tag=revision)


def add_download_task(registry: TaskRegistry, name: str, url: str, digest: str) -> Task:
    """Register ``<name>.download``: fetch ``url`` into ``downloads/`` unless already there."""

    filename = archive_filename(url)

    async def download(context: BuildContext) -> str:
        download_path = context.base_path / "downloads"
        download_path.mkdir(parents=True, exist_ok=True)
        file_path = download_path / filename

        if not file_path.exists():
            context.log(f"Getting {filename}...")
            await context.exec("curl", ["-fL", "-o", str(file_path), url])
        return str(file_path)

    return registry.add(download_task_name(name), download, cache_tag=digest)


def define_library(
    registry: TaskRegistry,
    recipe: LibraryRecipe,
    platforms: Sequence[str],
) -> list[Task]:
    """Register fetch, per-platform build and roll-up tasks for ``recipe``."""

    tasks: list[Task] = []
    fetch_dependencies: tuple[str, ...] = ()
    if recipe.is_git and recipe.url is not None:
        tasks.append(add_git_clone_task(registry, recipe.name, recipe.url, recipe.revision))
        fetch_dependencies = (clone_task_name(recipe.name),)
    elif recipe.is_archive and recipe.url is not None:
        tasks.append(add_download_task(registry, recipe.name, recipe.url, recipe.revision))
        fetch_dependencies = (download_task_name(recipe.name),)

    for platform in platforms:
        library_dependencies = (
            platform_task_name(dependency, platform) for dependency in recipe.dependencies
        )
        tasks.append(
            registry.add(
                platform_task_name(recipe.name, platform),
                _platform_build(recipe, platform),
                cache_tag=f"{recipe.revision}+{recipe.nonce}",
                dependencies=(*fetch_dependencies, *library_dependencies),
            ),
        )

    platform_names = [platform_task_name(recipe.name, platform) for platform in platforms]

    async def build_all(context: BuildContext) -> None:
        await asyncio.gather(*(context.run_task(name) for name in platform_names))

    tasks.append(registry.add(rollup_task_name(recipe.name), build_all))
    return tasks


def _platform_build(recipe: LibraryRecipe, platform: str) -> Callable[[BuildContext], Any]:
    async def build(context: BuildContext) -> int:
        work_path = context.base_path / "build" / f"{recipe.name}-{platform}"
        if not recipe.recycle:
            await asyncio.to_thread(shutil.rmtree, work_path, ignore_errors=True)
        work_path.mkdir(parents=True, exist_ok=True)
        context.cd(work_path)

        if recipe.is_git:
            repo_path = context.base_path / "downloads" / f"{recipe.name}.git"
            await context.exec(
                "bash",
                [
                    "-c",
                    "set -o pipefail; "
                    f"git --git-dir={shlex.quote(str(repo_path))} archive "
                    f"{shlex.quote(recipe.revision)} | tar -x -C {shlex.quote(str(work_path))}",
                ],
            )
        elif recipe.is_archive and recipe.url is not None and not recipe.recycle:
            archive_path = context.base_path / "downloads" / archive_filename(recipe.url)
            await context.exec("tar", ["-xf", str(archive_path)])

        prefix_path = context.base_path / "prefix" / platform
        prefix_path.mkdir(parents=True, exist_ok=True)
        result = recipe.build(context, platform, prefix_path)
        if inspect.isawaitable(result):
            await result
        return recipe.nonce

    return build
