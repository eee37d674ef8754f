"""CLI entrypoint for native-build."""

from pathlib import Path

import rich_click as click

from native_build import __version__
from native_build.config import DEFAULT_ROOT_TASK
from native_build.tasks.controllers import BuildCliController, BuildCommand
from native_build.tasks.errors import FATAL_ERRORS

click.rich_click.USE_MARKDOWN = True
BUILD_CONTROLLER = BuildCliController()


class FatalBuildError(click.ClickException):
    """Configuration or cycle error; the build never got going."""

    exit_code = 2


@click.command()
@click.version_option(version=__version__, prog_name="native-build")
@click.argument("task_name", default=DEFAULT_ROOT_TASK, required=False)
@click.option(
    "--catalog",
    default=None,
    help=(
        "Recipe catalog as `module.path` or `path/to/catalog.py`, optionally with "
        "`:function` (default `register`). If omitted, NATIVE_BUILD_CATALOG is used."
    ),
)
@click.option(
    "--base-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Build tree root holding logs/, status/ and build outputs. Defaults to ./tmp.",
)
@click.option(
    "--max-exec",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of concurrently running external processes. Defaults to CPU count.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Console log level. Defaults to NATIVE_BUILD_LOG_LEVEL or INFO.",
)
@click.option("--list", "list_tasks", is_flag=True, help="List registered task names and exit.")
def native_build(  # noqa: PLR0913
    task_name: str,
    catalog: str | None,
    base_path: Path | None,
    max_exec: int | None,
    log_level: str | None,
    list_tasks: bool,
) -> None:
    """Build TASK_NAME (default: `default`) and everything it depends on."""

    try:
        result = BUILD_CONTROLLER.run(
            BuildCommand(
                task_name=task_name,
                base_path=base_path,
                max_exec=max_exec,
                catalog=catalog,
                log_level=log_level,
                list_tasks=list_tasks,
            ),
        )
    except FATAL_ERRORS as error:
        raise FatalBuildError(str(error)) from error

    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(f"Build of {task_name} failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    native_build()
