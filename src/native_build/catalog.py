"""Loading of recipe catalogs into a task registry."""

from __future__ import annotations

import importlib
import importlib.util
import logging
from pathlib import Path
from types import ModuleType

from native_build.tasks.errors import ConfigurationError
from native_build.tasks.registry import TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_REGISTER_FUNCTION = "register"


def load_catalog(reference: str, registry: TaskRegistry) -> None:
    """Import a catalog and let it register its tasks.

    ``reference`` is ``module.path`` or ``path/to/file.py``, optionally followed by
    ``:function``; the function (``register`` by default) receives the registry.
    """

    target, _, function_name = reference.strip().rpartition(":")
    if not target or "/" in function_name or function_name.endswith(".py"):
        # No ":function" suffix (a bare "C:\\..." path also lands here).
        target, function_name = reference.strip(), DEFAULT_REGISTER_FUNCTION

    module = _import_catalog(target)
    register = getattr(module, function_name, None)
    if not callable(register):
        raise ConfigurationError(
            f"Catalog {target!r} has no callable {function_name!r}",
        )

    before = len(registry)
    register(registry)
    logger.debug("Catalog %s registered %d tasks", target, len(registry) - before)


def _import_catalog(target: str) -> ModuleType:
    if target.endswith(".py"):
        path = Path(target).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Catalog file not found: {path}")
        spec = importlib.util.spec_from_file_location(f"_native_build_catalog_{path.stem}", path)
        if spec is None or spec.loader is None:
            raise ConfigurationError(f"Cannot load catalog file: {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    try:
        return importlib.import_module(target)
    except ImportError as error:
        raise ConfigurationError(f"Cannot import catalog module {target!r}: {error}") from error
