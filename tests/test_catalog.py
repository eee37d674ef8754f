from __future__ import annotations

import sys
from pathlib import Path

import allure
import pytest

from native_build.catalog import load_catalog
from native_build.tasks import ConfigurationError, TaskRegistry

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Recipe Catalogs"),
]

CATALOG_SOURCE = """
def register(registry):
    registry.add("openssl", lambda build: None, cache_tag="3.0.1")
    registry.add("default", lambda build: None, dependencies=["openssl"])


def register_minimal(registry):
    registry.add("default", lambda build: None)


not_a_function = 42
"""


@pytest.fixture()
def catalog_file(tmp_path: Path) -> Path:
    path = tmp_path / "mobile_catalog.py"
    path.write_text(CATALOG_SOURCE, encoding="utf-8")
    return path


def test_file_catalog_uses_register_by_default(
    catalog_file: Path,
    registry: TaskRegistry,
) -> None:
    load_catalog(str(catalog_file), registry)

    assert registry.names() == ["openssl", "default"]
    assert registry.lookup("default").dependencies == ("openssl",)


def test_function_suffix_selects_register_function(
    catalog_file: Path,
    registry: TaskRegistry,
) -> None:
    load_catalog(f"{catalog_file}:register_minimal", registry)

    assert registry.names() == ["default"]


def test_module_catalog_is_imported_by_name(
    catalog_file: Path,
    registry: TaskRegistry,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.syspath_prepend(str(catalog_file.parent))
    monkeypatch.delitem(sys.modules, "mobile_catalog", raising=False)

    load_catalog("mobile_catalog:register", registry)

    assert "openssl" in registry


def test_missing_or_non_callable_function_is_a_configuration_error(
    catalog_file: Path,
    registry: TaskRegistry,
) -> None:
    with pytest.raises(ConfigurationError, match="no callable 'missing'"):
        load_catalog(f"{catalog_file}:missing", registry)
    with pytest.raises(ConfigurationError, match="no callable 'not_a_function'"):
        load_catalog(f"{catalog_file}:not_a_function", registry)


def test_missing_file_is_a_configuration_error(tmp_path: Path, registry: TaskRegistry) -> None:
    with pytest.raises(ConfigurationError, match="Catalog file not found"):
        load_catalog(str(tmp_path / "absent.py"), registry)


def test_unimportable_module_is_a_configuration_error(registry: TaskRegistry) -> None:
    with pytest.raises(ConfigurationError, match="Cannot import catalog module"):
        load_catalog("native_build_no_such_catalog", registry)
