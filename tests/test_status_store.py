from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import allure
import pytest

from native_build.tasks.models import StatusRecord
from native_build.tasks.status_store import StatusStore, task_file_stem

pytestmark = [
    allure.epic("Task Engine"),
    allure.feature("Status Cache"),
]


@pytest.fixture()
def store(tmp_path: Path) -> StatusStore:
    return StatusStore(tmp_path / "status")


def test_save_writes_camel_case_document(store: StatusStore) -> None:
    last_run = datetime(2026, 3, 1, 12, 30, tzinfo=UTC)
    store.save("libzmq.build.iphoneos-arm64", StatusRecord("7", last_run, True))

    raw = json.loads(store.path_for("libzmq.build.iphoneos-arm64").read_text("utf-8"))
    assert raw == {"cacheTag": "7", "lastRun": "2026-03-01T12:30:00+00:00", "success": True}

    loaded = store.load("libzmq.build.iphoneos-arm64")
    assert loaded == StatusRecord(cache_tag="7", last_run=last_run, success=True)


def test_missing_file_loads_as_none(store: StatusStore) -> None:
    assert store.load("never-ran") is None


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        "[]",
        '{"cacheTag": 1, "lastRun": "2026-03-01T12:30:00+00:00", "success": true}',
        '{"cacheTag": "1", "lastRun": "yesterday", "success": true}',
        '{"cacheTag": "1", "lastRun": "2026-03-01T12:30:00+00:00", "success": "yes"}',
        '{"cacheTag": "1", "success": true}',
    ],
)
def test_unusable_file_loads_as_none(store: StatusStore, content: str) -> None:
    path = store.path_for("boost")
    path.parent.mkdir(parents=True)
    path.write_text(content, encoding="utf-8")

    assert store.load("boost") is None


def test_undecodable_bytes_load_as_none(store: StatusStore) -> None:
    path = store.path_for("boost")
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\xff\xfe\x00garbage")

    assert store.load("boost") is None


def test_accepts_z_suffixed_timestamps(store: StatusStore) -> None:
    path = store.path_for("openssl")
    path.parent.mkdir(parents=True)
    path.write_text(
        '{"cacheTag": "3.0", "lastRun": "2026-03-01T12:30:00.000Z", "success": false}',
        encoding="utf-8",
    )

    record = store.load("openssl")
    assert record is not None
    assert record.success is False
    assert record.last_run.tzinfo is not None


def test_file_names_stay_inside_status_dir(store: StatusStore) -> None:
    assert task_file_stem("ffi.build.android-arm64-v8a") == "ffi.build.android-arm64-v8a"
    assert store.path_for("../escape").parent == store.status_dir
    assert store.path_for("a/b").name == "a%2Fb.json"
    assert store.path_for("..").name == "%2E%2E.json"
