"""On-disk cache records, one JSON document per cacheable task."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from native_build.tasks.errors import CacheIOError
from native_build.tasks.models import StatusRecord

logger = logging.getLogger(__name__)

_SAFE_NAME_CHARS = "._+@-"


def task_file_stem(name: str) -> str:
    """Map a task name to a file stem that cannot escape its directory."""

    stem = quote(name, safe=_SAFE_NAME_CHARS)
    if stem in {".", ".."}:
        return stem.replace(".", "%2E")
    return stem


class StatusStore:
    """Loads and saves ``StatusRecord`` files under ``status_dir``."""

    def __init__(self, status_dir: Path) -> None:
        self.status_dir = status_dir

    def path_for(self, name: str) -> Path:
        return self.status_dir / f"{task_file_stem(name)}.json"

    def load(self, name: str) -> StatusRecord | None:
        """Return the stored record, or ``None`` if it is missing or unusable."""

        path = self.path_for(name)
        try:
            return _parse_record(_read_json(path))
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError, CacheIOError) as error:
            logger.debug("Ignoring status file %s: %s", path, error)
            return None

    def save(self, name: str, record: StatusRecord) -> None:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "cacheTag": record.cache_tag,
            "lastRun": record.last_run.isoformat(),
            "success": record.success,
        }
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _read_json(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    try:
        return json.loads(text)
    except json.JSONDecodeError as error:
        raise CacheIOError(f"Invalid JSON in {path}: {error}") from error


def _parse_record(raw: Any) -> StatusRecord:
    if not isinstance(raw, dict):
        raise CacheIOError("Status file must contain a JSON object")

    cache_tag = raw.get("cacheTag")
    if not isinstance(cache_tag, str):
        raise CacheIOError("status.cacheTag must be a string")

    success = raw.get("success")
    if not isinstance(success, bool):
        raise CacheIOError("status.success must be a boolean")

    last_run_raw = raw.get("lastRun")
    if not isinstance(last_run_raw, str):
        raise CacheIOError("status.lastRun must be an ISO 8601 string")
    try:
        last_run = datetime.fromisoformat(last_run_raw.replace("Z", "+00:00"))
    except ValueError as error:
        raise CacheIOError(f"status.lastRun is not a valid timestamp: {last_run_raw!r}") from error

    return StatusRecord(cache_tag=cache_tag, last_run=last_run, success=success)
