"""Runtime configuration for the build orchestrator."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_ROOT_TASK = "default"
_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def _default_max_exec() -> int:
    return os.cpu_count() or 1


@dataclass(slots=True)
class Settings:
    """Build settings loaded from ``NATIVE_BUILD_*`` environment variables."""

    base_path: Path = Path("tmp")
    max_exec: int = field(default_factory=_default_max_exec)
    catalog: str | None = None
    log_level: str = "INFO"

    @property
    def logs_dir(self) -> Path:
        return self.base_path / "logs"

    @property
    def status_dir(self) -> Path:
        return self.base_path / "status"

    @classmethod
    def from_env(
        cls,
        *,
        base_path: Path | None = None,
        max_exec: int | None = None,
        catalog: str | None = None,
        log_level: str | None = None,
    ) -> Settings:
        """Load settings from the environment; explicit arguments win."""

        return cls(
            base_path=base_path or Path(os.getenv("NATIVE_BUILD_BASE_PATH", "tmp")),
            max_exec=max_exec if max_exec is not None else _env_max_exec(),
            catalog=catalog or (os.getenv("NATIVE_BUILD_CATALOG", "").strip() or None),
            log_level=(log_level or os.getenv("NATIVE_BUILD_LOG_LEVEL", "INFO")).strip().upper(),
        )

    def validate(self) -> None:
        """Raise configuration error for values the scheduler cannot use."""

        if self.max_exec < 1:
            raise ValueError("NATIVE_BUILD_MAX_EXEC must be a positive integer.")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"Invalid NATIVE_BUILD_LOG_LEVEL: {self.log_level!r}. "
                f"Expected one of: {', '.join(_LOG_LEVELS)}.",
            )

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, self.log_level),
            format="%(levelname)s %(message)s",
        )


def _env_max_exec() -> int:
    name = "NATIVE_BUILD_MAX_EXEC"
    raw = os.getenv(name, "").strip()
    if not raw:
        return _default_max_exec()
    try:
        return int(raw)
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error
