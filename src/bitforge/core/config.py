from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from bitforge.core.constants import TargetSelection
from bitforge.core.exceptions import ConfigurationError


def _default_build_dir() -> Path:
    home = os.environ.get("HOME")
    if home:
        return Path(home) / "Downloads" / "bitcoin_builds"
    return Path("/tmp/bitcoin_builds")


def _default_cores() -> int:
    return max((os.cpu_count() or 1) - 1, 1)


def _parse_number(kind: type[int] | type[float], name: str, raw: str) -> Any:
    try:
        return kind(raw)
    except ValueError as exc:
        raise ConfigurationError(
            f"{name} must be a number, got {raw!r}",
            details={"variable": name},
        ) from exc


class BuildConfig(BaseModel):
    build_dir: Path = Field(default_factory=_default_build_dir)
    cores: int = Field(default_factory=_default_cores, ge=1)
    target: TargetSelection = TargetSelection.BITCOIN
    max_log_lines: int = Field(default=4000, ge=2)
    settle_seconds: float = Field(default=2.0, ge=0)
    """Pause after installing the Rust toolchain before probing it again."""
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    json_logs: bool = False

    @classmethod
    def from_env(cls) -> BuildConfig:
        """Create a :class:`BuildConfig` from ``BITFORGE_*`` environment variables.

        Reads the following env vars (all optional):

        * ``BITFORGE_BUILD_DIR`` → ``build_dir``
        * ``BITFORGE_CORES`` → ``cores`` (integer, at least 1)
        * ``BITFORGE_TARGET`` → ``target`` (``bitcoin``, ``electrs`` or ``both``)
        * ``BITFORGE_MAX_LOG_LINES`` → ``max_log_lines``
        * ``BITFORGE_SETTLE_SECONDS`` → ``settle_seconds``
        * ``BITFORGE_LOG_LEVEL`` → ``log_level``
        * ``BITFORGE_JSON_LOGS`` → ``json_logs`` (``1``/``true``/``yes`` enable it)

        Any variable that is not set or is empty is left at its default value.

        Raises:
            ConfigurationError: If a numeric variable does not parse.
        """
        kwargs: dict[str, Any] = {}

        build_dir = os.environ.get("BITFORGE_BUILD_DIR")
        if build_dir:
            kwargs["build_dir"] = Path(build_dir).expanduser()

        cores = os.environ.get("BITFORGE_CORES")
        if cores:
            kwargs["cores"] = _parse_number(int, "BITFORGE_CORES", cores)

        target = os.environ.get("BITFORGE_TARGET")
        if target:
            kwargs["target"] = target.lower()

        max_lines = os.environ.get("BITFORGE_MAX_LOG_LINES")
        if max_lines:
            kwargs["max_log_lines"] = _parse_number(int, "BITFORGE_MAX_LOG_LINES", max_lines)

        settle = os.environ.get("BITFORGE_SETTLE_SECONDS")
        if settle:
            kwargs["settle_seconds"] = _parse_number(float, "BITFORGE_SETTLE_SECONDS", settle)

        log_level = os.environ.get("BITFORGE_LOG_LEVEL")
        if log_level:
            kwargs["log_level"] = log_level.upper()

        json_logs = os.environ.get("BITFORGE_JSON_LOGS")
        if json_logs:
            kwargs["json_logs"] = json_logs.strip().lower() in ("1", "true", "yes")

        return cls(**kwargs)
