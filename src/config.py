import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

LOG_LEVEL_VAR = "PAYMENTS_LOG_LEVEL"
WORKERS_VAR = "PAYMENTS_WORKERS"
STRICT_VAR = "PAYMENTS_STRICT"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class EngineConfig:
    """
    Runtime settings, read from the environment.

    log_level: logging level name for stderr diagnostics.
    num_workers: 1 replays sequentially; more shards clients across worker threads.
    strict: abort on the first malformed row instead of skipping it.
    """

    log_level: str = "WARNING"
    num_workers: int = 1
    strict: bool = False


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def load_config(environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Build an EngineConfig from environment variables. Raises ValueError on invalid values."""
    if environ is None:
        environ = os.environ

    log_level = environ.get(LOG_LEVEL_VAR, EngineConfig.log_level).strip().upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"{LOG_LEVEL_VAR} is not a logging level: {log_level!r}")

    workers_str = environ.get(WORKERS_VAR, str(EngineConfig.num_workers)).strip()
    try:
        num_workers = int(workers_str)
    except ValueError:
        raise ValueError(f"{WORKERS_VAR} must be an integer, got {workers_str!r}") from None
    if num_workers < 1:
        raise ValueError(f"{WORKERS_VAR} must be at least 1, got {num_workers}")

    strict = _parse_bool(STRICT_VAR, environ.get(STRICT_VAR, ""))

    return EngineConfig(log_level=log_level, num_workers=num_workers, strict=strict)
