"""Process-wide logging: console plus an optional size-rotated file."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

DEFAULT_LOG_PATH = Path("work/logs/moscowvitz_bff.log")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
# "-" as the log path keeps logs on the console only.
CONSOLE_ONLY = "-"

_CONFIGURED = False


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def _level_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip().upper()
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    log_path: Path | None
    max_bytes: int
    backup_count: int
    # Third-party loggers pinned to their own level, e.g. uvicorn's access log
    # which would duplicate the request middleware line.
    quiet_loggers: tuple[tuple[str, int], ...]

    @classmethod
    def from_env(cls) -> LoggingSettings:
        raw_path = os.environ.get("MOSCOWVITZ_LOG_PATH", "").strip()
        if raw_path == CONSOLE_ONLY:
            log_path = None
        else:
            log_path = Path(raw_path) if raw_path else DEFAULT_LOG_PATH
        return cls(
            level=_level_env("MOSCOWVITZ_LOG_LEVEL", logging.INFO),
            log_path=log_path,
            max_bytes=_int_env(
                "MOSCOWVITZ_LOG_MAX_BYTES",
                5 * 1024 * 1024,
                minimum=64 * 1024,
                maximum=100 * 1024 * 1024,
            ),
            backup_count=_int_env("MOSCOWVITZ_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120),
            quiet_loggers=(
                ("uvicorn.access", _level_env("MOSCOWVITZ_ACCESS_LOG_LEVEL", logging.WARNING)),
                ("httpx", logging.WARNING),
            ),
        )


def build_handlers(settings: LoggingSettings) -> list[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_path is not None:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                filename=settings.log_path,
                maxBytes=settings.max_bytes,
                backupCount=settings.backup_count,
                encoding="utf-8",
            )
        )
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def configure_runtime_logging(settings: LoggingSettings | None = None, *, force: bool = False) -> None:
    """Install root handlers once per process unless `force` is set."""
    global _CONFIGURED
    if _CONFIGURED and not force:
        return
    effective = settings or LoggingSettings.from_env()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in build_handlers(effective):
        root.addHandler(handler)
    root.setLevel(effective.level)
    for name, level in effective.quiet_loggers:
        logging.getLogger(name).setLevel(level)
    _CONFIGURED = True
