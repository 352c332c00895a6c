"""Logging setup shared by the relay and the client entry points."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import ClientRuntimeConfig, RelayRuntimeConfig

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _parse_level(value: Any, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip().upper()
    if not text:
        return default
    # Includes the WARN and FATAL aliases.
    named = logging.getLevelNamesMapping()
    if text in named:
        return named[text]
    return int(text) if text.isdigit() else default


def _optional(value: Any) -> str | None:
    if value is None or not str(value).strip():
        return None
    return str(value)


@dataclass(frozen=True)
class LogSettings:
    """The logging fields both runtime configs carry."""

    level: int = logging.INFO
    console: bool = True
    file: str | None = None
    fmt: str = DEFAULT_FORMAT
    datefmt: str | None = None

    @classmethod
    def from_config(
        cls,
        cfg: RelayRuntimeConfig | ClientRuntimeConfig,
        *,
        override_level: str | None = None,
        override_file: str | None = None,
    ) -> LogSettings:
        # An explicit empty override disables the file configured in cfg.
        log_file = cfg.log_file if override_file is None else override_file
        return cls(
            level=_parse_level(override_level or cfg.log_level, logging.INFO),
            console=bool(cfg.log_console),
            file=_optional(log_file),
            fmt=_optional(cfg.log_format) or DEFAULT_FORMAT,
            datefmt=_optional(cfg.log_datefmt),
        )


def _build_handlers(settings: LogSettings) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if settings.console:
        handlers.append(logging.StreamHandler())

    if settings.file:
        p = Path(os.path.expanduser(settings.file))
        p.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(p, encoding="utf-8"))
        try:
            os.chmod(p, 0o600)
        except OSError:
            pass

    formatter = logging.Formatter(fmt=settings.fmt, datefmt=settings.datefmt)
    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def configure_logging(
    cfg: RelayRuntimeConfig | ClientRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> LogSettings:
    """Install root handlers for ``cfg``.

    Replaces any handlers already on the root logger, so calling it again
    reconfigures rather than duplicates output.
    """
    settings = LogSettings.from_config(
        cfg, override_level=override_level, override_file=override_file
    )

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in _build_handlers(settings):
        root.addHandler(h)
    root.setLevel(settings.level)

    logging.captureWarnings(True)
    return settings
