"""Logging setup for the lotto client.

Every module calls ``get_logger(__name__)``. The first call attaches a
console handler and, unless disabled, a file handler to the root logger:

    LOG_LEVEL   level name, INFO when unset or unknown
    LOG_FILE    log file path; ``off`` or ``none`` keeps logging on the console
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import List, Mapping, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LOG_FILE = "startale_lotto.log"
_DISABLED = {"off", "none", "0", "false"}

_configured = False


def resolve_level(environ: Mapping[str, str]) -> int:
    level = logging.getLevelName(environ.get("LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def resolve_log_path(environ: Mapping[str, str]) -> Optional[Path]:
    """File the client logs to, or None when file logging is switched off."""
    setting = environ.get("LOG_FILE", "").strip()
    if setting.lower() in _DISABLED:
        return None
    return Path(setting) if setting else Path.cwd() / DEFAULT_LOG_FILE


def _build_handlers(environ: Mapping[str, str]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_path = resolve_log_path(environ)
    if log_path is not None:
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, encoding="utf-8"))
        except OSError as exc:
            logging.getLogger(__name__).warning("File logging to %s unavailable: %s", log_path, exc)
    return handlers


def _ensure_configured() -> None:
    global _configured
    if _configured:
        return
    _configured = True

    level = resolve_level(os.environ)
    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in _build_handlers(os.environ):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    _ensure_configured()
    return logging.getLogger(name)
