from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "crit": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

_TAGS = {
    logging.DEBUG: "[debug]",
    logging.INFO: "[info]",
    logging.WARNING: "[warn]",
    logging.ERROR: "[error]",
    logging.CRITICAL: "[crit]",
}

RUN_LOG_PREFIX = "tinydns_"


def _level_tag(levelno: int) -> str:
    return _TAGS.get(levelno, f"[lvl{levelno}]")


class SyslogFormatter(logging.Formatter):
    """Formatter for syslog output without timestamps (syslog adds its own)."""

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return f"{record.level_tag} {record.name}: {record.getMessage()}"


class BracketLevelFormatter(logging.Formatter):
    """Bracketed lowercase level tags with UTC ISO-8601 timestamps."""

    def formatTime(self, record, datefmt=None):
        return datetime.fromtimestamp(record.created, timezone.utc).strftime(
            "%Y-%m-%dT%H:%M:%S.%f"
        )[:-3] + "Z"

    def format(self, record):
        record.level_tag = _level_tag(record.levelno)
        return super().format(record)


def run_log_path(log_dir: str, now: Optional[datetime] = None) -> str:
    """Brief: Build the per-run log file path inside log_dir.

    Inputs:
      - log_dir: Directory that holds per-run log files.
      - now: Optional timestamp (defaults to the current local time).

    Outputs:
      - str: Absolute path like ``<log_dir>/tinydns_20240131_235959.log``.
    """

    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    base = os.path.abspath(os.path.expanduser(log_dir))
    return os.path.join(base, f"{RUN_LOG_PREFIX}{stamp}.log")


def _file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setFormatter(formatter)
    return handler


def init_logging(cfg: Optional[Dict[str, Any]]) -> List[str]:
    """
    Initialize logging configuration based on the provided config.

    Args:
        cfg: Logging configuration dictionary with optional keys:
            - level: debug, info, warn, error, crit (default: info)
            - stderr: boolean to log to stderr (default: True)
            - file: path of a log file appended to across runs (optional)
            - log_dir: directory receiving a fresh timestamped log file for
              this run, ``tinydns_YYYYmmdd_HHMMSS.log`` (optional)
            - syslog: boolean or dict with address/facility (optional)

    Returns:
        List of log file paths opened by this call.

    Example config:
        {
            "level": "info",
            "stderr": True,
            "log_dir": "./logs",
        }
    """
    cfg = cfg or {}

    level = _LEVELS.get(str(cfg.get("level", "info")).lower(), logging.INFO)
    formatter = BracketLevelFormatter(fmt="%(asctime)s %(level_tag)s %(name)s: %(message)s")

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates on re-initialization
    for h in list(root.handlers):
        root.removeHandler(h)
        try:
            h.close()
        except Exception:  # pragma: no cover - defensive
            pass

    if cfg.get("stderr", True):
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        root.addHandler(stderr_handler)

    opened: List[str] = []
    file_path = cfg.get("file")
    if isinstance(file_path, str) and file_path.strip():
        path = os.path.abspath(os.path.expanduser(file_path.strip()))
        root.addHandler(_file_handler(path, formatter))
        opened.append(path)

    log_dir = cfg.get("log_dir")
    if isinstance(log_dir, str) and log_dir.strip():
        path = run_log_path(log_dir.strip())
        root.addHandler(_file_handler(path, formatter))
        opened.append(path)

    syslog_cfg = cfg.get("syslog")
    if syslog_cfg:
        try:
            if isinstance(syslog_cfg, dict):
                address = syslog_cfg.get("address", "/dev/log")
                facility = getattr(
                    logging.handlers.SysLogHandler,
                    f"LOG_{str(syslog_cfg.get('facility', 'USER')).upper()}",
                    logging.handlers.SysLogHandler.LOG_USER,
                )
            else:
                address = "/dev/log"
                facility = logging.handlers.SysLogHandler.LOG_USER

            syslog_handler = logging.handlers.SysLogHandler(
                address=address, facility=facility
            )
            syslog_handler.setFormatter(SyslogFormatter())
            root.addHandler(syslog_handler)
        except (OSError, ValueError) as e:  # pragma: no cover - environment-specific
            root.warning("Failed to configure syslog: %s", e)

    logging.captureWarnings(True)
    return opened
