"""Append-only JSON-lines query log.

Inputs:
  - ``querylog.json_file`` path from the configuration.

Outputs:
  - JsonQueryLog observer writing one header line per session followed by one
    JSON object per ResolutionEvent.
"""

from __future__ import annotations

import json
import logging
import os
import socket
import threading
from datetime import datetime, timezone
from typing import Any, Dict

from .. import __version__
from .base import ResolutionEvent

logger = logging.getLogger(__name__)


class JsonQueryLog:
    """Query observer that appends events to a JSON-lines file.

    Inputs (constructor):
        file_path: Path to the log file. Parent directories are created when
            missing.

    Outputs:
        Callable instance usable as the ResolutionPipeline observer.

    Example:
        >>> qlog = JsonQueryLog("/tmp/tinydns-queries.jsonl")
        >>> qlog.health_check()
        True
        >>> qlog.close()
    """

    def __init__(self, file_path: str) -> None:
        self._healthy = False
        self._lock = threading.Lock()
        self._fh = None

        path = os.path.abspath(os.path.expanduser(str(file_path)))
        self.file_path = path
        dir_path = os.path.dirname(path)
        try:
            if dir_path:
                os.makedirs(dir_path, exist_ok=True)
            self._fh = open(path, "a", encoding="utf-8")
        except OSError:
            logger.exception("Failed to open JSON query log %s for appending", path)
            return

        header = {
            "log_start": datetime.now(timezone.utc).isoformat(),
            "version": f"v{__version__}",
            "hostname": _hostname(),
        }
        try:
            self._fh.write(json.dumps(header, separators=(",", ":")) + "\n")
            self._fh.flush()
        except OSError:
            logger.exception("Failed to write JSON query log header")
            return

        self._healthy = True

    def health_check(self) -> bool:
        """Return True while the file handle is open and writable."""

        return bool(self._healthy and self._fh is not None)

    def __call__(self, event: ResolutionEvent) -> None:
        """Brief: Append one event as a single JSON line.

        Inputs:
          - event: ResolutionEvent from the pipeline.

        Outputs:
          - None. Write failures mark the log unhealthy and later events are
            dropped.
        """

        if not self.health_check():
            return

        payload: Dict[str, Any] = event.to_dict()
        payload["hostname"] = _hostname()
        line = json.dumps(payload, separators=(",", ":"), default=str) + "\n"
        with self._lock:
            try:
                self._fh.write(line)
                self._fh.flush()
            except (OSError, ValueError):
                logger.exception("Failed to append to JSON query log %s", self.file_path)
                self._healthy = False

    def close(self) -> None:
        """Flush and close the file; later events are dropped."""

        with self._lock:
            fh, self._fh = self._fh, None
            self._healthy = False
            if fh is None:
                return
            try:
                fh.flush()
            finally:
                fh.close()


def _hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return "unknown-host"
