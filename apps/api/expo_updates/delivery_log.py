"""
Delivery log — one JSON line per served manifest or directive.

Writes take an fcntl advisory lock so several worker processes can share
the file; once it grows past max_size it is moved to ``<name>.1`` (one
generation kept) before the next write.
"""
from __future__ import annotations

import fcntl
import json
import logging
import os
import threading
import time

logger = logging.getLogger("expo_updates.events")

DEFAULT_MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB


class DeliveryLog:
    """Appends one record per served response; a no-op when no path is configured."""

    def __init__(self, filepath: str | None, max_size: int = DEFAULT_MAX_LOG_SIZE):
        self.filepath = filepath
        self.max_size = max_size
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self.filepath)

    def rotate(self) -> bool:
        """Move the log aside when it exceeds max_size. Returns True if rotated."""
        if not self.enabled or self.max_size <= 0:
            return False
        try:
            if os.path.getsize(self.filepath) <= self.max_size:
                return False
            os.replace(self.filepath, self.filepath + ".1")
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Rotation of %s failed: %s", self.filepath, e)
            return False
        logger.info("Delivery log rotated to %s.1", self.filepath)
        return True

    def _write_line(self, line: bytes) -> None:
        fd = os.open(self.filepath, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o640)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
            os.write(fd, line)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

    def record(self, outcome: str, **details) -> None:
        if not self.enabled:
            return
        entry = {"ts": int(time.time()), "outcome": outcome, **details}
        line = (json.dumps(entry, separators=(",", ":")) + "\n").encode("utf-8")
        try:
            with self._lock:
                self.rotate()
                self._write_line(line)
        except OSError as e:
            # never fail a client response over the delivery log
            logger.warning("Delivery log write failed: %s", e)
