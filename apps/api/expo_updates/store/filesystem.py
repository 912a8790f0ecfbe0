"""Local directory tree bundle store."""
from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from ..path_safety import safe_relpath
from .base import ROLLBACK_MARKER, UPDATES_DIR, BundleRef, sort_bundles

logger = logging.getLogger("expo_updates.store")


class FilesystemBundleStore:
    """Serves bundles from ``<root>/updates/<runtimeVersion>/<timestamp>/``."""

    kind = "filesystem"

    def __init__(self, root: str | os.PathLike):
        self.root = Path(root)

    def _bundle_dir(self, bundle: BundleRef) -> Path:
        return self.root / UPDATES_DIR / bundle.runtime_version / bundle.timestamp

    def _file(self, bundle: BundleRef, relative_path: str) -> Path:
        return self._bundle_dir(bundle) / safe_relpath(relative_path)

    async def list_bundles(self, runtime_version: str) -> list[BundleRef]:
        safe_relpath(runtime_version)
        rv_dir = self.root / UPDATES_DIR / runtime_version
        if not rv_dir.is_dir():
            raise FileNotFoundError(f"{rv_dir} does not exist")
        names = [entry.name for entry in rv_dir.iterdir() if entry.is_dir()]
        bundles = sort_bundles(runtime_version, names)
        logger.debug("Runtime %s: %d bundle(s) on disk", runtime_version, len(bundles))
        return bundles

    async def has_file(self, bundle: BundleRef, name: str) -> bool:
        return self._file(bundle, name).exists()

    async def read_file(self, bundle: BundleRef, relative_path: str) -> bytes:
        path = self._file(bundle, relative_path)
        if not path.is_file():
            raise FileNotFoundError(f"{bundle.path}/{relative_path} does not exist")
        return path.read_bytes()

    async def rollback_commit_time(self, bundle: BundleRef) -> datetime:
        marker = self._file(bundle, ROLLBACK_MARKER)
        st = marker.stat()
        return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
