"""
Bundle storage interface.

The update pipeline only ever talks to a BundleStore. Two implementations
exist: a local directory tree and a GitHub repository read through the
contents API. Layout in both::

    updates/<runtimeVersion>/<timestampMillis>/{metadata.json, expoConfig.json, rollback?, <assets>}
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol, runtime_checkable

__all__ = ["BundleRef", "BundleStore", "UPDATES_DIR", "ROLLBACK_MARKER", "sort_bundles", "parse_bundle_path"]

UPDATES_DIR = "updates"
ROLLBACK_MARKER = "rollback"


@dataclass(frozen=True)
class BundleRef:
    """
    Reference to one published update bundle.

    Invariants:
    - timestamp: all-digit directory name (creation time in milliseconds)
    - path: ``updates/<runtime_version>/<timestamp>``, always forward slashes
    """
    runtime_version: str
    timestamp: str

    @property
    def path(self) -> str:
        return f"{UPDATES_DIR}/{self.runtime_version}/{self.timestamp}"

    @property
    def timestamp_ms(self) -> int:
        return int(self.timestamp)

    def __str__(self) -> str:
        return self.path


def sort_bundles(runtime_version: str, names: Iterable[str]) -> list[BundleRef]:
    """
    Order candidate directory names newest first.

    Non-numeric names are ignored. Equal numeric values (e.g. "0200" and
    "200") are ordered by the lexicographically largest name first, so the
    pick is stable across listings.
    """
    numeric = [n for n in names if n.isdigit()]
    numeric.sort(key=lambda n: (int(n), n), reverse=True)
    return [BundleRef(runtime_version, n) for n in numeric]


def parse_bundle_path(full_path: str) -> tuple[BundleRef, str]:
    """Split ``updates/<rv>/<ts>/<file...>`` into (BundleRef, file)."""
    parts = full_path.split("/", 3)
    if len(parts) != 4 or parts[0] != UPDATES_DIR or not parts[1] or not parts[2].isdigit() or not parts[3]:
        raise ValueError(f"not a bundle asset path: {full_path}")
    return BundleRef(parts[1], parts[2]), parts[3]


@runtime_checkable
class BundleStore(Protocol):
    """Protocol for update bundle storage backends."""

    kind: str

    async def list_bundles(self, runtime_version: str) -> list[BundleRef]:
        """
        List bundles published for a runtime version, newest first.

        Raises:
            FileNotFoundError: If the runtime version directory does not exist
            OSError: For other I/O or transport errors
        """
        ...

    async def has_file(self, bundle: BundleRef, name: str) -> bool:
        """Existence check for a top-level entry of a bundle."""
        ...

    async def read_file(self, bundle: BundleRef, relative_path: str) -> bytes:
        """
        Read raw bytes of a bundle file.

        Raises:
            FileNotFoundError: If the file does not exist
            OSError: For other I/O or transport errors
        """
        ...

    async def rollback_commit_time(self, bundle: BundleRef) -> datetime:
        """
        Timestamp reported as ``commitTime`` of a rollback directive.

        Raises:
            FileNotFoundError: If the bundle holds no rollback marker
        """
        ...
