"""
Path safety for bundle-relative paths.

Asset paths arrive from metadata.json and, base64-wrapped, from client
query strings. Both are validated before they touch a store.
"""
from __future__ import annotations

from pathlib import PurePosixPath


def safe_relpath(path: str) -> str:
    """
    Validate and normalize a bundle-relative path.

    Rejects empty paths, ".", absolute paths, backslashes and any ".."
    component.

    Raises:
        ValueError: If path violates safety rules

    Examples:
        >>> safe_relpath("assets/4f1cb2cac2370cd5050681232e8575a8")
        'assets/4f1cb2cac2370cd5050681232e8575a8'

        >>> safe_relpath("../metadata.json")
        ValueError: unsafe path: ../metadata.json
    """
    if not isinstance(path, str):
        raise ValueError(f"unsafe path: {path!r}")
    rel = PurePosixPath(path)
    s = str(rel)
    if not s or s == ".":
        raise ValueError(f"unsafe path: {path}")
    if "\\" in s or "\x00" in s:
        raise ValueError(f"unsafe path: {path}")
    if rel.is_absolute() or ".." in rel.parts:
        raise ValueError(f"unsafe path: {path}")
    return s
