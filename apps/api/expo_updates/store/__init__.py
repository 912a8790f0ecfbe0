"""Bundle storage backends and the factory that picks one from Settings."""
from __future__ import annotations

from ..settings import Settings
from .base import ROLLBACK_MARKER, UPDATES_DIR, BundleRef, BundleStore, parse_bundle_path, sort_bundles
from .filesystem import FilesystemBundleStore
from .github import GitHubBundleStore

__all__ = [
    "BundleRef",
    "BundleStore",
    "FilesystemBundleStore",
    "GitHubBundleStore",
    "ROLLBACK_MARKER",
    "UPDATES_DIR",
    "create_store",
    "parse_bundle_path",
    "sort_bundles",
]


def create_store(settings: Settings) -> BundleStore:
    """
    Create the bundle store named by ``settings.store``.

    Raises:
        ValueError: If the store kind is unknown
    """
    if settings.store == "filesystem":
        return FilesystemBundleStore(settings.updates_root)
    if settings.store == "github":
        return GitHubBundleStore(
            owner=settings.repo_owner,
            repo=settings.repo_name,
            branch=settings.repo_branch,
            token=settings.github_token,
            api_url=settings.github_api_url,
            raw_url=settings.github_raw_url,
            timeout=settings.http_timeout_s,
        )
    raise ValueError(f"Unknown UPDATES_STORE: {settings.store}. Supported values: filesystem, github")
