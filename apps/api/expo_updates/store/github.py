"""
GitHub repository bundle store.

Directory listings come from the REST contents API, file bytes from
raw.githubusercontent.com on the configured branch.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote

import httpx

from ..path_safety import safe_relpath
from .base import ROLLBACK_MARKER, UPDATES_DIR, BundleRef, sort_bundles

logger = logging.getLogger("expo_updates.store")

USER_AGENT = "expo-updates-server"


class GitHubBundleStore:
    """Reads ``updates/`` from a GitHub repository."""

    kind = "github"

    def __init__(
        self,
        owner: str,
        repo: str,
        branch: str = "main",
        token: Optional[str] = None,
        api_url: str = "https://api.github.com",
        raw_url: str = "https://raw.githubusercontent.com",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._raw_url = raw_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": USER_AGENT,
            "Cache-Control": "no-cache",
        }
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, headers=self._headers())

    def _contents_url(self, path: str) -> str:
        return f"{self._api_url}/repos/{self.owner}/{self.repo}/contents/{quote(path)}"

    def _raw_file_url(self, path: str) -> str:
        return f"{self._raw_url}/{self.owner}/{self.repo}/{self.branch}/{quote(path)}"

    async def _get(self, url: str, params: dict | None = None) -> httpx.Response:
        """GET with 404 mapped to FileNotFoundError and transport errors to OSError."""
        try:
            async with self._client() as client:
                resp = await client.get(url, params=params)
        except httpx.RequestError as e:
            raise OSError(f"GitHub connection failed: {str(e)[:200]}") from e
        if resp.status_code == 404:
            raise FileNotFoundError(f"{url} not found")
        if resp.status_code >= 400:
            raise OSError(f"GitHub request failed: {resp.status_code} {resp.reason_phrase}\n{resp.text[:500]}")
        return resp

    async def _list_dir(self, path: str) -> list[dict]:
        resp = await self._get(self._contents_url(path), params={"ref": self.branch})
        try:
            entries = resp.json()
        except ValueError as e:
            raise OSError(f"GitHub returned invalid JSON for {path}") from e
        if not isinstance(entries, list):
            # contents API answers a single object when path is a file
            raise FileNotFoundError(f"{path} is not a directory")
        return entries

    async def list_bundles(self, runtime_version: str) -> list[BundleRef]:
        safe_relpath(runtime_version)
        entries = await self._list_dir(f"{UPDATES_DIR}/{runtime_version}")
        names = [e.get("name", "") for e in entries if e.get("type") == "dir"]
        bundles = sort_bundles(runtime_version, names)
        logger.debug("Runtime %s: %d bundle(s) in %s/%s", runtime_version, len(bundles), self.owner, self.repo)
        return bundles

    async def has_file(self, bundle: BundleRef, name: str) -> bool:
        safe_relpath(name)
        try:
            entries = await self._list_dir(bundle.path)
        except FileNotFoundError:
            return False
        return any(e.get("name") == name for e in entries)

    async def read_file(self, bundle: BundleRef, relative_path: str) -> bytes:
        path = f"{bundle.path}/{safe_relpath(relative_path)}"
        resp = await self._get(self._raw_file_url(path))
        return resp.content

    async def rollback_commit_time(self, bundle: BundleRef) -> datetime:
        await self._get(self._contents_url(f"{bundle.path}/{ROLLBACK_MARKER}"), params={"ref": self.branch})
        # The contents API carries no creation time; the successful check is the commit time
        return datetime.now(timezone.utc)
