"""
Settings for the Expo Updates server.

All configuration comes from environment variables and is read once, at
application construction, into a frozen Settings value. Invalid values fail
fast with ValueError so a misconfigured server never starts serving.
"""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Optional

__all__ = ["Settings", "settings_from_env", "DEFAULT_ASSET_REQUEST_HEADERS"]

STORE_KINDS = ("filesystem", "github")
DEFAULT_ASSET_REQUEST_HEADERS = {"test-header": "test-header-value"}


@dataclass(frozen=True)
class Settings:
    """
    Configuration for the update server.

    Storage:
        store: "filesystem" or "github"
        updates_root: directory holding ``updates/`` (filesystem store)
        repo_owner / repo_name / repo_branch: updates repository (github store)
        github_token: optional token sent as ``Authorization: token ...``
        http_timeout_s: remote store request timeout

    Protocol:
        private_key_path: PEM RSA key used for code signing (optional)
        platforms: platforms this server publishes updates for
        default_channel: channel used when the request names none
        asset_request_headers: header bag attached to every asset key

    Ambient:
        event_log: optional JSONL delivery log
        log_level: level of the ``expo_updates`` logger tree
        force_https: send HSTS on every response
    """
    store: str = "filesystem"
    updates_root: str = "."
    repo_owner: Optional[str] = None
    repo_name: Optional[str] = None
    repo_branch: str = "main"
    github_token: Optional[str] = None
    github_api_url: str = "https://api.github.com"
    github_raw_url: str = "https://raw.githubusercontent.com"
    http_timeout_s: float = 20.0

    private_key_path: Optional[str] = None
    platforms: tuple[str, ...] = ("android",)
    default_channel: str = "production"
    asset_request_headers: dict = field(default_factory=lambda: dict(DEFAULT_ASSET_REQUEST_HEADERS))

    event_log: Optional[str] = None
    log_level: str = "INFO"
    force_https: bool = False

    def __post_init__(self):
        if self.store not in STORE_KINDS:
            raise ValueError(f"Unknown UPDATES_STORE: {self.store}. Supported values: {', '.join(STORE_KINDS)}")
        if self.store == "github" and not (self.repo_owner and self.repo_name):
            raise ValueError("UPDATES_REPO_OWNER and UPDATES_REPO_NAME are required for the github store")
        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")
        if not self.platforms:
            raise ValueError("At least one supported platform is required")
        if not self.default_channel:
            raise ValueError("default_channel must not be empty")
        if not isinstance(self.asset_request_headers, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in self.asset_request_headers.items()
        ):
            raise ValueError("asset_request_headers must map header names to string values")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def settings_from_env() -> Settings:
    """Build Settings from the process environment."""
    raw_headers = os.getenv("ASSET_REQUEST_HEADERS", "")
    if raw_headers:
        try:
            asset_headers = json.loads(raw_headers)
        except json.JSONDecodeError as e:
            raise ValueError(f"ASSET_REQUEST_HEADERS is not valid JSON: {e}") from e
    else:
        asset_headers = dict(DEFAULT_ASSET_REQUEST_HEADERS)

    try:
        timeout = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))
    except ValueError as e:
        raise ValueError(f"HTTP_TIMEOUT_SECONDS must be a number: {e}") from e

    platforms = tuple(p.strip() for p in os.getenv("SUPPORTED_PLATFORMS", "android").split(",") if p.strip())

    return Settings(
        store=os.getenv("UPDATES_STORE", "filesystem").lower(),
        updates_root=os.getenv("UPDATES_ROOT", os.getcwd()),
        repo_owner=os.getenv("UPDATES_REPO_OWNER") or None,
        repo_name=os.getenv("UPDATES_REPO_NAME") or None,
        repo_branch=os.getenv("UPDATES_REPO_BRANCH", "main"),
        github_token=os.getenv("GITHUB_TOKEN") or None,
        github_api_url=os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        github_raw_url=os.getenv("GITHUB_RAW_URL", "https://raw.githubusercontent.com").rstrip("/"),
        http_timeout_s=timeout,
        private_key_path=os.getenv("PRIVATE_KEY_PATH") or None,
        platforms=platforms,
        default_channel=os.getenv("DEFAULT_CHANNEL", "production"),
        asset_request_headers=asset_headers,
        event_log=os.getenv("UPDATES_EVENT_LOG") or None,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        force_https=_env_bool("FORCE_HTTPS"),
    )
