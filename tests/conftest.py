"""
Expo Updates Test Configuration — pytest fixtures and helpers.

Builds update bundle trees on disk under tmp_path and isolates the
environment so no test sees a developer's UPDATES_* / PRIVATE_KEY_PATH.
"""
import json
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../apps/api"))

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

_ENV_VARS = (
    "UPDATES_STORE", "UPDATES_ROOT", "UPDATES_REPO_OWNER", "UPDATES_REPO_NAME",
    "UPDATES_REPO_BRANCH", "GITHUB_TOKEN", "GITHUB_API_URL", "GITHUB_RAW_URL",
    "HTTP_TIMEOUT_SECONDS", "PRIVATE_KEY_PATH", "SUPPORTED_PLATFORMS",
    "DEFAULT_CHANNEL", "ASSET_REQUEST_HEADERS", "UPDATES_EVENT_LOG",
    "LOG_LEVEL", "FORCE_HTTPS",
)

LAUNCH_PATH = "_expo/static/js/android/index-1a2b3c.hbc"
DEFAULT_ASSETS = [
    ("assets/3c0d5a3f07c0ad2b1f1b4b8bbd2ed9f7", "png", b"\x89PNG\r\n\x1a\nfake-icon"),
    ("assets/a81f9d7e5b2c4f6e8d0c1b2a3f4e5d6c", "ttf", b"\x00\x01\x00\x00fake-font"),
]


@pytest.fixture(autouse=True)
def _isolate_env(tmp_path, monkeypatch):
    """Every test runs with a clean update-server environment."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    root = tmp_path / "srv"
    root.mkdir()
    monkeypatch.setenv("UPDATES_ROOT", str(root))
    yield


@pytest.fixture
def updates_root(tmp_path):
    return tmp_path / "srv"


class BundlePublisher:
    """Writes ``updates/<rv>/<ts>/`` trees the way the export tooling lays them out."""

    def __init__(self, root):
        self.root = root

    def publish(self, runtime_version="1.0.0", timestamp=100, *, channel=None, assets=None,
                launch=b"var __BUNDLE_START_TIME__=1;", config=None, rollback=False,
                platform="android", write_metadata=True, write_config=True):
        bundle_dir = self.root / "updates" / runtime_version / str(timestamp)
        bundle_dir.mkdir(parents=True)
        assets = DEFAULT_ASSETS if assets is None else assets

        (bundle_dir / LAUNCH_PATH).parent.mkdir(parents=True, exist_ok=True)
        (bundle_dir / LAUNCH_PATH).write_bytes(launch)
        for path, _ext, data in assets:
            (bundle_dir / path).parent.mkdir(parents=True, exist_ok=True)
            (bundle_dir / path).write_bytes(data)

        metadata = {
            "version": 0,
            "bundler": "metro",
            "fileMetadata": {
                platform: {
                    "bundle": LAUNCH_PATH,
                    "assets": [{"path": p, "ext": e} for p, e, _ in assets],
                },
            },
        }
        if channel is not None:
            metadata["channel"] = channel
        raw = json.dumps(metadata).encode("utf-8")
        if write_metadata:
            (bundle_dir / "metadata.json").write_bytes(raw)
        if write_config:
            cfg = config if config is not None else {"name": "EasyWeather", "slug": "easyweather", "version": "1.0.0"}
            (bundle_dir / "expoConfig.json").write_text(json.dumps(cfg), encoding="utf-8")
        if rollback:
            (bundle_dir / "rollback").write_bytes(b"")
        return bundle_dir, raw

    def publish_rollback(self, runtime_version="1.0.0", timestamp=100):
        """A bundle directory holding nothing but the rollback marker."""
        bundle_dir = self.root / "updates" / runtime_version / str(timestamp)
        bundle_dir.mkdir(parents=True)
        (bundle_dir / "rollback").write_bytes(b"")
        return bundle_dir


@pytest.fixture
def publisher(updates_root):
    return BundlePublisher(updates_root)


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def private_key_path(tmp_path, rsa_private_key):
    path = tmp_path / "private-key.pem"
    path.write_bytes(rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ))
    os.chmod(str(path), 0o600)
    return path


@pytest.fixture
def make_client(updates_root):
    """TestClient factory over a filesystem store rooted at updates_root."""
    from fastapi.testclient import TestClient
    from expo_updates.main import create_app
    from expo_updates.settings import Settings

    def _make(**overrides):
        overrides.setdefault("updates_root", str(updates_root))
        return TestClient(create_app(Settings(**overrides)))

    return _make
