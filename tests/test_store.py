"""
Unit Tests — Bundle stores

Filesystem and GitHub backends behind the BundleStore protocol:
newest-first ordering, existence checks, byte reads and error mapping.
"""
import asyncio
import json
import os
from datetime import datetime, timezone

import httpx
import pytest

from expo_updates.settings import Settings
from expo_updates.store import (
    BundleRef,
    BundleStore,
    FilesystemBundleStore,
    GitHubBundleStore,
    create_store,
    parse_bundle_path,
    sort_bundles,
)


class TestOrdering:

    def test_numeric_descending(self):
        refs = sort_bundles("1.0.0", ["100", "99", "200", "1000"])
        assert [r.timestamp for r in refs] == ["1000", "200", "100", "99"]

    def test_non_numeric_names_ignored(self):
        refs = sort_bundles("1.0.0", ["100", ".DS_Store", "draft", "200"])
        assert [r.timestamp for r in refs] == ["200", "100"]

    def test_numeric_tie_is_stable(self):
        """Equal numeric value: lexicographically largest name wins, whatever the listing order."""
        assert sort_bundles("1", ["200", "0200"])[0].timestamp == "200"
        assert sort_bundles("1", ["0200", "200"])[0].timestamp == "200"

    def test_bundle_path(self):
        ref = BundleRef("1.0.0", "1700000000000")
        assert ref.path == "updates/1.0.0/1700000000000"
        assert ref.timestamp_ms == 1700000000000

    def test_parse_bundle_path(self):
        ref, rel = parse_bundle_path("updates/1.0.0/200/assets/abc")
        assert ref == BundleRef("1.0.0", "200")
        assert rel == "assets/abc"

    @pytest.mark.parametrize("bad", ["", "updates/1.0.0/200", "other/1.0.0/200/x", "updates/1.0.0/abc/x"])
    def test_parse_bundle_path_rejects(self, bad):
        with pytest.raises(ValueError):
            parse_bundle_path(bad)


class TestFilesystemStore:

    def test_protocol_conformance(self, updates_root):
        assert isinstance(FilesystemBundleStore(updates_root), BundleStore)

    def test_lists_newest_first(self, publisher, updates_root):
        publisher.publish("1.0.0", 100)
        publisher.publish("1.0.0", 200)
        store = FilesystemBundleStore(updates_root)
        refs = asyncio.run(store.list_bundles("1.0.0"))
        assert [r.timestamp for r in refs] == ["200", "100"]

    def test_missing_runtime_version(self, updates_root):
        store = FilesystemBundleStore(updates_root)
        with pytest.raises(FileNotFoundError):
            asyncio.run(store.list_bundles("9.9.9"))

    def test_runtime_version_traversal_rejected(self, updates_root):
        store = FilesystemBundleStore(updates_root)
        with pytest.raises(ValueError):
            asyncio.run(store.list_bundles("../etc"))

    def test_has_file_and_read(self, publisher, updates_root):
        publisher.publish("1.0.0", 100, rollback=True)
        store = FilesystemBundleStore(updates_root)
        ref = BundleRef("1.0.0", "100")
        assert asyncio.run(store.has_file(ref, "rollback")) is True
        assert asyncio.run(store.has_file(ref, "nope")) is False
        assert json.loads(asyncio.run(store.read_file(ref, "expoConfig.json")))["slug"] == "easyweather"

    def test_read_missing_file(self, publisher, updates_root):
        publisher.publish("1.0.0", 100)
        store = FilesystemBundleStore(updates_root)
        with pytest.raises(FileNotFoundError):
            asyncio.run(store.read_file(BundleRef("1.0.0", "100"), "missing.bin"))

    def test_read_rejects_traversal(self, publisher, updates_root):
        publisher.publish("1.0.0", 100)
        store = FilesystemBundleStore(updates_root)
        with pytest.raises(ValueError):
            asyncio.run(store.read_file(BundleRef("1.0.0", "100"), "../../../secret"))

    def test_rollback_commit_time_is_marker_mtime(self, publisher, updates_root):
        bundle_dir, _ = publisher.publish("1.0.0", 100, rollback=True)
        os.utime(bundle_dir / "rollback", (1700000000, 1700000000))
        store = FilesystemBundleStore(updates_root)
        when = asyncio.run(store.rollback_commit_time(BundleRef("1.0.0", "100")))
        assert when == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def _github_transport(files: dict, dirs: dict, seen: list):
    """Fake api.github.com + raw.githubusercontent.com for one repository."""

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        url = request.url
        if url.host == "api.github.com":
            prefix = "/repos/uwayss/easyweather-updates/contents/"
            path = url.path[len(prefix):]
            if path in dirs:
                return httpx.Response(200, json=dirs[path])
            if path in files:
                return httpx.Response(200, json={"name": path.rsplit("/", 1)[-1], "type": "file"})
            return httpx.Response(404, json={"message": "Not Found"})
        if url.host == "raw.githubusercontent.com":
            prefix = "/uwayss/easyweather-updates/main/"
            path = url.path[len(prefix):]
            if path in files:
                return httpx.Response(200, content=files[path])
            return httpx.Response(404, text="404: Not Found")
        return httpx.Response(500)

    return httpx.MockTransport(handler)


def _github_store(files, dirs, seen, token=None):
    return GitHubBundleStore(
        "uwayss", "easyweather-updates", token=token,
        transport=_github_transport(files, dirs, seen),
    )


class TestGitHubStore:

    DIRS = {
        "updates/1.0.0": [
            {"name": "100", "type": "dir"},
            {"name": "300", "type": "dir"},
            {"name": "README.md", "type": "file"},
            {"name": "200", "type": "dir"},
        ],
        "updates/1.0.0/300": [
            {"name": "metadata.json", "type": "file"},
            {"name": "rollback", "type": "file"},
        ],
    }
    FILES = {
        "updates/1.0.0/300/metadata.json": b'{"fileMetadata":{}}',
        "updates/1.0.0/300/rollback": b"",
    }

    def test_protocol_conformance(self):
        assert isinstance(_github_store({}, {}, []), BundleStore)

    def test_lists_only_directories_newest_first(self):
        store = _github_store(self.FILES, self.DIRS, [])
        refs = asyncio.run(store.list_bundles("1.0.0"))
        assert [r.timestamp for r in refs] == ["300", "200", "100"]

    def test_unknown_runtime_version(self):
        store = _github_store(self.FILES, self.DIRS, [])
        with pytest.raises(FileNotFoundError):
            asyncio.run(store.list_bundles("9.9.9"))

    def test_has_file(self):
        store = _github_store(self.FILES, self.DIRS, [])
        assert asyncio.run(store.has_file(BundleRef("1.0.0", "300"), "rollback")) is True
        assert asyncio.run(store.has_file(BundleRef("1.0.0", "200"), "rollback")) is False

    def test_read_file_uses_raw_host(self):
        seen = []
        store = _github_store(self.FILES, self.DIRS, seen)
        data = asyncio.run(store.read_file(BundleRef("1.0.0", "300"), "metadata.json"))
        assert data == b'{"fileMetadata":{}}'
        assert seen[-1].url.host == "raw.githubusercontent.com"

    def test_read_missing_file(self):
        store = _github_store(self.FILES, self.DIRS, [])
        with pytest.raises(FileNotFoundError):
            asyncio.run(store.read_file(BundleRef("1.0.0", "300"), "expoConfig.json"))

    def test_token_sent_when_configured(self):
        seen = []
        store = _github_store(self.FILES, self.DIRS, seen, token="ghp_test")
        asyncio.run(store.list_bundles("1.0.0"))
        assert seen[-1].headers["Authorization"] == "token ghp_test"
        assert seen[-1].headers["Cache-Control"] == "no-cache"

    def test_no_authorization_without_token(self):
        seen = []
        store = _github_store(self.FILES, self.DIRS, seen)
        asyncio.run(store.list_bundles("1.0.0"))
        assert "Authorization" not in seen[-1].headers

    def test_server_error_is_oserror(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")
        store = GitHubBundleStore("o", "r", transport=httpx.MockTransport(handler))
        with pytest.raises(OSError):
            asyncio.run(store.list_bundles("1.0.0"))

    def test_rollback_commit_time_requires_marker(self):
        store = _github_store(self.FILES, self.DIRS, [])
        when = asyncio.run(store.rollback_commit_time(BundleRef("1.0.0", "300")))
        assert when.tzinfo is not None
        with pytest.raises(FileNotFoundError):
            asyncio.run(store.rollback_commit_time(BundleRef("1.0.0", "200")))


class TestStoreFactory:

    def test_filesystem_default(self, updates_root):
        store = create_store(Settings(updates_root=str(updates_root)))
        assert isinstance(store, FilesystemBundleStore)
        assert store.root == updates_root

    def test_github(self):
        store = create_store(Settings(store="github", repo_owner="o", repo_name="r", github_token="t"))
        assert isinstance(store, GitHubBundleStore)
        assert (store.owner, store.repo, store.branch) == ("o", "r", "main")
