"""
Update resolution — decides what a client gets for (runtime, platform, current update).

Flow per request:

  latest_bundle ──► classify ──┬─ NORMAL_UPDATE ─► load_metadata ─┬─ client current (v1) ─► noUpdateAvailable
                               │                                  └─ manifest (launch asset + assets, parallel)
                               └─ ROLLBACK ─────► headers check ──┬─ embedded == current ─► noUpdateAvailable
                                                                  └─ rollBackToEmbedded

The resolver returns an Outcome value; it never signals "client is current"
by raising. Failures raise UpdatesError subclasses.
"""
from __future__ import annotations

import asyncio
import base64
import enum
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
from urllib.parse import urlencode

from .content import asset_hash, asset_key, create_hash, hash_to_uuid_shape, resolve_content_type
from .errors import (
    AssetNotFoundError,
    BundleUnreadableError,
    ConfigMissingError,
    MetadataMissingError,
    MissingHeaderError,
    RollbackMissingError,
    RuntimeVersionNotFoundError,
    UnsupportedProtocolError,
)
from .models import AssetDescriptor, BundleMetadata, Directive, Manifest
from .settings import DEFAULT_ASSET_REQUEST_HEADERS
from .store import ROLLBACK_MARKER, BundleRef, BundleStore

logger = logging.getLogger("expo_updates.manifest")

ASSETS_PATH = "/api/assets"
METADATA_FILE = "metadata.json"
CLIENT_CONFIG_FILE = "expoConfig.json"
LAUNCH_ASSET_EXTENSION = "bundle"


class UpdateType(enum.Enum):
    NORMAL_UPDATE = 0
    ROLLBACK = 1


@dataclass(frozen=True)
class UpdateRequest:
    """Validated protocol inputs of one manifest request."""
    runtime_version: str
    platform: str
    protocol_version: int = 0
    channel: Optional[str] = None
    server_address: str = ""
    current_update_id: Optional[str] = None
    embedded_update_id: Optional[str] = None


@dataclass(frozen=True)
class LoadedMetadata:
    metadata: BundleMetadata
    raw: bytes
    update_id: str

    @property
    def update_uuid(self) -> str:
        return hash_to_uuid_shape(self.update_id)


@dataclass(frozen=True)
class ManifestOutcome:
    manifest: Manifest
    bundle: BundleRef
    asset_request_headers: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DirectiveOutcome:
    directive: Directive
    bundle: Optional[BundleRef] = None


Outcome = Union[ManifestOutcome, DirectiveOutcome]


def iso_utc(dt: datetime) -> str:
    """ISO-8601 with millisecond precision and a Z suffix."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def created_at(bundle: BundleRef) -> str:
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    return iso_utc(epoch + timedelta(milliseconds=bundle.timestamp_ms))


# ── Bundle locator ──────────────────────────────────────────────────────

async def latest_bundle(store: BundleStore, runtime_version: str, channel: Optional[str] = None) -> BundleRef:
    """
    Newest bundle for ``runtime_version``, by timestamp directory name alone.

    Nothing inside the bundle is read here: a directory holding only a
    rollback marker is a valid latest bundle. ``channel`` is only logged.
    """
    try:
        bundles = await store.list_bundles(runtime_version)
    except (FileNotFoundError, ValueError) as e:
        raise RuntimeVersionNotFoundError(f"Unsupported runtime version: {runtime_version}") from e
    except OSError as e:
        raise RuntimeVersionNotFoundError(f"No updates found for runtime version: {runtime_version}. Error: {e}") from e

    if not bundles:
        raise RuntimeVersionNotFoundError(f"No valid update directories found for runtime version: {runtime_version}")
    logger.debug("Latest bundle for %s (channel %r): %s", runtime_version, channel, bundles[0])
    return bundles[0]


# ── Metadata & config loader ────────────────────────────────────────────

async def load_metadata(store: BundleStore, bundle: BundleRef) -> LoadedMetadata:
    try:
        raw = await store.read_file(bundle, METADATA_FILE)
        metadata = BundleMetadata.model_validate_json(raw)
    except (OSError, ValueError) as e:
        raise MetadataMissingError(
            f"No metadata found for runtime version: {bundle.runtime_version} ({bundle.path}). Error: {e}"
        ) from e
    return LoadedMetadata(metadata=metadata, raw=raw, update_id=create_hash(raw, "sha256", "hex"))


async def load_client_config(store: BundleStore, bundle: BundleRef) -> dict:
    try:
        raw = await store.read_file(bundle, CLIENT_CONFIG_FILE)
        config = json.loads(raw)
    except (OSError, ValueError) as e:
        raise ConfigMissingError(
            f"No expo config found for runtime version: {bundle.runtime_version} ({bundle.path}). Error: {e}"
        ) from e
    if not isinstance(config, dict):
        raise ConfigMissingError(
            f"No expo config found for runtime version: {bundle.runtime_version} ({bundle.path}). "
            f"Error: expected a JSON object"
        )
    return config


# ── Asset descriptors ───────────────────────────────────────────────────

def encode_asset_id(bundle: BundleRef, relative_path: str) -> str:
    return base64.b64encode(f"{bundle.path}/{relative_path}".encode("utf-8")).decode("ascii")


async def describe_asset(
    store: BundleStore,
    bundle: BundleRef,
    relative_path: str,
    ext: Optional[str],
    is_launch_asset: bool,
    server_address: str,
    platform: str,
    runtime_version: str,
) -> AssetDescriptor:
    try:
        data = await store.read_file(bundle, relative_path)
    except (OSError, ValueError) as e:
        raise AssetNotFoundError(f'Asset "{relative_path}" could not be read from {bundle.path}. Error: {e}') from e

    suffix = LAUNCH_ASSET_EXTENSION if is_launch_asset else (ext or "").lstrip(".")
    query = urlencode({
        "asset": encode_asset_id(bundle, relative_path),
        "platform": platform,
        "runtimeVersion": runtime_version,
    })
    return AssetDescriptor(
        hash=asset_hash(data),
        key=asset_key(data),
        file_extension=f".{suffix}",
        content_type=resolve_content_type(ext, is_launch_asset),
        url=f"{server_address}{ASSETS_PATH}?{query}",
    )


# ── Classifier & directives ─────────────────────────────────────────────

async def classify(store: BundleStore, bundle: BundleRef) -> UpdateType:
    try:
        is_rollback = await store.has_file(bundle, ROLLBACK_MARKER)
    except OSError as e:
        raise BundleUnreadableError(
            f"Could not inspect update for runtime version: {bundle.runtime_version} ({bundle.path}). Error: {e}"
        ) from e
    if is_rollback:
        return UpdateType.ROLLBACK
    return UpdateType.NORMAL_UPDATE


def no_update_available_directive(protocol_version: int) -> Directive:
    if protocol_version == 0:
        raise UnsupportedProtocolError("NoUpdateAvailable directive not available in protocol version 0")
    return Directive(type="noUpdateAvailable")


async def rollback_directive(store: BundleStore, bundle: BundleRef) -> Directive:
    try:
        commit_time = await store.rollback_commit_time(bundle)
    except OSError as e:
        raise RollbackMissingError(f"No rollback found in {bundle.path}. Error: {e}") from e
    return Directive(type="rollBackToEmbedded", parameters={"commitTime": iso_utc(commit_time)})


# ── Resolver ────────────────────────────────────────────────────────────

class UpdateResolver:
    """Runs the per-request state machine against one BundleStore."""

    def __init__(self, store: BundleStore, asset_request_headers: Optional[dict] = None):
        self.store = store
        if asset_request_headers is None:
            asset_request_headers = DEFAULT_ASSET_REQUEST_HEADERS
        self.asset_request_headers = dict(asset_request_headers)

    async def resolve(self, req: UpdateRequest) -> Outcome:
        bundle = await latest_bundle(self.store, req.runtime_version, req.channel)
        update_type = await classify(self.store, bundle)
        if update_type is UpdateType.ROLLBACK:
            logger.info("Found rollback at %s, sending directive", bundle)
            return await self._rollback(req, bundle)
        logger.info("Found normal update at %s", bundle)
        return await self._normal_update(req, bundle)

    def _no_update(self, req: UpdateRequest, bundle: BundleRef) -> DirectiveOutcome:
        logger.info("Client is up to date (runtime %s), sending noUpdateAvailable", req.runtime_version)
        return DirectiveOutcome(directive=no_update_available_directive(req.protocol_version), bundle=bundle)

    async def _normal_update(self, req: UpdateRequest, bundle: BundleRef) -> Outcome:
        loaded = await load_metadata(self.store, bundle)
        update_uuid = loaded.update_uuid
        if req.current_update_id == update_uuid and req.protocol_version == 1:
            return self._no_update(req, bundle)

        config = await load_client_config(self.store, bundle)
        platform_meta = loaded.metadata.file_metadata.get(req.platform)
        if platform_meta is None:
            raise MetadataMissingError(
                f"No {req.platform} metadata for runtime version: {req.runtime_version} ({bundle.path})"
            )

        def describe(path: str, ext: Optional[str], is_launch: bool):
            return describe_asset(self.store, bundle, path, ext, is_launch,
                                  req.server_address, req.platform, req.runtime_version)

        # gather keeps argument order regardless of completion order
        launch_asset, *assets = await asyncio.gather(
            describe(platform_meta.bundle, None, True),
            *(describe(a.path, a.ext, False) for a in platform_meta.assets),
        )

        expo_client = dict(config)
        if loaded.metadata.channel is not None:
            expo_client["channel"] = loaded.metadata.channel
        else:
            # an unset channel is dropped from the JSON, not sent as null
            expo_client.pop("channel", None)
        manifest = Manifest(
            id=update_uuid,
            created_at=created_at(bundle),
            runtime_version=req.runtime_version,
            launch_asset=launch_asset,
            assets=assets,
            metadata={},
            extra={"expoClient": expo_client},
        )
        headers = {a.key: dict(self.asset_request_headers) for a in [*assets, launch_asset]}
        return ManifestOutcome(manifest=manifest, bundle=bundle, asset_request_headers=headers)

    async def _rollback(self, req: UpdateRequest, bundle: BundleRef) -> Outcome:
        if req.protocol_version == 0:
            raise UnsupportedProtocolError("Rollbacks not supported on protocol version 0")
        if not req.embedded_update_id:
            raise MissingHeaderError("Invalid Expo-Embedded-Update-ID request header specified.")
        if req.current_update_id == req.embedded_update_id:
            return self._no_update(req, bundle)
        return DirectiveOutcome(directive=await rollback_directive(self.store, bundle), bundle=bundle)
