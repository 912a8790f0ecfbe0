"""
Asset endpoint — serves the bytes behind a manifest asset URL.

The ``asset`` query parameter is base64 of ``updates/<rv>/<ts>/<file>``;
the bundle is taken from it directly, so the bytes served are the bytes
that were hashed when the manifest was built, even after a newer bundle
is published.
"""
import base64
import binascii
import logging
from typing import Optional

from fastapi import FastAPI, Query
from starlette.responses import Response

from ..content import resolve_content_type
from ..errors import AssetNotFoundError, InvalidRequestError, MetadataMissingError
from ..path_safety import safe_relpath
from ..resolver import load_metadata
from ..store import parse_bundle_path

logger = logging.getLogger("expo_updates.assets")


def decode_asset_id(asset: str) -> str:
    """base64 → bundle-relative path. Query decoding may have turned '+' into ' '."""
    try:
        return base64.b64decode(asset.replace(" ", "+"), validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise InvalidRequestError("Invalid asset identifier.") from e


def register(app: FastAPI):
    ctx = app.state.updates_context
    settings = ctx["settings"]
    store = ctx["store"]

    @app.get("/api/assets")
    async def assets_endpoint(
        asset: Optional[str] = Query(default=None),
        platform: Optional[str] = Query(default=None),
        runtime_version: Optional[str] = Query(default=None, alias="runtimeVersion"),
    ):
        if not asset:
            raise InvalidRequestError("No asset name provided.")
        if not platform:
            raise InvalidRequestError("No platform provided.")
        if platform not in settings.platforms:
            raise InvalidRequestError(f'Unsupported platform "{platform}".')
        if not runtime_version:
            raise InvalidRequestError("No runtimeVersion provided.")

        asset_path = decode_asset_id(asset)
        try:
            bundle, relative_path = parse_bundle_path(asset_path)
            relative_path = safe_relpath(relative_path)
        except ValueError as e:
            raise InvalidRequestError("Invalid asset identifier.") from e

        if bundle.runtime_version != runtime_version:
            raise AssetNotFoundError(f'Asset "{asset_path}" does not belong to runtime version {runtime_version}.')

        loaded = await load_metadata(store, bundle)
        platform_meta = loaded.metadata.file_metadata.get(platform)
        if platform_meta is None:
            raise MetadataMissingError(f"No {platform} metadata for runtime version: {runtime_version} ({bundle.path})")

        if relative_path == platform_meta.bundle:
            content_type = resolve_content_type(None, is_launch_asset=True)
        else:
            entry = next((a for a in platform_meta.assets if a.path == relative_path), None)
            if entry is None:
                raise AssetNotFoundError(f'Asset "{relative_path}" is not part of {bundle.path}.')
            ext = entry.ext
            if not ext and "." in relative_path:
                ext = relative_path.rsplit(".", 1)[-1]
            content_type = resolve_content_type(ext)

        try:
            data = await store.read_file(bundle, relative_path)
        except OSError as e:
            logger.warning("Asset %s/%s unreadable: %s", bundle, relative_path, e)
            raise AssetNotFoundError(f'Asset "{relative_path}" does not exist.') from e

        logger.debug("Serving %s/%s as %s (%d bytes)", bundle, relative_path, content_type, len(data))
        return Response(content=data, status_code=200, media_type=content_type)
