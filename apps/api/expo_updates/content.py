"""
Content addressing helpers.

Assets are identified purely by the bytes they contain: the SHA-256 digest
(base64url, unpadded) is the integrity hash and the MD5 hex digest is the
short cache key. The update id is a SHA-256 hex digest of metadata.json
reshaped into 8-4-4-4-12 groups. Version/variant bits are left as they fall
out of the digest; clients compare the string exactly.
"""
from __future__ import annotations

import base64
import hashlib
import mimetypes
import re

DEFAULT_CONTENT_TYPE = "application/octet-stream"
LAUNCH_ASSET_CONTENT_TYPE = "application/javascript"

_HEX_RE = re.compile(r"^[0-9a-fA-F]{32,}$")

# mimetypes ships without these on a bare system
_EXTRA_TYPES = {
    "ttf": "font/ttf",
    "otf": "font/otf",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "hbc": "application/javascript",
    "bundle": "application/javascript",
    "json": "application/json",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "mp3": "audio/mpeg",
    "mp4": "video/mp4",
}


def create_hash(data: bytes, algorithm: str, encoding: str = "hex") -> str:
    """Digest ``data`` with ``algorithm`` and render it as hex or base64."""
    digest = hashlib.new(algorithm, data)
    if encoding == "hex":
        return digest.hexdigest()
    if encoding == "base64":
        return base64.b64encode(digest.digest()).decode("ascii")
    raise ValueError(f"Unsupported digest encoding: {encoding}")


def base64url_no_pad(value: str) -> str:
    return value.replace("+", "-").replace("/", "_").rstrip("=")


def hash_to_uuid_shape(hex_digest: str) -> str:
    """Slice the first 32 hex chars of a digest into UUID-shaped groups."""
    if not isinstance(hex_digest, str) or not _HEX_RE.match(hex_digest):
        raise ValueError(f"Expected at least 32 hex characters, got {hex_digest!r}")
    v = hex_digest.lower()
    return f"{v[0:8]}-{v[8:12]}-{v[12:16]}-{v[16:20]}-{v[20:32]}"


def asset_hash(data: bytes) -> str:
    return base64url_no_pad(create_hash(data, "sha256", "base64"))


def asset_key(data: bytes) -> str:
    # md5 is a cache key only, integrity is covered by asset_hash
    return create_hash(data, "md5", "hex")


def resolve_content_type(ext: str | None, is_launch_asset: bool = False) -> str:
    """Total MIME lookup: launch assets are always JavaScript, unknown means octet-stream."""
    if is_launch_asset:
        return LAUNCH_ASSET_CONTENT_TYPE
    if not ext:
        return DEFAULT_CONTENT_TYPE
    clean = ext.lower().lstrip(".")
    if clean in _EXTRA_TYPES:
        return _EXTRA_TYPES[clean]
    guessed, _ = mimetypes.guess_type(f"asset.{clean}", strict=False)
    return guessed or DEFAULT_CONTENT_TYPE
