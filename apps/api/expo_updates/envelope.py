"""
Multipart response envelope.

A manifest response carries two parts (``manifest``, ``extensions``), a
directive response one (``directive``). The signature, when present, is a
part header of the first part only. The body is fully built in memory
before any response is returned.
"""
from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from typing import Optional

from .models import to_json
from .resolver import DirectiveOutcome, ManifestOutcome, Outcome

JSON_PART_CONTENT_TYPE = "application/json; charset=utf-8"
SFV_VERSION = "0"
CACHE_CONTROL = "private, max-age=0"


@dataclass
class Part:
    name: str
    body: str
    headers: dict = field(default_factory=dict)


def new_boundary() -> str:
    return f"----expo-updates-{secrets.token_hex(12)}"


def encode_multipart(parts: list[Part], boundary: str) -> bytes:
    out = bytearray()
    for part in parts:
        out += f"--{boundary}\r\n".encode("ascii")
        out += f'Content-Disposition: form-data; name="{part.name}"\r\n'.encode("ascii")
        out += f"Content-Type: {JSON_PART_CONTENT_TYPE}\r\n".encode("ascii")
        for k, v in part.headers.items():
            out += f"{k}: {v}\r\n".encode("ascii")
        out += b"\r\n"
        out += part.body.encode("utf-8")
        out += b"\r\n"
    out += f"--{boundary}--\r\n".encode("ascii")
    return bytes(out)


def response_headers(protocol_version: int, boundary: str) -> dict:
    return {
        "expo-protocol-version": str(protocol_version),
        "expo-sfv-version": SFV_VERSION,
        "cache-control": CACHE_CONTROL,
        "content-type": f"multipart/mixed; boundary={boundary}",
    }


def primary_payload(outcome: Outcome) -> tuple[str, str]:
    """(part name, exact JSON) of the part that gets signed."""
    if isinstance(outcome, ManifestOutcome):
        return "manifest", to_json(outcome.manifest)
    if isinstance(outcome, DirectiveOutcome):
        return "directive", to_json(outcome.directive, exclude_none=True)
    raise TypeError(f"Unknown outcome: {type(outcome).__name__}")


def build_envelope(
    outcome: Outcome,
    protocol_version: int,
    signature: Optional[str] = None,
    payload: Optional[str] = None,
    boundary: Optional[str] = None,
) -> tuple[bytes, dict]:
    """
    Build (body, headers) for an outcome.

    ``payload`` is the already-serialized primary JSON; pass the string that
    was signed so the transmitted bytes are exactly the signed bytes.
    """
    name, serialized = primary_payload(outcome)
    if payload is None:
        payload = serialized
    part_headers = {"expo-signature": signature} if signature else {}
    parts = [Part(name, payload, part_headers)]
    if isinstance(outcome, ManifestOutcome):
        extensions = {"assetRequestHeaders": outcome.asset_request_headers}
        parts.append(Part("extensions", json.dumps(extensions, separators=(",", ":"), ensure_ascii=False)))
    boundary = boundary or new_boundary()
    return encode_multipart(parts, boundary), response_headers(protocol_version, boundary)
