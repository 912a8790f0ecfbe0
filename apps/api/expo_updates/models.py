"""Payload models: bundle metadata in, manifests and directives out."""
from __future__ import annotations

import json
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AssetEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")
    path: str = Field(..., min_length=1)
    ext: Optional[str] = None


class PlatformMetadata(BaseModel):
    model_config = ConfigDict(extra="ignore")
    bundle: str = Field(..., min_length=1)
    assets: list[AssetEntry] = Field(default_factory=list)


class BundleMetadata(_Wire):
    """Parsed metadata.json of an exported update."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    file_metadata: dict[str, PlatformMetadata]
    channel: Optional[str] = None


class AssetDescriptor(_Wire):
    hash: str
    key: str
    file_extension: str
    content_type: str
    url: str


class Manifest(_Wire):
    id: str
    created_at: str
    runtime_version: str
    launch_asset: AssetDescriptor
    assets: list[AssetDescriptor]
    metadata: dict[str, Any] = Field(default_factory=dict)
    extra: dict[str, Any] = Field(default_factory=dict)


class Directive(_Wire):
    type: Literal["rollBackToEmbedded", "noUpdateAvailable"]
    parameters: Optional[dict[str, Any]] = None


def to_json(model: BaseModel, exclude_none: bool = False) -> str:
    """Compact JSON, the exact form that gets signed and transmitted."""
    data = model.model_dump(by_alias=True, exclude_none=exclude_none)
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)
