"""Pydantic model describing manifest plugin options."""

from __future__ import annotations

import math
import re
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, List, Literal, Mapping, Optional, Pattern

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ManifestConfigError
from .manifest import serialize_manifest
from .naming import DEFAULT_TRANSFORM_EXTENSIONS, FileDescriptor

DEFAULT_FILE_NAME = "manifest.json"
DEFAULT_KEY_HASH = re.compile(r"([a-f0-9]{16,32}\.?)", re.IGNORECASE)

FileFilter = Callable[[FileDescriptor], bool]
FileMapper = Callable[[FileDescriptor], FileDescriptor]
SortKey = Callable[[FileDescriptor], Any]
ManifestGenerator = Callable[[Dict[str, Any], List[FileDescriptor], Dict[str, List[str]]], Mapping[str, Any]]
ManifestSerializer = Callable[[Mapping[str, Any]], str]


class ManifestOptions(BaseModel):
    """Options for :class:`asset_manifest.plugin.ManifestPlugin`."""

    file_name: str = Field(default=DEFAULT_FILE_NAME, description="Manifest path relative to the output directory.")
    seed: Optional[Dict[str, Any]] = Field(default=None, description="Static entries written before any asset.")
    filter: Optional[FileFilter] = None
    map: Optional[FileMapper] = None
    sort: Optional[SortKey] = Field(default=None, description="Sort key applied to file descriptors.")
    generate: Optional[ManifestGenerator] = None
    serialize: ManifestSerializer = serialize_manifest
    base_path: str = ""
    public_path: Optional[str] = Field(default=None, description="Value prefix; None uses the build's public path.")
    remove_key_hash: Optional[Pattern[str]] = DEFAULT_KEY_HASH
    transform_extensions: Pattern[str] = DEFAULT_TRANSFORM_EXTENSIONS
    use_entry_keys: bool = False
    use_legacy_emit: bool = False
    write_to_file_emit: bool = False
    preserve_query: bool = False
    asset_hook_stage: float = math.inf
    on_member_failure: Literal["error", "partial"] = "error"

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid", frozen=True)

    @field_validator("file_name")
    @classmethod
    def _relative_file_name(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("file_name must not be empty.")
        if PurePosixPath(value).is_absolute() or Path(value).is_absolute():
            raise ValueError(f"file_name must be relative to the output directory (got '{value}').")
        return value

    @classmethod
    def from_mapping(cls, payload: Optional[Mapping[str, Any]]) -> "ManifestOptions":
        if payload is None:
            return cls()
        if not isinstance(payload, Mapping):
            raise ManifestConfigError(f"Manifest options must be a mapping (got {type(payload).__name__}).")
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise ManifestConfigError(f"Invalid manifest options: {exc}") from exc

    @classmethod
    def from_yaml(cls, path: Path) -> "ManifestOptions":
        """Load the static subset of the options from a YAML document."""

        payload = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
        return cls.from_mapping(payload)
