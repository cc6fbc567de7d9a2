"""Ordered manifest accumulation and serialization."""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import ManifestCallbackError, ManifestConfigError, ManifestFrozenError, invoke_callback
from .naming import FileDescriptor

if TYPE_CHECKING:  # pragma: no cover
    from .options import ManifestOptions

logger = logging.getLogger(__name__)


class Manifest(Mapping[str, Any]):
    """Logical name -> emitted name mapping ordered by first insertion.

    Writing an existing key replaces its value but keeps its position. Once
    :meth:`freeze` is called (at serialization time) the manifest is read-only.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}
        self._seeded = False
        self._frozen = False

    @classmethod
    def from_mapping(cls, entries: Mapping[str, Any]) -> "Manifest":
        if not isinstance(entries, Mapping):
            raise ManifestConfigError(f"Manifest content must be a mapping (got {type(entries).__name__}).")
        manifest = cls()
        for key, value in entries.items():
            manifest[key] = value
        return manifest

    @property
    def frozen(self) -> bool:
        return self._frozen

    def seed(self, initial: Optional[Mapping[str, Any]]) -> None:
        """Pre-populate the manifest; only allowed before any entry is added."""

        self._ensure_mutable()
        if self._seeded or self._entries:
            raise ManifestConfigError("Manifest seed must be applied once, before any entry is added.")
        self._seeded = True
        if initial is None:
            return
        if not isinstance(initial, Mapping):
            raise ManifestConfigError(f"Manifest seed must be a mapping (got {type(initial).__name__}).")
        for key, value in initial.items():
            _check_key(key)
            _check_json_value(key, value)
            self._entries[key] = copy.deepcopy(value)

    def add(self, logical_name: str, emitted_name: str) -> None:
        """Record an asset entry; the last write for a logical name wins."""

        self._ensure_mutable()
        _check_key(logical_name)
        if not isinstance(emitted_name, str):
            raise ManifestConfigError(
                f"Manifest value for '{logical_name}' must be a string (got {type(emitted_name).__name__})."
            )
        self._entries[logical_name] = emitted_name

    def __setitem__(self, key: str, value: Any) -> None:
        self._ensure_mutable()
        _check_key(key)
        _check_json_value(key, value)
        self._entries[key] = value

    def update(self, entries: Mapping[str, Any]) -> None:
        for key, value in entries.items():
            self[key] = value

    def freeze(self) -> None:
        self._frozen = True

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._entries)

    def __getitem__(self, key: str) -> Any:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        state = ", frozen" if self._frozen else ""
        return f"Manifest({self._entries!r}{state})"

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise ManifestFrozenError("Manifest was already serialized for this build pass.")


@dataclass(frozen=True)
class EmittedManifest:
    """Read-only record of one emitted manifest, published after emission."""

    file_name: str
    path: Path
    text: str
    entries: Mapping[str, Any]
    complete: bool = True
    members: Tuple[str, ...] = ()
    failed_members: Tuple[str, ...] = ()
    pass_id: int = 0
    written: bool = field(default=False, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.entries)


def serialize_manifest(manifest: Mapping[str, Any]) -> str:
    """Pretty JSON, keys in insertion order."""

    payload = manifest.to_dict() if isinstance(manifest, Manifest) else dict(manifest)
    return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


def render_manifest(manifest: Manifest, serialize: Callable[[Mapping[str, Any]], str]) -> str:
    """Serialize with the configured formatter and validate its output."""

    try:
        text = serialize(manifest)
    except (TypeError, ValueError) as exc:
        raise ManifestConfigError(f"Manifest could not be serialized: {exc}") from exc
    except Exception as exc:
        raise ManifestCallbackError("serialize", exc) from exc
    if not isinstance(text, str):
        raise ManifestConfigError(f"Manifest 'serialize' must return a string (got {type(text).__name__}).")
    return text


def generate_manifest(
    files: Sequence[FileDescriptor],
    options: "ManifestOptions",
    entrypoints: Mapping[str, List[str]],
) -> Manifest:
    """Build the manifest for a pass from the seed and collected files."""

    if options.generate is not None:
        seed = copy.deepcopy(dict(options.seed or {}))
        result = invoke_callback("generate", options.generate, seed, list(files), dict(entrypoints))
        if isinstance(result, Manifest):
            return result
        return Manifest.from_mapping(result)

    manifest = Manifest()
    manifest.seed(options.seed)
    for file in files:
        manifest.add(file.name, file.path)
    logger.debug("Accumulated %d manifest entries", len(manifest))
    return manifest


def freeze_entries(manifest: Manifest) -> Mapping[str, Any]:
    return MappingProxyType(copy.deepcopy(manifest.to_dict()))


def _check_key(key: object) -> None:
    if not isinstance(key, str):
        raise ManifestConfigError(f"Manifest keys must be strings (got {type(key).__name__}: {key!r}).")


def _check_json_value(key: str, value: Any) -> None:
    try:
        json.dumps(value)
    except (TypeError, ValueError) as exc:
        raise ManifestConfigError(f"Manifest value for '{key}' is not JSON serializable: {exc}") from exc
