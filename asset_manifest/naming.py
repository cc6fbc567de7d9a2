"""Derive logical manifest names from emitted chunk and asset files."""

from __future__ import annotations

import dataclasses
import logging
import posixpath
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Collection, Dict, List, Mapping, Optional, Pattern

from .errors import ManifestConfigError, invoke_callback
from .host.compilation import Asset, Chunk, Compilation
from .host.templates import strip_query

if TYPE_CHECKING:  # pragma: no cover
    from .options import ManifestOptions

logger = logging.getLogger(__name__)

DEFAULT_TRANSFORM_EXTENSIONS = re.compile(r"^(gz|map)$", re.IGNORECASE)


@dataclass(frozen=True)
class FileDescriptor:
    """One candidate manifest entry handed to filter/map/sort/generate callbacks."""

    identifier: str
    name: str
    path: str
    chunk_name: Optional[str] = None
    source_entry_name: Optional[str] = None
    is_auxiliary_of: Optional[str] = None
    is_initial: bool = False
    is_chunk: bool = False
    is_asset: bool = False
    is_module_asset: bool = False

    def replace(self, **changes: object) -> "FileDescriptor":
        return dataclasses.replace(self, **changes)  # type: ignore[arg-type]


def get_file_type(path: str, transform_extensions: Pattern[str] = DEFAULT_TRANSFORM_EXTENSIONS) -> str:
    """Return the extension used for a logical name, e.g. ``js`` or ``js.map``."""

    parts = strip_query(path).split(".")
    extension = parts.pop()
    if parts and transform_extensions.search(extension):
        return f"{parts.pop()}.{extension}"
    return extension


def reduce_chunk(
    chunk: Chunk,
    options: "ManifestOptions",
    auxiliary: Dict[str, FileDescriptor],
) -> List[FileDescriptor]:
    """Describe a chunk's primary files and record its auxiliary files."""

    files: List[FileDescriptor] = []
    primaries: List[tuple[str, str]] = []
    for path in chunk.files:
        files.append(
            FileDescriptor(
                identifier=path,
                name=_chunk_file_name(chunk, path, options),
                path=path,
                chunk_name=chunk.name,
                source_entry_name=chunk.entry_name,
                is_initial=chunk.is_only_initial(),
                is_chunk=True,
            )
        )
        if chunk.name:
            primaries.append((strip_query(path), f"{chunk.name}.{get_file_type(path, options.transform_extensions)}"))

    for path in chunk.auxiliary_files:
        name, owner = _auxiliary_name(path, primaries)
        auxiliary[path] = FileDescriptor(
            identifier=path,
            name=name,
            path=path,
            chunk_name=chunk.name,
            source_entry_name=chunk.entry_name,
            is_auxiliary_of=owner,
            is_asset=True,
            is_module_asset=True,
        )
    return files


def reduce_assets(asset: Asset, module_assets: Mapping[str, str]) -> Optional[FileDescriptor]:
    """Describe an asset that is not a chunk file, or ``None`` when a chunk covers it."""

    name = module_assets.get(asset.name)
    source_filename = asset.info.get("source_filename")
    if name is None and source_filename:
        name = posixpath.join(posixpath.dirname(asset.name), posixpath.basename(str(source_filename)))
    if name is not None:
        return FileDescriptor(identifier=asset.name, name=name, path=asset.name, is_asset=True, is_module_asset=True)

    if asset.chunks or asset.auxiliary_chunks:
        return None
    # no owning entry or loader: identity mapping
    return FileDescriptor(identifier=asset.name, name=asset.name, path=asset.name, is_asset=True)


def normalize_file(file: FileDescriptor, options: "ManifestOptions", public_path: str) -> FileDescriptor:
    """Apply base path, public path, query and key-hash rules to one descriptor."""

    name = strip_query(options.base_path + file.name if options.base_path else file.name)
    path = file.path if options.preserve_query else strip_query(file.path)
    if public_path:
        path = public_path + path
    if options.remove_key_hash is not None:
        name = options.remove_key_hash.sub("", name)
    return file.replace(name=name, path=path)


def transform_files(files: List[FileDescriptor], options: "ManifestOptions") -> List[FileDescriptor]:
    """Run the configured ``filter``, ``map`` and ``sort`` callbacks, in that order."""

    if options.filter is not None:
        files = [file for file in files if invoke_callback("filter", options.filter, file)]
    if options.map is not None:
        files = [_checked_map(options, file) for file in files]
    if options.sort is not None:
        files = _sorted(files, options)
    return files


def collect_files(
    compilation: Compilation,
    options: "ManifestOptions",
    module_assets: Mapping[str, str],
    *,
    excluded: Collection[str] = (),
    public_path: Optional[str] = None,
) -> List[FileDescriptor]:
    """Return the manifest descriptors for one compilation, in asset order."""

    auxiliary: Dict[str, FileDescriptor] = {}
    files: List[FileDescriptor] = []
    for chunk in compilation.chunks:
        files.extend(reduce_chunk(chunk, options, auxiliary))
    for asset in compilation.assets.values():
        described = reduce_assets(asset, module_assets)
        if described is not None:
            files.append(described)

    files = [file for file in files if "hot-update" not in file.path and file.path not in excluded]
    listed = {file.path for file in files}
    for path, file in auxiliary.items():
        if path not in listed and path not in excluded:
            files.append(file)

    resolved_public_path = options.public_path if options.public_path is not None else (public_path or "")
    files = [normalize_file(file, options, resolved_public_path) for file in files]
    logger.debug("Collected %d manifest file(s) for %s", len(files), compilation.compiler.name or "build")
    return transform_files(files, options)


def _chunk_file_name(chunk: Chunk, path: str, options: "ManifestOptions") -> str:
    if not chunk.name:
        return path
    if options.use_entry_keys and not strip_query(path).endswith(".map"):
        return chunk.name
    return f"{chunk.name}.{get_file_type(path, options.transform_extensions)}"


def _auxiliary_name(path: str, primaries: List[tuple[str, str]]) -> tuple[str, Optional[str]]:
    stripped = strip_query(path)
    for primary_path, primary_name in primaries:
        if stripped.startswith(primary_path) and stripped != primary_path:
            return primary_name + stripped[len(primary_path) :], primary_name
    return posixpath.basename(stripped), None


def _checked_map(options: "ManifestOptions", file: FileDescriptor) -> FileDescriptor:
    result = invoke_callback("map", options.map, file)  # type: ignore[arg-type]
    if not isinstance(result, FileDescriptor):
        raise ManifestConfigError(f"Manifest 'map' callback must return a FileDescriptor (got {type(result).__name__}).")
    if not isinstance(result.name, str) or not isinstance(result.path, str):
        raise ManifestConfigError(
            f"Manifest 'map' callback returned non-string name/path for '{file.identifier}': "
            f"name={result.name!r}, path={result.path!r}."
        )
    return result


def _sorted(files: List[FileDescriptor], options: "ManifestOptions") -> List[FileDescriptor]:
    key = options.sort
    return invoke_callback("sort", lambda: sorted(files, key=key))  # type: ignore[arg-type]
