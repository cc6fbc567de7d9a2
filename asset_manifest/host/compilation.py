"""One build pass: modules, chunks and the assets they produce."""

from __future__ import annotations

import json
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from ..tapable import SyncHook
from .config import LoaderRule
from .templates import content_hash, render_template, strip_query

if TYPE_CHECKING:  # pragma: no cover
    from .compiler import Compiler

logger = logging.getLogger(__name__)

# process_assets stages, lowest first
STAGE_ADDITIONAL = -2000
STAGE_PRE_PROCESS = -1000
STAGE_DERIVED = -200
STAGE_ADDITIONS = -100
STAGE_OPTIMIZE = 100
STAGE_OPTIMIZE_SIZE = 400
STAGE_DEV_TOOLING = 500
STAGE_OPTIMIZE_HASH = 2500
STAGE_OPTIMIZE_TRANSFER = 3000
STAGE_ANALYSE = 4000
STAGE_REPORT = 5000


class HostError(RuntimeError):
    """Raised when the build host is misused."""


class BuildError(Exception):
    """A compilation error recorded on :attr:`Compilation.errors`."""

    def __init__(self, message: str, *, module: Optional[str] = None) -> None:
        super().__init__(message)
        self.module = module


@dataclass(slots=True)
class Asset:
    name: str
    source: bytes
    info: Dict[str, Any] = field(default_factory=dict)
    chunks: List[str] = field(default_factory=list)
    auxiliary_chunks: List[str] = field(default_factory=list)

    def size(self) -> int:
        return len(self.source)


@dataclass(slots=True)
class Module:
    request: str
    resource: Path
    user_request: str
    source: str = ""


@dataclass(slots=True)
class Chunk:
    name: Optional[str]
    entry_name: Optional[str] = None
    modules: List[Module] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    auxiliary_files: List[str] = field(default_factory=list)
    content_hash: Optional[str] = None
    initial: bool = True

    def is_only_initial(self) -> bool:
        return self.initial


class LoaderContext:
    """Handle passed to loaders; plugins may wrap :meth:`emit_file`."""

    def __init__(self, compilation: "Compilation", module: Module, rule: LoaderRule) -> None:
        self.compilation = compilation
        self.module = module
        self.rule = rule

    def emit_file(self, name: str, content: bytes, source_map: Optional[str] = None) -> None:
        resource = self.module.resource
        try:
            source_filename = resource.relative_to(self.compilation.context).as_posix()
        except ValueError:
            source_filename = resource.name
        self.compilation.emit_asset(name, content, info={"source_filename": source_filename})
        if source_map is not None:
            self.compilation.emit_asset(f"{strip_query(name)}.map", source_map.encode("utf-8"))


class CompilationHooks:
    def __init__(self) -> None:
        self.normal_module_loader = SyncHook(["loader_context", "module"])
        self.process_assets = SyncHook(["assets"])


class Compilation:
    """State of a single build pass for one compiler."""

    def __init__(self, compiler: "Compiler") -> None:
        self.compiler = compiler
        self.config = compiler.config
        self.context = self.config.context.resolve()
        self.hooks = CompilationHooks()
        self.assets: Dict[str, Asset] = {}
        self.chunks: List[Chunk] = []
        self.entrypoints: Dict[str, List[Chunk]] = {}
        self.errors: List[Exception] = []
        self.warnings: List[Exception] = []
        self.hash: Optional[str] = None
        self._assets_processed = False

    @property
    def public_path(self) -> str:
        value = self.config.output.public_path
        return "" if value == "auto" else value

    @property
    def hash_length(self) -> int:
        return self.config.output.hash_length

    def emit_asset(
        self,
        name: str,
        source: Union[bytes, str],
        *,
        info: Optional[Dict[str, Any]] = None,
        chunk: Optional[Chunk] = None,
        auxiliary_of: Optional[Chunk] = None,
    ) -> Asset:
        data = source.encode("utf-8") if isinstance(source, str) else bytes(source)
        existing = self.assets.get(name)
        if existing is not None:
            if existing.source != data:
                self.errors.append(
                    BuildError(f"Conflict: multiple assets emit different content to the same filename {name}")
                )
            return existing
        asset = Asset(name=name, source=data, info=dict(info or {}))
        if chunk is not None and chunk.name is not None:
            asset.chunks.append(chunk.name)
        if auxiliary_of is not None and auxiliary_of.name is not None:
            asset.auxiliary_chunks.append(auxiliary_of.name)
        self.assets[name] = asset
        return asset

    def build(self) -> None:
        for entry_name, requests in self.config.entries().items():
            chunk = Chunk(name=entry_name, entry_name=entry_name)
            for request in requests:
                module = self._build_module(request)
                if module is not None:
                    chunk.modules.append(module)
            self.chunks.append(chunk)
            self.entrypoints[entry_name] = [chunk]
        self._seal()

    def process_assets(self) -> None:
        if self._assets_processed:
            raise HostError("Assets were already processed for this compilation.")
        self._assets_processed = True
        self.hooks.process_assets.call(self.assets)

    def entrypoint_files(self) -> Dict[str, List[str]]:
        return {
            name: [path for chunk in chunks for path in (*chunk.files, *chunk.auxiliary_files)]
            for name, chunks in self.entrypoints.items()
        }

    def _build_module(self, request: str) -> Optional[Module]:
        resource = (self.context / request).resolve()
        if not resource.is_file():
            self.errors.append(BuildError(f"Module not found: Can't resolve '{request}' in '{self.context}'", module=request))
            return None

        module = Module(request=request, resource=resource, user_request=request)
        data = resource.read_bytes()
        rule = next((candidate for candidate in self.config.rules if candidate.matches(resource)), None)
        if rule is None:
            module.source = data.decode("utf-8")
            return module

        loader_context = LoaderContext(self, module, rule)
        self.hooks.normal_module_loader.call(loader_context, module)
        module.source = _run_file_loader(loader_context, data)
        return module

    def _seal(self) -> None:
        length = self.hash_length
        for chunk in self.chunks:
            chunk_source = "".join(module.source for module in chunk.modules)
            chunk.content_hash = content_hash(chunk_source.encode("utf-8"), length)

        digest_input = "\n".join(
            [f"{chunk.name}:{chunk.content_hash}" for chunk in self.chunks] + sorted(self.assets)
        )
        self.hash = content_hash(digest_input.encode("utf-8"), length)

        for chunk in self.chunks:
            self._render_chunk(chunk)
        logger.debug("Sealed %d chunk(s) with hash %s", len(self.chunks), self.hash)

    def _render_chunk(self, chunk: Chunk) -> None:
        filename = render_template(
            self.config.output.filename,
            {
                "name": chunk.name or chunk.content_hash,
                "hash": self.hash,
                "fullhash": self.hash,
                "contenthash": chunk.content_hash,
                "chunkhash": chunk.content_hash,
                "ext": "js",
            },
        )
        source = "".join(module.source for module in chunk.modules)
        if self.config.devtool == "source-map":
            map_name = f"{strip_query(filename)}.map"
            source += f"//# sourceMappingURL={posixpath.basename(map_name)}\n"
            source_map = {
                "version": 3,
                "file": posixpath.basename(strip_query(filename)),
                "sources": [module.request for module in chunk.modules],
                "names": [],
                "mappings": "",
            }
            self.emit_asset(map_name, json.dumps(source_map), info={"development": True}, auxiliary_of=chunk)
            chunk.auxiliary_files.append(map_name)
        self.emit_asset(
            filename,
            source,
            info={"content_hash": chunk.content_hash, "immutable": filename != self.config.output.filename},
            chunk=chunk,
        )
        chunk.files.append(filename)


def _run_file_loader(loader_context: LoaderContext, data: bytes) -> str:
    resource = loader_context.module.resource
    template = str(loader_context.rule.options.get("name", "[name].[ext]"))
    name = render_template(
        template,
        {
            "name": resource.stem,
            "ext": resource.suffix.lstrip("."),
            "hash": content_hash(data, loader_context.compilation.hash_length),
            "contenthash": content_hash(data, loader_context.compilation.hash_length),
        },
    )
    loader_context.emit_file(name, data)
    public_path = loader_context.compilation.public_path
    return f"module.exports = {json.dumps(public_path + name)};\n"
