"""Manifest plugin: collects names after asset processing and emits the manifest once per pass."""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Set

from .coordinator import ManifestCoordinator, MemberContribution, Settlement
from .errors import ManifestConfigError, ManifestEmitError
from .hooks import ManifestHooks, get_compiler_hooks
from .host.compilation import Compilation, LoaderContext, Module
from .host.compiler import Compiler, MultiCompiler
from .host.templates import strip_query
from .manifest import EmittedManifest, Manifest, freeze_entries, generate_manifest, render_manifest
from .naming import collect_files
from .options import ManifestOptions

logger = logging.getLogger(__name__)

PLUGIN_NAME = "ManifestPlugin"
_COORDINATOR_KEY = "asset_manifest.coordinator"
_MANIFEST_PATHS_KEY = "asset_manifest.paths"


class ManifestPlugin:
    """Writes a logical name -> emitted file manifest for every completed build pass."""

    def __init__(self, options: Optional[ManifestOptions] = None, **overrides: Any) -> None:
        if options is None:
            options = ManifestOptions(**overrides)
        elif overrides:
            options = options.model_copy(update=overrides)
        self.options = options
        self.last_manifest: Optional[EmittedManifest] = None

    def apply(self, compiler: Any) -> None:
        if isinstance(compiler, MultiCompiler):
            for member in compiler.compilers:
                self.apply(member)
            return
        if not isinstance(compiler, Compiler):
            raise TypeError(f"{PLUGIN_NAME} can only be applied to a Compiler or MultiCompiler (got {type(compiler).__name__}).")

        manifest_path = (compiler.output_path / self.options.file_name).resolve()
        root = compiler.root
        coordinator = root.ensure_extension(
            (_COORDINATOR_KEY, str(manifest_path)),
            lambda: ManifestCoordinator(manifest_path),
        )
        manifest_paths: Set[str] = root.ensure_extension(_MANIFEST_PATHS_KEY, set)
        manifest_paths.add(str(manifest_path))
        if coordinator.join(compiler, self):
            _MemberBinding(self, compiler, coordinator, manifest_paths).tap()
        else:
            logger.debug("%s already writes %s for %r", PLUGIN_NAME, manifest_path, compiler)


class _MemberBinding:
    """Connects one compiler's lifecycle to its manifest coordinator."""

    def __init__(
        self,
        plugin: ManifestPlugin,
        compiler: Compiler,
        coordinator: ManifestCoordinator,
        manifest_paths: Set[str],
    ) -> None:
        self.plugin = plugin
        self.options = plugin.options
        self.compiler = compiler
        self.coordinator = coordinator
        self.manifest_paths = manifest_paths
        self.manifest_asset_id = Path(
            os.path.relpath(coordinator.manifest_path, compiler.output_path)
        ).as_posix()
        self.module_assets: Dict[str, str] = {}

    def tap(self) -> None:
        hooks = self.compiler.hooks
        hooks.run.tap(PLUGIN_NAME, self._begin)
        hooks.watch_run.tap(PLUGIN_NAME, self._begin)
        hooks.compilation.tap(PLUGIN_NAME, self._track_module_assets)
        hooks.failed.tap(PLUGIN_NAME, self._fail)
        if self.options.use_legacy_emit:
            hooks.emit.tap(PLUGIN_NAME, self._process, stage=self.options.asset_hook_stage)
        else:
            hooks.this_compilation.tap(PLUGIN_NAME, self._tap_process_assets)

    def _begin(self, compiler: Compiler) -> None:
        self.coordinator.begin(compiler)

    def _fail(self, error: BaseException) -> None:
        settlement = self.coordinator.fail(self.compiler, error)
        if settlement is not None:
            _finalize(self, settlement, None)

    def _track_module_assets(self, compilation: Compilation) -> None:
        compilation.hooks.normal_module_loader.tap(PLUGIN_NAME, self._wrap_emit_file)

    def _wrap_emit_file(self, loader_context: LoaderContext, module: Module) -> None:
        emit_file = loader_context.emit_file
        module_assets = self.module_assets

        def tracked_emit_file(name: str, content: bytes, source_map: Optional[str] = None) -> None:
            if module.user_request and name not in module_assets:
                module_assets[name] = posixpath.join(
                    posixpath.dirname(name), posixpath.basename(module.user_request)
                )
            return emit_file(name, content, source_map)

        loader_context.emit_file = tracked_emit_file  # type: ignore[method-assign]

    def _tap_process_assets(self, compilation: Compilation) -> None:
        compilation.hooks.process_assets.tap(
            PLUGIN_NAME,
            lambda assets: self._process(compilation),
            stage=self.options.asset_hook_stage,
        )

    def _process(self, compilation: Compilation) -> None:
        if compilation.errors:
            settlement = self.coordinator.fail(self.compiler, compilation.errors[0])
        else:
            files = collect_files(
                compilation,
                self.options,
                self.module_assets,
                excluded=self._excluded_assets(compilation),
                public_path=compilation.public_path,
            )
            contribution = MemberContribution(
                name=self.compiler.name or "build",
                files=files,
                entrypoints=compilation.entrypoint_files(),
            )
            settlement = self.coordinator.complete(self.compiler, contribution)
        if settlement is not None:
            _finalize(self, settlement, compilation)

    def _excluded_assets(self, compilation: Compilation) -> Set[str]:
        excluded: Set[str] = set()
        for name in compilation.assets:
            target = (self.compiler.output_path / strip_query(name)).resolve()
            if str(target) in self.manifest_paths:
                excluded.add(name)
        return excluded


def _finalize(binding: _MemberBinding, settlement: Settlement, compilation: Optional[Compilation]) -> None:
    coordinator = binding.coordinator
    options = coordinator.primary.options
    file_name = options.file_name

    if not settlement.complete:
        failed = ", ".join(settlement.failed_members)
        if options.on_member_failure == "error":
            error = ManifestEmitError(f"Manifest {file_name} was not emitted: build(s) {failed} failed.")
            logger.error("%s", error)
            if compilation is not None:
                compilation.errors.append(error)
            return
        logger.warning("Emitting partial manifest %s; build(s) %s failed.", file_name, failed)

    manifest = generate_manifest(settlement.files(), options, settlement.entrypoints())
    member_hooks: List[ManifestHooks] = [get_compiler_hooks(member) for member in coordinator.members]
    for hooks in member_hooks:
        manifest = _as_manifest(hooks.before_emit.call(manifest))

    manifest.freeze()
    text = render_manifest(manifest, options.serialize)
    data = text.encode("utf-8")

    usable = compilation is not None and not compilation.errors
    if usable:
        compilation.emit_asset(binding.manifest_asset_id, data, info={"manifest": True})  # type: ignore[union-attr]
    written = False
    if options.write_to_file_emit or not usable:
        coordinator.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        coordinator.manifest_path.write_bytes(data)
        written = True

    emitted = EmittedManifest(
        file_name=file_name,
        path=coordinator.manifest_path,
        text=text,
        entries=freeze_entries(manifest),
        complete=settlement.complete,
        members=tuple(contribution.name for contribution in settlement.contributions),
        failed_members=settlement.failed_members,
        pass_id=settlement.pass_id,
        written=written,
    )
    for plugin in coordinator.plugins:
        plugin.last_manifest = emitted
    for hooks in member_hooks:
        hooks.after_emit.call(emitted)
    logger.info("Emitted %s with %d entries (pass %d)", coordinator.manifest_path, len(manifest), settlement.pass_id)


def _as_manifest(value: Any) -> Manifest:
    if isinstance(value, Manifest):
        return value
    if isinstance(value, Mapping):
        return Manifest.from_mapping(value)
    raise ManifestConfigError(f"Manifest 'before_emit' taps must return a mapping or None (got {type(value).__name__}).")
