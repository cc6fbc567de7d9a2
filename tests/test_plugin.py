from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from asset_manifest import (
    FileDescriptor,
    ManifestCallbackError,
    ManifestConfigError,
    ManifestFrozenError,
    ManifestPlugin,
    get_compiler_hooks,
)
from asset_manifest.host import STAGE_ADDITIONAL, STAGE_REPORT, Compiler, content_hash


class _LateAssetPlugin:
    """Adds an unrelated asset while assets are processed."""

    def __init__(self, stage: float, name: str = "late.txt") -> None:
        self.stage = stage
        self.name = name

    def apply(self, compiler: Compiler) -> None:
        compiler.hooks.this_compilation.tap("LateAsset", self._tap)

    def _tap(self, compilation) -> None:
        compilation.hooks.process_assets.tap(
            "LateAsset",
            lambda assets: compilation.emit_asset(self.name, b"late\n"),
            stage=self.stage,
        )


def test_single_entry_uses_default_name(make_config, run_build) -> None:
    result = run_build(make_config("file.js"))

    assert not result.stats.has_errors()
    assert result.manifest == {"main.js": "main.js"}
    assert (result.manifest_path.parent / "main.js").exists()


def test_multiple_entries_follow_declaration_order(make_config, run_build) -> None:
    result = run_build(make_config({"one": "file.js", "two": "file-two.js"}))

    assert result.manifest == {"one.js": "one.js", "two.js": "two.js"}
    assert list(result.manifest) == ["one.js", "two.js"]


def test_hashed_filename_uses_build_hash(make_config, run_build) -> None:
    result = run_build(make_config({"one": "file.js"}, output={"filename": "[name].[hash].js"}))

    assert result.manifest == {"one.js": f"one.{result.stats.hash}.js"}
    assert (result.manifest_path.parent / f"one.{result.stats.hash}.js").exists()


def test_source_maps_are_listed_after_their_chunk(make_config, run_build) -> None:
    result = run_build(make_config({"one": "file.js"}, devtool="source-map"))

    assert result.manifest == {"one.js": "one.js", "one.js.map": "one.js.map"}
    assert list(result.manifest) == ["one.js", "one.js.map"]


def test_hashed_source_maps_keep_the_chunk_key(make_config, run_build) -> None:
    result = run_build(
        make_config({"one": "file.js"}, devtool="source-map", output={"filename": "[name].[contenthash].js"})
    )

    chunk_hash = result.stats.compilation.chunks[0].content_hash
    assert result.manifest == {
        "one.js": f"one.{chunk_hash}.js",
        "one.js.map": f"one.{chunk_hash}.js.map",
    }


def test_seed_entries_are_merged(make_config, run_build) -> None:
    result = run_build(make_config({"one": "file.js"}), seed={"test1": "test2"})

    assert result.manifest == {"one.js": "one.js", "test1": "test2"}
    assert list(result.manifest) == ["test1", "one.js"]


def test_seed_is_not_mutated_by_builds(make_config, run_build) -> None:
    seed = {"nested": {"value": "1"}}
    result = run_build(make_config("file.js"), seed=seed)

    assert result.manifest == {"nested": {"value": "1"}, "main.js": "main.js"}
    assert seed == {"nested": {"value": "1"}}


def test_file_loader_assets_use_source_names(make_config, run_build) -> None:
    rules = [{"test": r"\.txt$", "loader": "file", "options": {"name": "[name].[ext]"}}]
    result = run_build(make_config("file.txt", rules=rules))

    assert result.manifest == {"main.js": "main.js", "file.txt": "file.txt"}


def test_hashed_file_loader_assets_keep_source_key(make_config, run_build) -> None:
    rules = [{"test": r"\.txt$", "options": {"name": "[name].[contenthash].[ext]"}}]
    result = run_build(make_config("file.txt", rules=rules))

    digest = content_hash(b"plain text\n", 20)
    assert result.manifest == {"main.js": "main.js", "file.txt": f"file.{digest}.txt"}


def test_manifest_is_available_to_later_plugins(make_config, run_build) -> None:
    result = run_build(make_config("file.js"))

    asset = result.stats.compilation.assets["manifest.json"]
    assert json.loads(asset.source.decode("utf-8")) == {"main.js": "main.js"}
    assert asset.info["manifest"] is True


def test_custom_file_name_in_subdirectory(make_config, run_build) -> None:
    result = run_build(make_config("file.js"), file_name="meta/assets.json")

    assert result.manifest_path.name == "assets.json"
    assert result.manifest == {"main.js": "main.js"}


def test_public_path_from_build_output(make_config, run_build) -> None:
    result = run_build(make_config("file.js", output={"public_path": "/static/"}))

    assert result.manifest == {"main.js": "/static/main.js"}


def test_public_path_option_overrides_build(make_config, run_build) -> None:
    config = make_config("file.js", output={"public_path": "/static/"})

    assert run_build(config, public_path="https://cdn.example.com/").manifest == {
        "main.js": "https://cdn.example.com/main.js"
    }


def test_empty_public_path_option_disables_prefix(make_config, run_build) -> None:
    config = make_config("file.js", output={"public_path": "/static/"})

    assert run_build(config, public_path="").manifest == {"main.js": "main.js"}


def test_base_path_prefixes_keys(make_config, run_build) -> None:
    result = run_build(make_config("file.js"), base_path="assets/")

    assert result.manifest == {"assets/main.js": "main.js"}


def test_entry_keys_drop_extension_except_source_maps(make_config, run_build) -> None:
    result = run_build(make_config({"one": "file.js"}, devtool="source-map"), use_entry_keys=True)

    assert result.manifest == {"one": "one.js", "one.js.map": "one.js.map"}


def test_key_hash_is_removed_from_names(make_config, run_build) -> None:
    config = make_config({"app.0123456789abcdef": "file.js"})

    assert run_build(config).manifest == {"app.js": "app.0123456789abcdef.js"}


def test_key_hash_removal_can_be_disabled(make_config, run_build) -> None:
    config = make_config({"app.0123456789abcdef": "file.js"})

    assert run_build(config, remove_key_hash=None).manifest == {
        "app.0123456789abcdef.js": "app.0123456789abcdef.js"
    }


def test_query_is_stripped_unless_preserved(make_config, run_build, output_dir: Path) -> None:
    config = make_config({"one": "file.js"}, output={"filename": "[name].js?[contenthash]"})

    plain = run_build(config)
    chunk_hash = plain.stats.compilation.chunks[0].content_hash
    assert plain.manifest == {"one.js": "one.js"}
    assert (output_dir / "one.js").exists()

    preserved = run_build(config, preserve_query=True)
    assert preserved.manifest == {"one.js": f"one.js?{chunk_hash}"}


def test_filter_map_and_sort(make_config, run_build) -> None:
    rules = [{"test": r"\.txt$"}]
    config = make_config({"b": "file-two.js", "a": ["file.js", "file.txt"]}, rules=rules)

    result = run_build(
        config,
        filter=lambda file: file.is_chunk,
        map=lambda file: file.replace(name=f"js/{file.name}"),
        sort=lambda file: file.name,
    )

    assert list(result.manifest) == ["js/a.js", "js/b.js"]
    assert result.manifest["js/a.js"] == "a.js"


def test_filter_receives_descriptors(make_config, run_build) -> None:
    seen = []

    def _record(file: FileDescriptor) -> bool:
        seen.append(file)
        return True

    run_build(make_config({"one": "file.js"}, devtool="source-map"), filter=_record)

    by_path = {file.path: file for file in seen}
    assert by_path["one.js"].is_chunk
    assert by_path["one.js"].is_initial
    assert by_path["one.js"].chunk_name == "one"
    assert by_path["one.js.map"].is_auxiliary_of == "one.js"
    assert not by_path["one.js.map"].is_chunk


def test_generate_builds_custom_structure(make_config, run_build) -> None:
    def _generate(seed, files, entrypoints):
        return {**seed, "files": {file.name: file.path for file in files}, "entrypoints": entrypoints}

    result = run_build(make_config({"one": "file.js"}), seed={"version": "1"}, generate=_generate)

    assert result.manifest == {
        "version": "1",
        "files": {"one.js": "one.js"},
        "entrypoints": {"one": ["one.js"]},
    }


def test_custom_serializer(make_config, run_build) -> None:
    result = run_build(
        make_config("file.js"),
        file_name="manifest.yaml",
        serialize=lambda manifest: yaml.safe_dump(dict(manifest), sort_keys=False),
    )

    assert yaml.safe_load(result.manifest_path.read_text(encoding="utf-8")) == {"main.js": "main.js"}


def test_before_emit_can_edit_and_after_emit_observes(make_config, output_dir: Path) -> None:
    compiler = Compiler(make_config("file.js"))
    hooks = get_compiler_hooks(compiler)
    compiler.apply(ManifestPlugin())

    captured = {}
    emitted = []

    def _stamp(manifest) -> None:
        manifest["built"] = "yes"
        captured["manifest"] = manifest

    hooks.before_emit.tap("stamp", _stamp)
    hooks.after_emit.tap("record", emitted.append)
    compiler.run()

    assert json.loads((output_dir / "manifest.json").read_text(encoding="utf-8")) == {
        "main.js": "main.js",
        "built": "yes",
    }
    assert len(emitted) == 1
    assert dict(emitted[0].entries) == {"main.js": "main.js", "built": "yes"}
    with pytest.raises(TypeError):
        emitted[0].entries["main.js"] = "other.js"  # type: ignore[index]
    with pytest.raises(ManifestFrozenError):
        captured["manifest"]["late"] = "value"


def test_before_emit_can_replace_manifest(make_config, output_dir: Path) -> None:
    compiler = Compiler(make_config("file.js"))
    compiler.apply(ManifestPlugin())
    get_compiler_hooks(compiler).before_emit.tap("replace", lambda manifest: {"only": "this"})

    compiler.run()

    assert json.loads((output_dir / "manifest.json").read_text(encoding="utf-8")) == {"only": "this"}


def test_default_stage_sees_assets_added_late(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    plugin = ManifestPlugin()
    compiler.apply(plugin, _LateAssetPlugin(STAGE_REPORT))
    compiler.run()

    assert dict(plugin.last_manifest.entries) == {"main.js": "main.js", "late.txt": "late.txt"}


def test_early_stage_misses_assets_added_later(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    plugin = ManifestPlugin(asset_hook_stage=STAGE_ADDITIONAL)
    compiler.apply(plugin, _LateAssetPlugin(STAGE_REPORT))
    compiler.run()

    assert dict(plugin.last_manifest.entries) == {"main.js": "main.js"}


def test_legacy_emit_runs_after_asset_processing(make_config, output_dir: Path) -> None:
    compiler = Compiler(make_config("file.js"))
    plugin = ManifestPlugin(use_legacy_emit=True)
    compiler.apply(plugin, _LateAssetPlugin(STAGE_REPORT))
    stats = compiler.run()

    assert dict(plugin.last_manifest.entries) == {"main.js": "main.js", "late.txt": "late.txt"}
    assert "manifest.json" in stats.compilation.assets
    assert (output_dir / "manifest.json").exists()


def test_write_to_file_emit(make_config, run_build) -> None:
    assert run_build(make_config("file.js")).plugin.last_manifest.written is False

    result = run_build(make_config("file.js"), write_to_file_emit=True)

    assert result.plugin.last_manifest.written is True
    assert result.manifest == {"main.js": "main.js"}


def test_other_manifests_are_not_listed(make_config, output_dir: Path) -> None:
    compiler = Compiler(make_config("file.js"))
    first = ManifestPlugin(file_name="first.json")
    second = ManifestPlugin(file_name="second.json")
    compiler.apply(first, second)
    compiler.run()

    assert dict(first.last_manifest.entries) == {"main.js": "main.js"}
    assert dict(second.last_manifest.entries) == {"main.js": "main.js"}
    assert (output_dir / "first.json").exists()
    assert (output_dir / "second.json").exists()


def test_rebuild_emits_identical_manifest(make_config, output_dir: Path) -> None:
    compiler = Compiler(make_config({"one": "file.js"}, output={"filename": "[name].[contenthash].js"}))
    plugin = ManifestPlugin()
    emitted = []
    compiler.apply(plugin)
    get_compiler_hooks(compiler).after_emit.tap("record", emitted.append)

    compiler.run()
    first = (output_dir / "manifest.json").read_bytes()
    compiler.rebuild()
    second = (output_dir / "manifest.json").read_bytes()

    assert first == second
    assert [manifest.pass_id for manifest in emitted] == [1, 2]
    assert emitted[0].text == emitted[1].text


def test_applying_twice_emits_once(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    plugin = ManifestPlugin()
    emitted = []
    compiler.apply(plugin, plugin)
    get_compiler_hooks(compiler).after_emit.tap("record", emitted.append)

    compiler.run()

    assert len(emitted) == 1


def test_throwing_callback_fails_the_build(make_config, output_dir: Path) -> None:
    def _boom(file: FileDescriptor) -> bool:
        raise RuntimeError("boom")

    compiler = Compiler(make_config("file.js"))
    plugin = ManifestPlugin(filter=_boom)
    failures = []
    compiler.hooks.failed.tap("record", failures.append)
    compiler.apply(plugin)

    with pytest.raises(ManifestCallbackError) as excinfo:
        compiler.run()

    assert excinfo.value.callback == "filter"
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert failures == [excinfo.value]
    assert plugin.last_manifest is None
    assert not (output_dir / "manifest.json").exists()


def test_map_must_return_descriptor(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    compiler.apply(ManifestPlugin(map=lambda file: file.name))

    with pytest.raises(ManifestConfigError):
        compiler.run()


def test_seed_values_must_be_serializable(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    compiler.apply(ManifestPlugin(seed={"bad": object()}))

    with pytest.raises(ManifestConfigError):
        compiler.run()


def test_serializer_must_return_text(make_config) -> None:
    compiler = Compiler(make_config("file.js"))
    compiler.apply(ManifestPlugin(serialize=lambda manifest: b"{}"))

    with pytest.raises(ManifestConfigError):
        compiler.run()


def test_build_errors_suppress_manifest(make_config, run_build) -> None:
    result = run_build(make_config({"one": "missing.js"}))

    assert result.stats.has_errors()
    assert result.manifest is None
    assert result.plugin.last_manifest is None


def test_plugin_rejects_unknown_hosts() -> None:
    with pytest.raises(TypeError):
        ManifestPlugin().apply(object())
