from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from asset_manifest import ManifestPlugin
from asset_manifest.host import BuildConfig, Compiler, MultiCompiler


@dataclass
class BuildResult:
    compiler: Union[Compiler, MultiCompiler]
    plugin: ManifestPlugin
    stats: Any
    manifest_path: Path

    @property
    def manifest(self) -> Optional[Dict[str, Any]]:
        if not self.manifest_path.exists():
            return None
        return json.loads(self.manifest_path.read_text(encoding="utf-8"))


@pytest.fixture()
def fixtures(tmp_path: Path) -> Path:
    root = tmp_path / "fixtures"
    root.mkdir()
    (root / "file.js").write_text("console.log('one');\n", encoding="utf-8")
    (root / "file-two.js").write_text("console.log('two');\n", encoding="utf-8")
    (root / "file-three.js").write_text("console.log('three');\n", encoding="utf-8")
    (root / "file.txt").write_text("plain text\n", encoding="utf-8")
    return root


@pytest.fixture()
def output_dir(tmp_path: Path) -> Path:
    return tmp_path / "dist"


@pytest.fixture()
def make_config(fixtures: Path, output_dir: Path) -> Callable[..., BuildConfig]:
    def _make(entry: Any, *, output: Optional[Dict[str, Any]] = None, **extra: Any) -> BuildConfig:
        return BuildConfig.model_validate(
            {
                "context": fixtures,
                "entry": entry,
                "output": {"path": output_dir, **(output or {})},
                **extra,
            }
        )

    return _make


@pytest.fixture()
def run_build(output_dir: Path) -> Callable[..., BuildResult]:
    def _run(
        config: Union[BuildConfig, List[BuildConfig]],
        plugin: Optional[ManifestPlugin] = None,
        *,
        parallel: bool = False,
        **options: Any,
    ) -> BuildResult:
        plugin = plugin or ManifestPlugin(**options)
        compiler: Union[Compiler, MultiCompiler]
        if isinstance(config, list):
            compiler = MultiCompiler(config, parallel=parallel)
        else:
            compiler = Compiler(config)
        compiler.apply(plugin)
        stats = compiler.run()
        return BuildResult(
            compiler=compiler,
            plugin=plugin,
            stats=stats,
            manifest_path=output_dir / plugin.options.file_name,
        )

    return _run
