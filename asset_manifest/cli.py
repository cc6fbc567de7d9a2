"""Command-line entry point for manifest builds."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml
from pydantic import ValidationError

from .errors import ManifestConfigError
from .host import BuildConfig, Compiler, MultiCompiler
from .options import ManifestOptions
from .plugin import ManifestPlugin


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    if args.command == "build":
        return _handle_build(args)
    if args.command == "manifest":
        if args.manifest_command == "validate":
            return _handle_manifest_validate(args)
        parser.error("manifest command requires a subcommand")

    parser.error(f"Unknown command '{args.command}'")
    return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="asset-manifest", description="Asset manifest helpers.")
    parser.add_argument("--log-level", default="warning", choices=["debug", "info", "warning", "error"])
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Run the configured builds and emit their manifest.")
    build.add_argument("--config", required=True, help="YAML file with 'builds' and 'manifest' sections.")
    build.add_argument("--seed", action="append", help="Extra seed entry key=value (repeatable).")
    build.add_argument("--parallel", action="store_true", help="Compile composite members on worker threads.")
    build.add_argument("--workspace-root")

    manifest = subparsers.add_parser("manifest", help="Manifest utilities.")
    manifest_sub = manifest.add_subparsers(dest="manifest_command", required=True)
    manifest_validate = manifest_sub.add_parser("validate", help="Validate an emitted manifest.")
    manifest_validate.add_argument("--manifest", required=True)
    manifest_validate.add_argument("--workspace-root")

    return parser


def _handle_build(args: argparse.Namespace) -> int:
    workspace = _resolve_workspace(args.workspace_root)
    config_path = _resolve_path(args.config, workspace)
    try:
        configs, options = load_build_file(config_path)
        seed_overrides = _parse_seed(args.seed)
    except (OSError, yaml.YAMLError, ValidationError, ValueError) as exc:
        _print_json(_build_payload(errors=[str(exc)]))
        return 1

    if seed_overrides:
        options = options.model_copy(update={"seed": {**(options.seed or {}), **seed_overrides}})

    plugin = ManifestPlugin(options)
    compiler: Union[Compiler, MultiCompiler]
    if len(configs) == 1:
        compiler = Compiler(configs[0])
    else:
        compiler = MultiCompiler(configs, parallel=args.parallel)
    compiler.apply(plugin)
    stats = compiler.run()

    emitted = plugin.last_manifest
    payload = _build_payload(
        manifest_path=str(emitted.path) if emitted else None,
        manifest=dict(emitted.entries) if emitted else None,
        complete=emitted.complete if emitted else False,
        hash=stats.hash,
        errors=[str(error) for error in stats.errors],
        warnings=[str(warning) for warning in stats.warnings],
    )
    _print_json(payload)
    return 1 if stats.has_errors() else 0


def _build_payload(
    *,
    manifest_path: Optional[str] = None,
    manifest: Optional[Dict[str, Any]] = None,
    complete: bool = False,
    hash: Optional[str] = None,
    errors: Optional[List[str]] = None,
    warnings: Optional[List[str]] = None,
) -> Dict[str, object]:
    return {
        "manifest_path": manifest_path,
        "manifest": manifest,
        "complete": complete,
        "hash": hash,
        "errors": errors or [],
        "warnings": warnings or [],
    }


def _handle_manifest_validate(args: argparse.Namespace) -> int:
    workspace = _resolve_workspace(args.workspace_root)
    manifest_path = _resolve_path(args.manifest, workspace)

    errors: List[str] = []
    entries: Optional[Dict[str, Any]] = None
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        errors.append(str(exc))
    else:
        if isinstance(data, dict):
            entries = data
            for key, value in data.items():
                if not isinstance(value, str):
                    errors.append(f"Value for '{key}' must be a string (got {type(value).__name__}).")
        else:
            errors.append(f"Manifest must be a JSON object (got {type(data).__name__}).")

    payload = {
        "manifest_path": str(manifest_path),
        "valid": not errors,
        "errors": errors,
        "entries": len(entries) if entries is not None else 0,
    }
    _print_json(payload)
    return 0 if not errors else 1


def load_build_file(path: Path) -> Tuple[List[BuildConfig], ManifestOptions]:
    """Read build configurations and manifest options from a YAML file."""

    payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(payload, Mapping):
        raise ManifestConfigError(f"Build file {path} must contain a mapping.")

    raw_builds = payload.get("builds")
    if isinstance(raw_builds, Mapping):
        raw_builds = [raw_builds]
    if not isinstance(raw_builds, list) or not raw_builds:
        raise ManifestConfigError(f"Build file {path} must define at least one entry under 'builds'.")

    configs: List[BuildConfig] = []
    for raw in raw_builds:
        if not isinstance(raw, Mapping):
            raise ManifestConfigError(f"Each build in {path} must be a mapping.")
        data = dict(raw)
        context = Path(data.get("context") or ".")
        if not context.is_absolute():
            context = path.parent / context
        data["context"] = context.resolve()
        configs.append(BuildConfig.model_validate(data))

    return configs, ManifestOptions.from_mapping(payload.get("manifest"))


def _resolve_workspace(value: Optional[str]) -> Path:
    return Path(value).resolve() if value else Path.cwd()


def _resolve_path(value: str, workspace: Path) -> Path:
    path = Path(value)
    if not path.is_absolute():
        path = workspace / path
    return path.resolve()


def _parse_seed(values: Optional[Sequence[str]]) -> Dict[str, str]:
    seed: Dict[str, str] = {}
    for entry in values or []:
        if "=" not in entry:
            raise ValueError(f"Seed entry must be key=value (got '{entry}')")
        key, raw_value = entry.split("=", 1)
        seed[key.strip()] = raw_value.strip()
    return seed


def _print_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, default=str))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
