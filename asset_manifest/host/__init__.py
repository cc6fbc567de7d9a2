"""In-process build host the manifest plugin attaches to."""

from .compilation import (
    STAGE_ADDITIONAL,
    STAGE_ANALYSE,
    STAGE_OPTIMIZE,
    STAGE_OPTIMIZE_HASH,
    STAGE_REPORT,
    Asset,
    BuildError,
    Chunk,
    Compilation,
    HostError,
    LoaderContext,
    Module,
)
from .compiler import Compiler, ExtensionOwner, MultiCompiler
from .config import BuildConfig, LoaderRule, OutputOptions
from .stats import MultiStats, Stats
from .templates import content_hash, render_template, strip_query

__all__ = [
    "STAGE_ADDITIONAL",
    "STAGE_ANALYSE",
    "STAGE_OPTIMIZE",
    "STAGE_OPTIMIZE_HASH",
    "STAGE_REPORT",
    "Asset",
    "BuildConfig",
    "BuildError",
    "Chunk",
    "Compilation",
    "Compiler",
    "ExtensionOwner",
    "HostError",
    "LoaderContext",
    "LoaderRule",
    "Module",
    "MultiCompiler",
    "MultiStats",
    "OutputOptions",
    "Stats",
    "content_hash",
    "render_template",
    "strip_query",
]
