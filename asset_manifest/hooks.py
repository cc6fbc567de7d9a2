"""Extension points other plugins use to read or rewrite the manifest."""

from __future__ import annotations

from typing import Any, Tuple

from .errors import ManifestHooksUnavailable
from .host.compiler import MultiCompiler
from .tapable import SyncHook, SyncWaterfallHook


class ManifestHooks:
    """Hook set owned by exactly one compiler.

    ``before_emit`` receives the mutable :class:`~asset_manifest.manifest.Manifest`
    before it is serialized; taps may edit it in place or return a replacement
    mapping. ``after_emit`` receives the read-only
    :class:`~asset_manifest.manifest.EmittedManifest`.
    """

    names: Tuple[str, ...] = ("before_emit", "after_emit")

    def __init__(self) -> None:
        self.before_emit = SyncWaterfallHook(["manifest"])
        self.after_emit = SyncHook(["manifest"])


def get_compiler_hooks(compiler: Any) -> ManifestHooks:
    """Return the manifest hooks of ``compiler``, creating them on first use."""

    if isinstance(compiler, MultiCompiler):
        raise ManifestHooksUnavailable(
            "Manifest hooks belong to the member builds of a MultiCompiler; use get_compiler_hooks(member) "
            "for each entry of multi_compiler.compilers."
        )
    ensure_extension = getattr(compiler, "ensure_extension", None)
    if ensure_extension is None:
        raise ManifestHooksUnavailable(
            f"{type(compiler).__name__} cannot own manifest hooks; expected a build host compiler."
        )
    return ensure_extension(ManifestHooks, ManifestHooks)
