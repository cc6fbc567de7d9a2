"""Exceptions raised while building and emitting asset manifests."""

from __future__ import annotations

from typing import Any, Callable, TypeVar

T = TypeVar("T")


class ManifestError(RuntimeError):
    """Base class for manifest generation failures."""


class ManifestConfigError(ManifestError, ValueError):
    """Raised when options, seed data or callback output are malformed."""


class ManifestCallbackError(ManifestError):
    """Raised when a user supplied filter/map/sort/generate/serialize callback throws."""

    def __init__(self, callback: str, exc: BaseException) -> None:
        super().__init__(f"Manifest '{callback}' callback failed: {exc}")
        self.callback = callback


class ManifestFrozenError(ManifestError):
    """Raised when a manifest is written to after it was serialized."""


class ManifestEmitError(ManifestError):
    """Raised when a composite build refuses to emit a manifest."""


class ManifestHooksUnavailable(TypeError):
    """Raised when manifest hooks are requested for an object that cannot own them."""


def invoke_callback(label: str, fn: Callable[..., T], *args: Any) -> T:
    """Call a user supplied callback, surfacing failures as build errors."""

    try:
        return fn(*args)
    except ManifestError:
        raise
    except Exception as exc:
        raise ManifestCallbackError(label, exc) from exc
