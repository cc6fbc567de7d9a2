"""Asset manifest generation for build pipelines."""

__version__ = "0.1.0"
from .coordinator import ManifestCoordinator, Settlement
from .errors import (
    ManifestCallbackError,
    ManifestConfigError,
    ManifestEmitError,
    ManifestError,
    ManifestFrozenError,
    ManifestHooksUnavailable,
)
from .hooks import ManifestHooks, get_compiler_hooks
from .manifest import EmittedManifest, Manifest, generate_manifest, serialize_manifest
from .naming import FileDescriptor, get_file_type
from .options import ManifestOptions
from .plugin import ManifestPlugin

__all__ = [
    "__version__",
    "EmittedManifest",
    "FileDescriptor",
    "Manifest",
    "ManifestCallbackError",
    "ManifestConfigError",
    "ManifestCoordinator",
    "ManifestEmitError",
    "ManifestError",
    "ManifestFrozenError",
    "ManifestHooks",
    "ManifestHooksUnavailable",
    "ManifestOptions",
    "ManifestPlugin",
    "Settlement",
    "generate_manifest",
    "get_compiler_hooks",
    "get_file_type",
    "serialize_manifest",
]
