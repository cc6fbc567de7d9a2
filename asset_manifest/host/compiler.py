"""Compiler lifecycle for single and composite builds."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from ..tapable import SyncHook
from .compilation import Compilation, HostError
from .config import BuildConfig
from .stats import MultiStats, Stats
from .templates import strip_query

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExtensionOwner:
    """Owns per-instance extension state created on first request."""

    def __init__(self) -> None:
        self._extensions: Dict[object, object] = {}
        self._extension_lock = threading.RLock()

    def ensure_extension(self, key: object, factory: Callable[[], T]) -> T:
        """Return the extension stored under ``key``, creating it with ``factory`` once."""

        with self._extension_lock:
            try:
                return self._extensions[key]  # type: ignore[return-value]
            except KeyError:
                value = factory()
                self._extensions[key] = value
                return value

    def has_extension(self, key: object) -> bool:
        with self._extension_lock:
            return key in self._extensions


class CompilerHooks:
    def __init__(self) -> None:
        self.run = SyncHook(["compiler"])
        self.watch_run = SyncHook(["compiler"])
        self.this_compilation = SyncHook(["compilation"])
        self.compilation = SyncHook(["compilation"])
        self.emit = SyncHook(["compilation"])
        self.after_emit = SyncHook(["compilation"])
        self.done = SyncHook(["stats"])
        self.failed = SyncHook(["error"])


class Compiler(ExtensionOwner):
    """Runs one build configuration."""

    def __init__(self, config: BuildConfig, *, parent: Optional["MultiCompiler"] = None, name: Optional[str] = None) -> None:
        super().__init__()
        self.config = config
        self.name = name or config.name
        self.parent = parent
        self.hooks = CompilerHooks()
        self.output_path: Path = config.resolve_output_path()
        self._lock = threading.Lock()
        self.running = False

    def __repr__(self) -> str:
        return f"Compiler(name={self.name!r}, output_path={str(self.output_path)!r})"

    @property
    def root(self) -> ExtensionOwner:
        return self.parent if self.parent is not None else self

    def apply(self, *plugins: Any) -> None:
        for plugin in plugins:
            plugin.apply(self)

    def run(self) -> Stats:
        """Run a full build pass."""

        self._start(watch=False)
        return self._build()

    def rebuild(self) -> Stats:
        """Run an incremental pass, signalled through ``watch_run``."""

        self._start(watch=True)
        return self._build()

    def _start(self, *, watch: bool) -> None:
        with self._lock:
            if self.running:
                raise HostError(f"{self!r} is already running.")
            self.running = True
        try:
            (self.hooks.watch_run if watch else self.hooks.run).call(self)
        except Exception as exc:
            self._abort(exc)
            raise

    def _build(self) -> Stats:
        started = time.monotonic()
        try:
            compilation = Compilation(self)
            self.hooks.this_compilation.call(compilation)
            self.hooks.compilation.call(compilation)
            compilation.build()
            compilation.process_assets()
            self.hooks.emit.call(compilation)
            if compilation.errors and not self.config.emit_on_errors:
                logger.debug("Skipping asset output for %r: %d error(s)", self, len(compilation.errors))
            else:
                self._write_assets(compilation)
            self.hooks.after_emit.call(compilation)
        except Exception as exc:
            self._abort(exc)
            raise
        finally:
            self.running = False
        stats = Stats(compilation, started_at=started, finished_at=time.monotonic())
        self.hooks.done.call(stats)
        return stats

    def _abort(self, error: BaseException) -> None:
        self.running = False
        logger.debug("Build for %r failed: %s", self, error)
        self.hooks.failed.call(error)

    def _write_assets(self, compilation: Compilation) -> None:
        for name, asset in compilation.assets.items():
            target = self.output_path / strip_query(name)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(asset.source)
            asset.info["emitted"] = True
        logger.debug("Wrote %d asset(s) to %s", len(compilation.assets), self.output_path)


class MultiCompiler(ExtensionOwner):
    """Runs several configurations as one composite invocation."""

    def __init__(
        self,
        configs: Sequence[BuildConfig],
        *,
        parallel: bool = False,
        max_workers: Optional[int] = None,
    ) -> None:
        super().__init__()
        if not configs:
            raise HostError("MultiCompiler requires at least one build configuration.")
        self.parallel = parallel
        self.max_workers = max_workers
        self.compilers: List[Compiler] = []
        seen: set[str] = set()
        for index, config in enumerate(configs):
            name = config.name or f"build-{index}"
            if name in seen:
                raise HostError(f"Duplicate build name '{name}' in composite build.")
            seen.add(name)
            self.compilers.append(Compiler(config, parent=self, name=name))

    @property
    def root(self) -> "MultiCompiler":
        return self

    def apply(self, *plugins: Any) -> None:
        for plugin in plugins:
            plugin.apply(self)

    def get(self, name: str) -> Compiler:
        for compiler in self.compilers:
            if compiler.name == name:
                return compiler
        available = ", ".join(compiler.name or "" for compiler in self.compilers)
        raise KeyError(f"Unknown build '{name}'. Available builds: {available}.")

    def run(self) -> MultiStats:
        return self._execute(self.compilers, watch=False)

    def rebuild(self, names: Optional[Iterable[str]] = None) -> MultiStats:
        """Rebuild the named members (all when ``names`` is omitted)."""

        selected = self.compilers if names is None else [self.get(name) for name in names]
        return self._execute(selected, watch=True)

    def _execute(self, compilers: Sequence[Compiler], *, watch: bool) -> MultiStats:
        # every member signals its start before any member compiles
        started: List[Compiler] = []
        try:
            for compiler in compilers:
                compiler._start(watch=watch)
                started.append(compiler)
        except Exception as exc:
            for compiler in started:
                compiler._abort(HostError(f"Build '{compiler.name}' aborted: composite start failed with {exc}"))
            raise

        if self.parallel:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                futures = [pool.submit(compiler._build) for compiler in compilers]
                return MultiStats([future.result() for future in futures])

        results: List[Stats] = []
        for index, compiler in enumerate(compilers):
            try:
                results.append(compiler._build())
            except Exception as exc:
                for pending in compilers[index + 1 :]:
                    pending._abort(HostError(f"Build '{pending.name}' aborted: '{compiler.name}' failed with {exc}"))
                raise
        return MultiStats(results)
