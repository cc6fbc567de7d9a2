"""Barrier that merges the manifests of builds started together."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set, Tuple

from .errors import ManifestError
from .naming import FileDescriptor

if TYPE_CHECKING:  # pragma: no cover
    from .plugin import ManifestPlugin

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MemberContribution:
    name: str
    files: List[FileDescriptor] = field(default_factory=list)
    entrypoints: Dict[str, List[str]] = field(default_factory=dict)


@dataclass(frozen=True)
class Settlement:
    """Outcome of a pass once every started member reported back."""

    pass_id: int
    contributions: Tuple[MemberContribution, ...]
    failures: Tuple[Tuple[str, BaseException], ...]

    @property
    def complete(self) -> bool:
        return not self.failures

    @property
    def failed_members(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.failures)

    def files(self) -> List[FileDescriptor]:
        return [file for contribution in self.contributions for file in contribution.files]

    def entrypoints(self) -> Dict[str, List[str]]:
        merged: Dict[str, List[str]] = {}
        for contribution in self.contributions:
            merged.update(contribution.entrypoints)
        return merged


@dataclass(slots=True)
class _Member:
    compiler: Any
    plugin: "ManifestPlugin"
    name: str


class ManifestCoordinator:
    """Tracks which members of one manifest are still building in the current pass.

    Members join once, when the plugin is applied; join order fixes the key
    order of the merged manifest. A pass opens with the first ``begin`` after
    the previous pass settled, and settles when every member that began it has
    completed or failed. Only the call that settles the pass receives the
    :class:`Settlement`.

    A failure sticks to its member until that member completes again; members
    that have never completed count as failed.
    """

    def __init__(self, manifest_path: Path) -> None:
        self.manifest_path = manifest_path
        self.pass_id = 0
        self._lock = threading.Lock()
        self._members: Dict[int, _Member] = {}
        self._open: Set[int] = set()
        self._failures: Dict[int, BaseException] = {}
        self._contributions: Dict[int, MemberContribution] = {}

    @property
    def members(self) -> List[Any]:
        return [member.compiler for member in self._members.values()]

    @property
    def plugins(self) -> List["ManifestPlugin"]:
        unique: List["ManifestPlugin"] = []
        for member in self._members.values():
            if not any(plugin is member.plugin for plugin in unique):
                unique.append(member.plugin)
        return unique

    @property
    def primary(self) -> "ManifestPlugin":
        if not self._members:
            raise LookupError(f"No build joined the manifest at {self.manifest_path}.")
        return next(iter(self._members.values())).plugin

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._open)

    def join(self, compiler: Any, plugin: "ManifestPlugin") -> bool:
        with self._lock:
            key = id(compiler)
            if key in self._members:
                return False
            name = compiler.name or f"build-{len(self._members)}"
            self._members[key] = _Member(compiler=compiler, plugin=plugin, name=name)
            logger.debug("Build %s joined manifest %s", name, self.manifest_path)
            return True

    def begin(self, compiler: Any) -> None:
        with self._lock:
            key = self._key(compiler)
            if key in self._open:
                logger.debug("Ignoring repeated start signal from %s", self._members[key].name)
                return
            if not self._open:
                self.pass_id += 1
            self._open.add(key)

    def complete(self, compiler: Any, contribution: MemberContribution) -> Optional[Settlement]:
        with self._lock:
            key = self._key(compiler)
            if key not in self._open:
                logger.debug("Ignoring completion from %s outside an open pass", self._members[key].name)
                return None
            self._open.discard(key)
            self._contributions[key] = contribution
            self._failures.pop(key, None)
            return self._settle()

    def fail(self, compiler: Any, error: BaseException) -> Optional[Settlement]:
        with self._lock:
            key = self._key(compiler)
            if key not in self._open:
                logger.debug("Ignoring failure from %s outside an open pass", self._members[key].name)
                return None
            self._open.discard(key)
            self._contributions.pop(key, None)
            self._failures[key] = error
            return self._settle()

    def _key(self, compiler: Any) -> int:
        key = id(compiler)
        if key not in self._members:
            raise LookupError(f"{compiler!r} has not joined the manifest at {self.manifest_path}.")
        return key

    def _settle(self) -> Optional[Settlement]:
        if self._open:
            return None
        contributions = tuple(
            self._contributions[key] for key in self._members if key in self._contributions
        )
        failures: List[Tuple[str, BaseException]] = []
        for key, member in self._members.items():
            if key in self._failures:
                failures.append((member.name, self._failures[key]))
            elif key not in self._contributions:
                failures.append((member.name, ManifestError(f"Build {member.name} has not completed a pass yet.")))
        return Settlement(pass_id=self.pass_id, contributions=contributions, failures=tuple(failures))
