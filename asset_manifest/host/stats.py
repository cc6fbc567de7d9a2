"""Build results returned by compilers."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

if TYPE_CHECKING:  # pragma: no cover
    from .compilation import Compilation


class Stats:
    def __init__(self, compilation: "Compilation", *, started_at: float = 0.0, finished_at: float = 0.0) -> None:
        self.compilation = compilation
        self.started_at = started_at
        self.finished_at = finished_at

    @property
    def hash(self) -> Optional[str]:
        return self.compilation.hash

    @property
    def errors(self) -> List[Exception]:
        return list(self.compilation.errors)

    @property
    def warnings(self) -> List[Exception]:
        return list(self.compilation.warnings)

    def has_errors(self) -> bool:
        return bool(self.compilation.errors)

    def has_warnings(self) -> bool:
        return bool(self.compilation.warnings)

    def to_dict(self) -> Dict[str, object]:
        compilation = self.compilation
        return {
            "name": compilation.compiler.name,
            "hash": self.hash,
            "public_path": compilation.public_path,
            "output_path": str(compilation.compiler.output_path),
            "assets": [
                {
                    "name": asset.name,
                    "size": asset.size(),
                    "chunks": list(asset.chunks),
                    "auxiliary_chunks": list(asset.auxiliary_chunks),
                    "info": dict(asset.info),
                }
                for asset in compilation.assets.values()
            ],
            "assets_by_chunk_name": {
                chunk.name: list(chunk.files) for chunk in compilation.chunks if chunk.name is not None
            },
            "entrypoints": compilation.entrypoint_files(),
            "errors": [str(error) for error in compilation.errors],
            "warnings": [str(warning) for warning in compilation.warnings],
            "time_ms": round((self.finished_at - self.started_at) * 1000, 3),
        }


class MultiStats:
    def __init__(self, children: Sequence[Stats]) -> None:
        self.children = list(children)

    @property
    def hash(self) -> str:
        digest = hashlib.sha256("".join(child.hash or "" for child in self.children).encode("utf-8"))
        return digest.hexdigest()[:20]

    @property
    def errors(self) -> List[Exception]:
        return [error for child in self.children for error in child.errors]

    @property
    def warnings(self) -> List[Exception]:
        return [warning for child in self.children for warning in child.warnings]

    def has_errors(self) -> bool:
        return any(child.has_errors() for child in self.children)

    def has_warnings(self) -> bool:
        return any(child.has_warnings() for child in self.children)

    def to_dict(self) -> Dict[str, object]:
        return {
            "hash": self.hash,
            "children": [child.to_dict() for child in self.children],
        }
