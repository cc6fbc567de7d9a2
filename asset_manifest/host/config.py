"""Pydantic models describing one build configuration."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ENTRY_NAME = "main"


class OutputOptions(BaseModel):
    path: Path
    filename: str = Field(default="[name].js", description="Template for entry chunk files.")
    public_path: str = Field(default="", description="Prefix consumers use to address emitted files.")
    hash_length: int = Field(default=20, ge=4, le=64)

    model_config = ConfigDict(extra="forbid")

    @field_validator("filename")
    @classmethod
    def _filename_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("output.filename must not be empty.")
        return value


class LoaderRule(BaseModel):
    test: str = Field(..., description="Regular expression matched against the module's resolved path.")
    loader: Literal["file"] = "file"
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    @field_validator("test")
    @classmethod
    def _test_compiles(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"Invalid rule pattern '{value}': {exc}") from exc
        return value

    def matches(self, resource: Path) -> bool:
        return re.search(self.test, resource.as_posix()) is not None


class BuildConfig(BaseModel):
    """Configuration describing one build."""

    name: Optional[str] = None
    context: Path = Field(default_factory=Path.cwd)
    entry: Union[str, List[str], Dict[str, Union[str, List[str]]]]
    output: OutputOptions
    devtool: Optional[Literal["source-map"]] = None
    rules: List[LoaderRule] = Field(default_factory=list)
    emit_on_errors: bool = False

    model_config = ConfigDict(extra="forbid")

    @field_validator("entry")
    @classmethod
    def _entry_not_empty(cls, value: Union[str, List[str], Dict[str, Union[str, List[str]]]]):
        if not value:
            raise ValueError("entry must name at least one module.")
        return value

    def entries(self) -> Dict[str, List[str]]:
        """Return entry requests keyed by entry name, in declaration order."""

        if isinstance(self.entry, str):
            return {DEFAULT_ENTRY_NAME: [self.entry]}
        if isinstance(self.entry, list):
            return {DEFAULT_ENTRY_NAME: list(self.entry)}
        return {
            name: [requests] if isinstance(requests, str) else list(requests)
            for name, requests in self.entry.items()
        }

    def resolve_output_path(self) -> Path:
        path = self.output.path
        if not path.is_absolute():
            path = self.context / path
        return path.resolve()
