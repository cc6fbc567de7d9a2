"""Filename template rendering and content hashing."""

from __future__ import annotations

import hashlib
import re
from typing import Mapping, Optional

_TOKEN_PATTERN = re.compile(r"\[(?P<token>[a-z]+)(?::(?P<length>\d+))?\]")
_HASH_TOKENS = {"hash", "fullhash", "contenthash", "chunkhash"}


def content_hash(data: bytes, length: int) -> str:
    """Return a truncated hex digest of ``data``."""

    return hashlib.sha256(data).hexdigest()[:length]


def strip_query(name: str) -> str:
    return name.split("?", 1)[0]


def render_template(template: str, values: Mapping[str, Optional[str]]) -> str:
    """Substitute ``[token]`` and ``[token:N]`` placeholders.

    Unknown tokens are left untouched; a known token without a value raises
    ``ValueError`` so misconfigured templates never leak placeholders to disk.
    """

    def _replace(match: re.Match[str]) -> str:
        token = match.group("token")
        if token not in values:
            return match.group(0)
        value = values[token]
        if value is None:
            raise ValueError(f"Template token '[{token}]' is not available in '{template}'.")
        length = match.group("length")
        if length and token in _HASH_TOKENS:
            return value[: int(length)]
        return value

    return _TOKEN_PATTERN.sub(_replace, template)
