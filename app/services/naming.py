"""Output filename helpers."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import Optional

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def stem_of(filename: str) -> str:
    """Filesystem-safe stem of a client-supplied filename."""
    stem = PurePath(filename.replace("\\", "/")).stem
    stem = _UNSAFE.sub("_", stem).strip("._")
    return stem[:80] or "document"


def output_name(requested: Optional[str], *, default: str, extension: str) -> str:
    base = stem_of(requested) if requested else default
    return f"{base}.{extension}"
