"""Common reusable schema helpers."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Annotated

from pydantic import StringConstraints

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def normalize_ids(values: Iterable[object] | None) -> list[str]:
    """Lowercase, strip, and de-duplicate ids while keeping their order."""
    normalized: list[str] = []
    for raw in values or ():
        text = str(raw or "").strip().lower()
        if text and text not in normalized:
            normalized.append(text)
    return normalized
