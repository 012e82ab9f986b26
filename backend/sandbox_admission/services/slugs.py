"""Per-user unique slug generation for sandbox names."""

from __future__ import annotations

import re
from typing import Protocol

from sandbox_admission.core.config import settings
from sandbox_admission.core.errors import SlugExhaustedError
from sandbox_admission.core.logging import get_logger

logger = get_logger(__name__)

FALLBACK_SLUG = "sandbox"
_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class SlugLookup(Protocol):
    async def is_slug_available(self, user_id: str, slug: str) -> bool: ...


def slugify(base_name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to `-`, and trim hyphens."""
    slug = _NON_ALNUM.sub("-", (base_name or "").lower()).strip("-")
    return slug or FALLBACK_SLUG


class SlugAllocator:
    """Probe `slug`, `slug-1`, `slug-2`, ... until a free one is found."""

    def __init__(self, registry: SlugLookup, *, max_attempts: int | None = None) -> None:
        self.registry = registry
        self.max_attempts = max_attempts if max_attempts is not None else settings.slug_max_attempts

    async def generate(self, user_id: str, base_name: str) -> str:
        base_slug = slugify(base_name)
        for attempt in range(self.max_attempts):
            candidate = base_slug if attempt == 0 else f"{base_slug}-{attempt}"
            if await self.registry.is_slug_available(user_id, candidate):
                return candidate
        logger.warning(
            "sandbox.slug.exhausted",
            extra={"user_id": user_id, "base_slug": base_slug, "attempts": self.max_attempts},
        )
        raise SlugExhaustedError(base_slug=base_slug, attempts=self.max_attempts)
