"""Error types raised for caller misuse of the admission services."""

from __future__ import annotations

from collections.abc import Iterable


class SandboxAdmissionError(Exception):
    """Base class for request-level errors raised by this package."""


class NotFoundError(SandboxAdmissionError, LookupError):
    """An id did not resolve to a tier, addon, sandbox, or policy."""

    def __init__(self, entity: str, keys: str | Iterable[str]) -> None:
        self.entity = entity
        self.keys: tuple[str, ...] = (keys,) if isinstance(keys, str) else tuple(keys)
        joined = ", ".join(self.keys)
        super().__init__(f"Unknown {entity}: {joined}")


class InvalidTransitionError(SandboxAdmissionError, ValueError):
    """A sandbox status change is not permitted by the lifecycle policy."""

    def __init__(self, *, current: str, target: str, reason: str) -> None:
        self.current = current
        self.target = target
        self.reason = reason
        super().__init__(reason)


class SlugExhaustedError(SandboxAdmissionError):
    """No free slug was found within the configured number of probes."""

    def __init__(self, *, base_slug: str, attempts: int) -> None:
        self.base_slug = base_slug
        self.attempts = attempts
        super().__init__(f"No available slug for '{base_slug}' after {attempts} attempts.")


class SlugConflictError(SandboxAdmissionError):
    """A sandbox insert collided with an existing slug for the same user."""

    def __init__(self, *, user_id: str, slug: str) -> None:
        self.user_id = user_id
        self.slug = slug
        super().__init__(f"Slug '{slug}' is already used by another sandbox of this user.")
