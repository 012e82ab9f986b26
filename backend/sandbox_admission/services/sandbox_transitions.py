"""Sandbox lifecycle transition policy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from sandbox_admission.models.sandboxes import SANDBOX_STATUSES


@dataclass(frozen=True)
class SandboxTransitionResult:
    ok: bool
    reason: str | None = None
    noop: bool = False


_ALLOWED_TARGETS: Final[dict[str, frozenset[str]]] = {
    "created": frozenset({"starting"}),
    "starting": frozenset({"running"}),
    "running": frozenset({"stopping"}),
    "stopping": frozenset({"stopped"}),
    # A stopped sandbox is restarted through `starting`, never directly.
    "stopped": frozenset({"starting"}),
    "error": frozenset({"starting"}),
}


def allowed_targets(current_status: str) -> frozenset[str]:
    """Return every status reachable from `current_status` in one step."""
    source = (current_status or "").strip().lower()
    if source not in _ALLOWED_TARGETS:
        return frozenset()
    return _ALLOWED_TARGETS[source] | {"error"}


def validate_transition(*, current_status: str, target_status: str) -> SandboxTransitionResult:
    """Validate a status change reported by the container orchestrator."""
    source = (current_status or "").strip().lower()
    target = (target_status or "").strip().lower()

    if source not in SANDBOX_STATUSES or target not in SANDBOX_STATUSES:
        return SandboxTransitionResult(
            ok=False,
            reason=f"Unknown sandbox status transition: {source or '?'} -> {target or '?'}",
        )

    if source == target:
        return SandboxTransitionResult(ok=True, noop=True)

    if target in allowed_targets(source):
        return SandboxTransitionResult(ok=True)

    if source == "error":
        return SandboxTransitionResult(
            ok=False,
            reason=f"Sandbox in error state must be retried through 'starting', not '{target}'.",
        )
    return SandboxTransitionResult(
        ok=False,
        reason=f"Invalid sandbox status transition: {source} -> {target}",
    )
