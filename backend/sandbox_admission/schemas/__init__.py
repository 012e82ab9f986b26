"""Public schema exports shared across service modules."""

from sandbox_admission.schemas.quotas import (
    QuotaPolicyDefaults,
    QuotaPolicyRead,
    QuotaPolicyUpdate,
    QuotaSummary,
    ResourceUsage,
)
from sandbox_admission.schemas.sandboxes import SandboxCreate, SandboxFilter

__all__ = [
    "QuotaPolicyDefaults",
    "QuotaPolicyRead",
    "QuotaPolicyUpdate",
    "QuotaSummary",
    "ResourceUsage",
    "SandboxCreate",
    "SandboxFilter",
]
