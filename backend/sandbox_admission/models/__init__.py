"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from sandbox_admission.models.addons import ContainerAddon
from sandbox_admission.models.quota_policies import QuotaPolicy
from sandbox_admission.models.resource_tiers import ResourceTier
from sandbox_admission.models.sandboxes import Sandbox

__all__ = [
    "ContainerAddon",
    "QuotaPolicy",
    "ResourceTier",
    "Sandbox",
]
