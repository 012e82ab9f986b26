"""Resource tier reference data (cpu, memory, storage bundles)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlmodel import Field

from sandbox_admission.core.time import utcnow
from sandbox_admission.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime, Decimal)


class ResourceTier(QueryModel, table=True):
    """Named bundle of compute limits assignable to a sandbox."""

    __tablename__ = "resource_tiers"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, max_length=64)
    name: str
    description: str | None = Field(default=None)
    cpu_cores: int = Field(ge=0)
    memory_gb: int = Field(ge=0)
    storage_gb: int = Field(ge=0)
    price_monthly: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    is_default: bool = Field(default=False, index=True)
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
