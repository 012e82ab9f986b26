"""Optional container addons (GUI, code-server, GPU, ...)."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from sqlmodel import Field

from sandbox_admission.core.time import utcnow
from sandbox_admission.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime, Decimal)

AddonCategory = Literal["interface", "compute", "storage", "devops"]
ADDON_CATEGORIES: tuple[AddonCategory, ...] = ("interface", "compute", "storage", "devops")


class ContainerAddon(QueryModel, table=True):
    """Optional capability attachable to a sandbox, with its own constraints."""

    __tablename__ = "container_addons"  # pyright: ignore[reportAssignmentType]

    id: str = Field(primary_key=True, max_length=64)
    name: str
    description: str | None = Field(default=None)
    category: str = Field(index=True)
    image_size_mb: int | None = Field(default=None)
    port: int | None = Field(default=None)
    requires_gpu: bool = Field(default=False)
    requires_flavor: str | None = Field(default=None)
    price_monthly: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
