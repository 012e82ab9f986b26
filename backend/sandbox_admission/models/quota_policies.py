"""Per-user quota policy rows, created lazily on first access."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from sandbox_admission.core.time import utcnow
from sandbox_admission.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)


class QuotaPolicy(QueryModel, table=True):
    """Ceilings on sandbox count, concurrency, eligibility, and aggregate usage."""

    __tablename__ = "quota_policies"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("user_id", name="uq_quota_policies_user_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True, max_length=255)
    max_sandboxes: int = Field(default=3, ge=0)
    max_concurrent_running: int = Field(default=1, ge=0)
    allowed_tier_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # Informational ceiling; admission checks list membership only.
    max_tier_id: str = Field(default="starter")
    max_total_storage_gb: int = Field(default=10, ge=0)
    max_total_cpu_cores: int = Field(default=2, ge=0)
    max_total_memory_gb: int = Field(default=4, ge=0)
    # None means every addon is allowed.
    allowed_addon_ids: list[str] | None = Field(
        default=None,
        sa_column=Column(JSON(none_as_null=True), nullable=True),
    )
    notes: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
