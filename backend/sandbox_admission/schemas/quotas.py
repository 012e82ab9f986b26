"""Schemas for quota policy reads, partial updates, and usage summaries."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from sandbox_admission.schemas.common import NonEmptyStr, normalize_ids

_RUNTIME_TYPE_REFERENCES = (datetime, UUID, NonEmptyStr)


class QuotaPolicyDefaults(SQLModel):
    """Values written into a freshly bootstrapped quota policy."""

    max_sandboxes: int = Field(ge=0)
    max_concurrent_running: int = Field(ge=0)
    allowed_tier_ids: list[str]
    max_tier_id: str
    max_total_storage_gb: int = Field(ge=0)
    max_total_cpu_cores: int = Field(ge=0)
    max_total_memory_gb: int = Field(ge=0)
    allowed_addon_ids: list[str] | None = None


class QuotaPolicyUpdate(SQLModel):
    """Partial administrative update; only explicitly set fields are applied."""

    max_sandboxes: int | None = Field(default=None, ge=0)
    max_concurrent_running: int | None = Field(default=None, ge=0)
    allowed_tier_ids: list[str] | None = None
    max_tier_id: NonEmptyStr | None = None
    max_total_storage_gb: int | None = Field(default=None, ge=0)
    max_total_cpu_cores: int | None = Field(default=None, ge=0)
    max_total_memory_gb: int | None = Field(default=None, ge=0)
    allowed_addon_ids: list[str] | None = None
    notes: str | None = None

    @field_validator("allowed_tier_ids", mode="before")
    @classmethod
    def normalize_tier_ids(cls, value: object) -> list[str]:
        if value is None:
            raise ValueError("allowed_tier_ids cannot be null")
        if isinstance(value, str):
            value = value.split(",")
        return normalize_ids(value)  # type: ignore[arg-type]

    @field_validator("allowed_addon_ids", mode="before")
    @classmethod
    def normalize_addon_ids(cls, value: object) -> list[str] | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.split(",")
        return normalize_ids(value)  # type: ignore[arg-type]

    @field_validator("max_tier_id", mode="after")
    @classmethod
    def normalize_max_tier(cls, value: str | None) -> str | None:
        return value.lower() if value is not None else None


class QuotaPolicyRead(SQLModel):
    """Read model for a user's quota policy."""

    id: UUID
    user_id: str
    max_sandboxes: int
    max_concurrent_running: int
    allowed_tier_ids: list[str]
    max_tier_id: str
    max_total_storage_gb: int
    max_total_cpu_cores: int
    max_total_memory_gb: int
    allowed_addon_ids: list[str] | None
    notes: str | None
    created_at: datetime
    updated_at: datetime


class ResourceUsage(SQLModel):
    """Current footprint of a user's sandboxes."""

    sandbox_count: int = 0
    running_count: int = 0
    total_cpu_cores: int = 0
    total_memory_gb: int = 0
    total_storage_gb: int = 0


class QuotaSummary(SQLModel):
    """Policy limits side by side with current usage."""

    policy: QuotaPolicyRead
    usage: ResourceUsage
