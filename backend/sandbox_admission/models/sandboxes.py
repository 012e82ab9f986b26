"""Sandbox records owned by a single user and tracked through a lifecycle."""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field

from sandbox_admission.core.time import utcnow
from sandbox_admission.models.base import QueryModel

RUNTIME_ANNOTATION_TYPES = (datetime,)

SandboxStatus = Literal["created", "starting", "running", "stopping", "stopped", "error"]
SANDBOX_STATUSES: tuple[SandboxStatus, ...] = (
    "created",
    "starting",
    "running",
    "stopping",
    "stopped",
    "error",
)
DEFAULT_FLAVOR_ID = "fullstack"


class Sandbox(QueryModel, table=True):
    """A user's isolated development environment instance."""

    __tablename__ = "sandboxes"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_sandboxes_user_slug"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(index=True, max_length=255)
    name: str
    slug: str = Field(max_length=255)
    description: str | None = Field(default=None)
    tier_id: str = Field(foreign_key="resource_tiers.id", index=True)
    flavor_id: str = Field(default=DEFAULT_FLAVOR_ID)
    addon_ids: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    status: str = Field(default="created", index=True)
    error_message: str | None = Field(default=None)
    container_id: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed_at: datetime | None = Field(default=None)
