"""Schemas for sandbox creation and listing filters."""

from __future__ import annotations

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from sandbox_admission.models.sandboxes import DEFAULT_FLAVOR_ID, SANDBOX_STATUSES, SandboxStatus
from sandbox_admission.schemas.common import NonEmptyStr, normalize_ids

_RUNTIME_TYPE_REFERENCES = (NonEmptyStr,)


class SandboxCreate(SQLModel):
    """Payload for inserting a sandbox that already passed admission."""

    user_id: NonEmptyStr
    name: NonEmptyStr
    slug: NonEmptyStr
    tier_id: NonEmptyStr
    description: str | None = None
    flavor_id: NonEmptyStr = DEFAULT_FLAVOR_ID
    addon_ids: list[str] = Field(default_factory=list)

    @field_validator("addon_ids", mode="before")
    @classmethod
    def normalize_addons(cls, value: object) -> list[str]:
        return normalize_ids(value)  # type: ignore[arg-type]


class SandboxFilter(SQLModel):
    """Optional narrowing for per-user sandbox listings."""

    statuses: list[SandboxStatus] | None = None
    tier_id: str | None = None

    @field_validator("statuses", mode="before")
    @classmethod
    def normalize_statuses(cls, value: object) -> list[str] | None:
        if value is None:
            return None
        if isinstance(value, str):
            value = [value]
        statuses = normalize_ids(value)  # type: ignore[arg-type]
        unknown = [status for status in statuses if status not in SANDBOX_STATUSES]
        if unknown:
            raise ValueError(f"Unknown sandbox status: {', '.join(unknown)}")
        return statuses
