"""Sandbox records, per-user usage queries, and lifecycle transitions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import col, select

from sandbox_admission.core.errors import InvalidTransitionError, NotFoundError, SlugConflictError
from sandbox_admission.core.logging import get_logger
from sandbox_admission.core.time import utcnow
from sandbox_admission.models.resource_tiers import ResourceTier
from sandbox_admission.models.sandboxes import SANDBOX_STATUSES, Sandbox
from sandbox_admission.services.db_service import DBService
from sandbox_admission.services.sandbox_transitions import validate_transition

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sandbox_admission.schemas.sandboxes import SandboxCreate, SandboxFilter

logger = get_logger(__name__)

# Statuses that hold, or are about to hold, a share of the running budget.
IN_FLIGHT_STATUSES = ("starting", "running")


@dataclass(frozen=True, slots=True)
class ResourceTotals:
    cpu_cores: int = 0
    memory_gb: int = 0


class SandboxRegistry(DBService):
    """Source of truth for a user's sandboxes and their current usage."""

    async def create(self, payload: SandboxCreate) -> Sandbox:
        """Insert a sandbox in `created` status."""
        now = utcnow()
        sandbox = Sandbox(
            user_id=payload.user_id,
            name=payload.name,
            slug=payload.slug,
            description=payload.description,
            tier_id=payload.tier_id,
            flavor_id=payload.flavor_id,
            addon_ids=list(payload.addon_ids),
            status="created",
            created_at=now,
            updated_at=now,
        )
        try:
            await self.add_commit_refresh(sandbox)
        except IntegrityError as exc:
            await self.session.rollback()
            if await self.get_by_slug(payload.user_id, payload.slug) is not None:
                raise SlugConflictError(user_id=payload.user_id, slug=payload.slug) from exc
            raise
        logger.info(
            "sandbox.created",
            extra={
                "sandbox_id": str(sandbox.id),
                "user_id": sandbox.user_id,
                "slug": sandbox.slug,
                "tier_id": sandbox.tier_id,
            },
        )
        return sandbox

    async def get(self, sandbox_id: UUID) -> Sandbox:
        """Load the sandbox as currently stored, refreshing any cached instance."""
        sandbox = await Sandbox.objects.by_id(sandbox_id).populate_existing().first(self.session)
        if sandbox is None:
            raise NotFoundError("sandbox", str(sandbox_id))
        return sandbox

    async def get_by_slug(self, user_id: str, slug: str) -> Sandbox | None:
        return await Sandbox.objects.filter_by(user_id=user_id, slug=slug).first(self.session)

    async def list_by_user(
        self,
        user_id: str,
        filters: SandboxFilter | None = None,
    ) -> list[Sandbox]:
        """List a user's sandboxes, newest first."""
        query = Sandbox.objects.filter_by(user_id=user_id)
        if filters is not None:
            if filters.statuses:
                query = query.filter(col(Sandbox.status).in_(filters.statuses))
            if filters.tier_id:
                query = query.filter_by(tier_id=filters.tier_id)
        return await query.order_by(col(Sandbox.created_at).desc()).all(self.session)

    async def count_by_user(self, user_id: str) -> int:
        statement = select(func.count()).select_from(Sandbox).where(col(Sandbox.user_id) == user_id)
        return int((await self.session.exec(statement)).one())

    async def count_running_by_user(self, user_id: str) -> int:
        return await self._count_in_statuses(user_id, ("running",))

    async def count_active_by_user(self, user_id: str) -> int:
        """Count running sandboxes plus those already admitted to start."""
        return await self._count_in_statuses(user_id, IN_FLIGHT_STATUSES)

    async def _count_in_statuses(self, user_id: str, statuses: Sequence[str]) -> int:
        statement = (
            select(func.count())
            .select_from(Sandbox)
            .where(col(Sandbox.user_id) == user_id)
            .where(col(Sandbox.status).in_(statuses))
        )
        return int((await self.session.exec(statement)).one())

    async def count_by_status(self, user_id: str) -> dict[str, int]:
        """Return a count for every lifecycle status, zero-filled."""
        statement = (
            select(Sandbox.status, func.count())
            .where(col(Sandbox.user_id) == user_id)
            .group_by(col(Sandbox.status))
        )
        counts = dict.fromkeys(SANDBOX_STATUSES, 0)
        for status, count in await self.session.exec(statement):
            counts[status] = int(count)
        return counts

    async def sum_running_resources(self, user_id: str) -> ResourceTotals:
        """Sum tier cpu/memory over the user's running sandboxes."""
        return await self._sum_in_statuses(user_id, ("running",))

    async def sum_active_resources(self, user_id: str) -> ResourceTotals:
        """Sum tier cpu/memory over running and starting sandboxes."""
        return await self._sum_in_statuses(user_id, IN_FLIGHT_STATUSES)

    async def _sum_in_statuses(self, user_id: str, statuses: Sequence[str]) -> ResourceTotals:
        statement = (
            select(
                func.coalesce(func.sum(ResourceTier.cpu_cores), 0),
                func.coalesce(func.sum(ResourceTier.memory_gb), 0),
            )
            .select_from(Sandbox)
            .join(ResourceTier, col(ResourceTier.id) == col(Sandbox.tier_id))
            .where(col(Sandbox.user_id) == user_id)
            .where(col(Sandbox.status).in_(statuses))
        )
        cpu_cores, memory_gb = (await self.session.exec(statement)).one()
        return ResourceTotals(cpu_cores=int(cpu_cores), memory_gb=int(memory_gb))

    async def sum_storage(self, user_id: str) -> int:
        """Sum tier storage over all of the user's sandboxes."""
        statement = (
            select(func.coalesce(func.sum(ResourceTier.storage_gb), 0))
            .select_from(Sandbox)
            .join(ResourceTier, col(ResourceTier.id) == col(Sandbox.tier_id))
            .where(col(Sandbox.user_id) == user_id)
        )
        return int((await self.session.exec(statement)).one())

    async def is_slug_available(
        self,
        user_id: str,
        slug: str,
        exclude_id: UUID | None = None,
    ) -> bool:
        statement = (
            select(func.count())
            .select_from(Sandbox)
            .where(col(Sandbox.user_id) == user_id)
            .where(col(Sandbox.slug) == slug)
        )
        if exclude_id is not None:
            statement = statement.where(col(Sandbox.id) != exclude_id)
        return int((await self.session.exec(statement)).one()) == 0

    async def transition(
        self,
        sandbox_id: UUID,
        new_status: str,
        error_message: str | None = None,
    ) -> Sandbox:
        """Validate and record a status change reported by the orchestrator."""
        sandbox = await self.get(sandbox_id)
        target = (new_status or "").strip().lower()
        result = validate_transition(current_status=sandbox.status, target_status=target)
        if not result.ok:
            logger.warning(
                "sandbox.transition.rejected",
                extra={
                    "sandbox_id": str(sandbox.id),
                    "current": sandbox.status,
                    "target": target,
                },
            )
            raise InvalidTransitionError(
                current=sandbox.status,
                target=target,
                reason=result.reason or "Invalid sandbox status transition.",
            )
        if result.noop and target != "error":
            return sandbox

        previous = sandbox.status
        sandbox.status = target
        sandbox.error_message = error_message if target == "error" else None
        sandbox.updated_at = utcnow()
        await self.add_commit_refresh(sandbox)
        logger.info(
            "sandbox.transition",
            extra={
                "sandbox_id": str(sandbox.id),
                "user_id": sandbox.user_id,
                "from": previous,
                "to": target,
            },
        )
        return sandbox

    async def touch(self, sandbox_id: UUID) -> Sandbox:
        sandbox = await self.get(sandbox_id)
        sandbox.last_accessed_at = utcnow()
        return await self.add_commit_refresh(sandbox)

    async def delete(self, sandbox_id: UUID) -> bool:
        sandbox = await Sandbox.objects.by_id(sandbox_id).first(self.session)
        if sandbox is None:
            return False
        await self.session.delete(sandbox)
        await self.session.commit()
        logger.info("sandbox.deleted", extra={"sandbox_id": str(sandbox_id)})
        return True

    async def delete_by_user(self, user_id: str) -> int:
        result = await self.session.exec(delete(Sandbox).where(col(Sandbox.user_id) == user_id))
        await self.session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("sandbox.deleted_for_user", extra={"user_id": user_id, "count": removed})
        return removed
