"""Per-user quota policy storage with lazy default bootstrap."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import col

from sandbox_admission.core.config import settings
from sandbox_admission.core.logging import get_logger
from sandbox_admission.core.time import utcnow
from sandbox_admission.db.upsert import insert_ignore
from sandbox_admission.models.quota_policies import QuotaPolicy
from sandbox_admission.schemas.quotas import QuotaPolicyRead
from sandbox_admission.services.db_service import DBService

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

    from sandbox_admission.schemas.quotas import QuotaPolicyDefaults, QuotaPolicyUpdate

logger = get_logger(__name__)


class QuotaPolicyStore(DBService):
    """Read and administer quota policies, one row per user."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        defaults: QuotaPolicyDefaults | None = None,
    ) -> None:
        super().__init__(session)
        self.defaults = defaults or settings.quota_defaults()

    async def find(self, user_id: str) -> QuotaPolicy | None:
        return await QuotaPolicy.objects.filter_by(user_id=user_id).first(self.session)

    async def get(self, user_id: str, *, commit: bool = True) -> QuotaPolicy:
        """Return the user's policy, creating it from defaults on first access.

        Concurrent first reads for the same user race on the unique `user_id`
        constraint; losers skip their insert and read the winner's row. With
        `commit=False` a bootstrap row joins the caller's open transaction, so
        a transaction-scoped lock held by the caller is not released.
        """
        policy = await self.find(user_id)
        if policy is not None:
            return policy

        now = utcnow()
        row = QuotaPolicy(
            user_id=user_id,
            **self.defaults.model_dump(),
            created_at=now,
            updated_at=now,
        ).model_dump()
        inserted = await insert_ignore(
            self.session,
            QuotaPolicy,
            [row],
            conflict_columns=("user_id",),
        )
        if commit:
            await self.session.commit()
        if inserted:
            logger.info("quota_policy.bootstrap", extra={"user_id": user_id})

        policy = await self.find(user_id)
        if policy is None:
            msg = f"Quota policy for user {user_id} vanished during bootstrap."
            raise RuntimeError(msg)
        return policy

    async def read(self, user_id: str) -> QuotaPolicyRead:
        return as_read(await self.get(user_id))

    async def update(self, user_id: str, payload: QuotaPolicyUpdate) -> QuotaPolicy:
        """Apply the explicitly set fields of `payload` to the user's policy."""
        policy = await self.get(user_id)
        updates = payload.model_dump(exclude_unset=True)
        if not updates:
            return policy
        for key, value in updates.items():
            setattr(policy, key, value)
        policy.updated_at = utcnow()
        await self.add_commit_refresh(policy)
        logger.info(
            "quota_policy.updated",
            extra={"user_id": user_id, "fields": sorted(updates)},
        )
        return policy

    async def delete(self, user_id: str) -> bool:
        """Remove the user's policy; the next read bootstraps defaults again."""
        result = await self.session.exec(
            delete(QuotaPolicy).where(col(QuotaPolicy.user_id) == user_id),
        )
        await self.session.commit()
        removed = bool(result.rowcount)
        if removed:
            logger.info("quota_policy.deleted", extra={"user_id": user_id})
        return removed


def as_read(policy: QuotaPolicy) -> QuotaPolicyRead:
    return QuotaPolicyRead.model_validate(policy, from_attributes=True)
