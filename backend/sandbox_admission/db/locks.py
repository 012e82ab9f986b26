"""Per-user serialization for check-then-act admission sequences."""

from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlmodel import col, select

from sandbox_admission.core.logging import get_logger
from sandbox_admission.db.upsert import dialect_name
from sandbox_admission.models.quota_policies import QuotaPolicy

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

_LOCK_NAMESPACE = "sandbox-admission"


def advisory_lock_key(*parts: str) -> int:
    """Compute a signed 64-bit advisory lock key from parts."""
    raw = ":".join([_LOCK_NAMESPACE, *(part or "" for part in parts)]).encode("utf-8", "ignore")
    key = int.from_bytes(hashlib.sha1(raw).digest()[:8], "big", signed=False)
    # Fit into the signed BIGINT range used by pg advisory locks.
    if key >= 2**63:
        key -= 2**63
    return key


async def hold_user_lock(session: AsyncSession, user_id: str) -> None:
    """Block until this transaction owns the user's admission lock.

    The lock lives until the surrounding transaction commits or rolls back.
    Postgres uses a transaction-scoped advisory lock. Other dialects lock the
    user's quota policy row, so the policy must already exist.
    """
    if dialect_name(session) == "postgresql":
        await session.exec(
            text("SELECT pg_advisory_xact_lock(:key)"),
            params={"key": advisory_lock_key("user", user_id)},
        )
        return
    statement = select(QuotaPolicy).where(col(QuotaPolicy.user_id) == user_id).with_for_update()
    await session.exec(statement)


class SessionUserLock:
    """Lock port backed by the admitting session's transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[None]:
        await hold_user_lock(self.session, user_id)
        logger.debug("admission.lock.acquired", extra={"user_id": user_id})
        try:
            yield
        except Exception:
            # Releases the transaction-scoped lock along with the partial work.
            await self.session.rollback()
            raise
        if self.session.in_transaction():
            await self.session.commit()
