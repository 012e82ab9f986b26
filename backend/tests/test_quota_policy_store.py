# ruff: noqa: S101
from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel, select
from sqlmodel.ext.asyncio.session import AsyncSession

from sandbox_admission.models.quota_policies import QuotaPolicy
from sandbox_admission.schemas.quotas import QuotaPolicyDefaults, QuotaPolicyUpdate
from sandbox_admission.services.quota_policies import QuotaPolicyStore, as_read


async def _create_schema(engine: AsyncEngine) -> None:
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)


async def _session_maker(url: str = "sqlite+aiosqlite:///:memory:") -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine(url)
    await _create_schema(engine)
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def _policy_count(session: AsyncSession, user_id: str) -> int:
    statement = select(func.count()).select_from(QuotaPolicy).where(QuotaPolicy.user_id == user_id)
    return int((await session.exec(statement)).one())


@pytest.mark.asyncio
async def test_get_bootstraps_configured_defaults_once() -> None:
    session_maker = await _session_maker()

    async with session_maker() as session:
        store = QuotaPolicyStore(session)
        first = await store.get("user-1")
        second = await store.get("user-1")
        count = await _policy_count(session, "user-1")

    assert first.id == second.id
    assert count == 1
    assert first.max_sandboxes == 3
    assert first.max_concurrent_running == 1
    assert first.allowed_tier_ids == ["starter"]
    assert first.max_tier_id == "starter"
    assert first.max_total_storage_gb == 10
    assert first.max_total_cpu_cores == 2
    assert first.max_total_memory_gb == 4
    assert first.allowed_addon_ids == ["code-server"]


@pytest.mark.asyncio
async def test_injected_defaults_override_settings() -> None:
    session_maker = await _session_maker()
    defaults = QuotaPolicyDefaults(
        max_sandboxes=10,
        max_concurrent_running=3,
        allowed_tier_ids=["starter", "builder"],
        max_tier_id="builder",
        max_total_storage_gb=100,
        max_total_cpu_cores=8,
        max_total_memory_gb=16,
        allowed_addon_ids=None,
    )

    async with session_maker() as session:
        policy = await QuotaPolicyStore(session, defaults=defaults).get("user-pro")

    assert policy.max_sandboxes == 10
    assert policy.allowed_tier_ids == ["starter", "builder"]
    assert policy.allowed_addon_ids is None


@pytest.mark.asyncio
async def test_update_applies_only_explicit_fields() -> None:
    session_maker = await _session_maker()

    async with session_maker() as session:
        store = QuotaPolicyStore(session)
        original = await store.get("user-1")
        created_at = original.created_at
        updated = await store.update(
            "user-1",
            QuotaPolicyUpdate(max_sandboxes=5, allowed_tier_ids=["Starter", "builder", "starter"]),
        )

    assert updated.max_sandboxes == 5
    assert updated.allowed_tier_ids == ["starter", "builder"]
    assert updated.max_concurrent_running == 1
    assert updated.allowed_addon_ids == ["code-server"]
    assert updated.created_at == created_at
    assert updated.updated_at >= created_at


@pytest.mark.asyncio
async def test_update_can_lift_addon_restriction() -> None:
    session_maker = await _session_maker()

    async with session_maker() as session:
        store = QuotaPolicyStore(session)
        await store.update("user-1", QuotaPolicyUpdate(allowed_addon_ids=None))

    async with session_maker() as session:
        policy = await QuotaPolicyStore(session).get("user-1")

    assert policy.allowed_addon_ids is None


def test_update_rejects_null_tier_list_and_negative_limits() -> None:
    with pytest.raises(ValidationError):
        QuotaPolicyUpdate(allowed_tier_ids=None)
    with pytest.raises(ValidationError):
        QuotaPolicyUpdate(max_sandboxes=-1)
    assert QuotaPolicyUpdate(max_tier_id="Power").max_tier_id == "power"


@pytest.mark.asyncio
async def test_delete_resets_to_defaults_on_next_read() -> None:
    session_maker = await _session_maker()

    async with session_maker() as session:
        store = QuotaPolicyStore(session)
        original = await store.update("user-1", QuotaPolicyUpdate(max_sandboxes=9))
        assert await store.delete("user-1") is True
        assert await store.delete("user-1") is False

    async with session_maker() as session:
        fresh = await QuotaPolicyStore(session).get("user-1")

    assert fresh.id != original.id
    assert fresh.max_sandboxes == 3


@pytest.mark.asyncio
async def test_read_model_mirrors_policy() -> None:
    session_maker = await _session_maker()

    async with session_maker() as session:
        store = QuotaPolicyStore(session)
        policy = await store.get("user-1")
        read = await store.read("user-1")

    assert read == as_read(policy)
    assert read.user_id == "user-1"
    assert read.allowed_tier_ids == ["starter"]


@pytest.mark.asyncio
async def test_concurrent_first_reads_create_one_policy(tmp_path: Path) -> None:
    session_maker = await _session_maker(f"sqlite+aiosqlite:///{tmp_path / 'quotas.db'}")

    async def _read_policy() -> str:
        async with session_maker() as session:
            policy = await QuotaPolicyStore(session).get("racer")
            return str(policy.id)

    ids = await asyncio.gather(*(_read_policy() for _ in range(8)))

    async with session_maker() as session:
        count = await _policy_count(session, "racer")

    assert len(set(ids)) == 1
    assert count == 1
