# ruff: noqa: S101
from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from sandbox_admission.core.errors import SlugExhaustedError
from sandbox_admission.schemas.sandboxes import SandboxCreate
from sandbox_admission.services.catalog import seed_catalog
from sandbox_admission.services.sandbox_registry import SandboxRegistry
from sandbox_admission.services.slugs import SlugAllocator, slugify


async def _create_schema(engine: AsyncEngine) -> None:
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)


class _TakenSlugs:
    def __init__(self, taken: set[str]) -> None:
        self.taken = taken
        self.probes: list[str] = []

    async def is_slug_available(self, user_id: str, slug: str) -> bool:
        del user_id
        self.probes.append(slug)
        return slug not in self.taken


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("My Project", "my-project"),
        ("  --Hello__World--  ", "hello-world"),
        ("API v2.0 (beta)", "api-v2-0-beta"),
        ("Ünïcode Box", "n-code-box"),
        ("!!!", "sandbox"),
        ("", "sandbox"),
    ],
)
def test_slugify(name: str, expected: str) -> None:
    assert slugify(name) == expected


@pytest.mark.asyncio
async def test_generate_returns_base_slug_when_free() -> None:
    lookup = _TakenSlugs(set())
    slug = await SlugAllocator(lookup).generate("user-1", "My Project")
    assert slug == "my-project"
    assert lookup.probes == ["my-project"]


@pytest.mark.asyncio
async def test_generate_appends_counter_on_collision() -> None:
    lookup = _TakenSlugs({"demo", "demo-1", "demo-2"})
    slug = await SlugAllocator(lookup).generate("user-1", "Demo")
    assert slug == "demo-3"
    assert lookup.probes == ["demo", "demo-1", "demo-2", "demo-3"]


@pytest.mark.asyncio
async def test_generate_is_bounded() -> None:
    lookup = _TakenSlugs({"demo", "demo-1", "demo-2"})
    with pytest.raises(SlugExhaustedError) as exc_info:
        await SlugAllocator(lookup, max_attempts=3).generate("user-1", "Demo")
    assert exc_info.value.base_slug == "demo"
    assert exc_info.value.attempts == 3
    assert len(lookup.probes) == 3


@pytest.mark.asyncio
async def test_generate_against_registry_is_scoped_per_user() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await _create_schema(engine)
    session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async with session_maker() as session:
        await seed_catalog(session)
        registry = SandboxRegistry(session)
        allocator = SlugAllocator(registry)
        slugs: list[str] = []
        for _ in range(3):
            slug = await allocator.generate("user-1", "Web App")
            await registry.create(
                SandboxCreate(user_id="user-1", name="Web App", slug=slug, tier_id="starter"),
            )
            slugs.append(slug)
        other = await allocator.generate("user-2", "Web App")

    assert slugs == ["web-app", "web-app-1", "web-app-2"]
    assert other == "web-app"
