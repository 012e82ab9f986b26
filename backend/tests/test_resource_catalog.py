# ruff: noqa: S101
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from sandbox_admission.core.errors import NotFoundError
from sandbox_admission.models.addons import ContainerAddon
from sandbox_admission.models.resource_tiers import ResourceTier
from sandbox_admission.services.catalog import (
    AddonCatalog,
    ResourceTierCatalog,
    addons_price,
    exposed_ports,
    has_gpu_capacity,
    seed_catalog,
    tier_resource_limits,
    validate_addons,
)


async def _create_schema(engine: AsyncEngine) -> None:
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)


async def _seeded_session_maker() -> async_sessionmaker[AsyncSession]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await _create_schema(engine)
    session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    async with session_maker() as session:
        await seed_catalog(session)
    return session_maker


def _tier(tier_id: str, cpu_cores: int, memory_gb: int) -> ResourceTier:
    return ResourceTier(
        id=tier_id,
        name=tier_id.title(),
        cpu_cores=cpu_cores,
        memory_gb=memory_gb,
        storage_gb=20,
    )


def _addon(addon_id: str, **overrides: object) -> ContainerAddon:
    values: dict[str, object] = {
        "id": addon_id,
        "name": addon_id,
        "category": "interface",
        "requires_gpu": False,
        "price_monthly": Decimal("0"),
    }
    values.update(overrides)
    return ContainerAddon(**values)


@pytest.mark.asyncio
async def test_seed_catalog_is_idempotent() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await _create_schema(engine)
    session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async with session_maker() as session:
        assert await seed_catalog(session) == (4, 5)
        assert await seed_catalog(session) == (0, 0)
        tiers = await ResourceTierCatalog(session).list_tiers()
        addons = await AddonCatalog(session).list_addons()

    assert [tier.id for tier in tiers] == ["starter", "builder", "creator", "power"]
    assert [addon.id for addon in addons] == ["gui", "code-server", "databases", "cloud", "gpu"]


@pytest.mark.asyncio
async def test_tier_lookups() -> None:
    session_maker = await _seeded_session_maker()

    async with session_maker() as session:
        catalog = ResourceTierCatalog(session)
        builder = await catalog.get_tier("builder")
        default = await catalog.get_default_tier()
        with pytest.raises(NotFoundError) as exc_info:
            await catalog.get_tier("enterprise")

    assert (builder.cpu_cores, builder.memory_gb, builder.storage_gb) == (2, 4, 30)
    assert default.id == "starter"
    assert exc_info.value.keys == ("enterprise",)


@pytest.mark.asyncio
async def test_default_tier_missing_raises() -> None:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    await _create_schema(engine)
    session_maker = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async with session_maker() as session:
        session.add(_tier("solo", 1, 1))
        await session.commit()
        with pytest.raises(NotFoundError):
            await ResourceTierCatalog(session).get_default_tier()


@pytest.mark.asyncio
async def test_get_addons_reports_every_unknown_id() -> None:
    session_maker = await _seeded_session_maker()

    async with session_maker() as session:
        catalog = AddonCatalog(session)
        found = await catalog.get_addons(["gpu", "gui"])
        with pytest.raises(NotFoundError) as exc_info:
            await catalog.get_addons(["gui", "jupyter", "rstudio"])

    assert [addon.id for addon in found] == ["gui", "gpu"]
    assert exc_info.value.keys == ("jupyter", "rstudio")
    assert "jupyter, rstudio" in str(exc_info.value)


@pytest.mark.asyncio
async def test_addon_category_and_gpu_filters() -> None:
    session_maker = await _seeded_session_maker()

    async with session_maker() as session:
        catalog = AddonCatalog(session)
        interface = await catalog.list_addons_by_category("interface")
        non_gpu = await catalog.list_non_gpu_addons()
        with pytest.raises(ValueError, match="Unknown addon category"):
            await catalog.list_addons_by_category("games")
        with pytest.raises(NotFoundError):
            await catalog.get_addon("jupyter")

    assert [addon.id for addon in interface] == ["gui", "code-server"]
    assert "gpu" not in {addon.id for addon in non_gpu}
    assert len(non_gpu) == 4


def test_tier_resource_limits_use_docker_notation() -> None:
    limits = tier_resource_limits(_tier("builder", 2, 4))
    assert limits == {
        "limits_memory": "4g",
        "limits_memory_reservation": "3g",
        "limits_cpus": "2",
    }
    assert tier_resource_limits(_tier("starter", 1, 2))["limits_memory_reservation"] == "1g"


def test_gpu_capacity_threshold() -> None:
    assert has_gpu_capacity(_tier("creator", 4, 8)) is True
    assert has_gpu_capacity(_tier("builder", 2, 4)) is False
    assert has_gpu_capacity(_tier("odd", 8, 4)) is False


def test_ports_and_price_helpers() -> None:
    addons = [
        _addon("gui", port=6080, price_monthly=Decimal("5")),
        _addon("code-server", port=8080),
        _addon("gpu", category="compute", requires_gpu=True, price_monthly=Decimal("20")),
    ]
    assert exposed_ports(addons) == [6080, 8080]
    assert addons_price(addons) == Decimal("25")
    assert addons_price([]) == Decimal("0")


def test_validate_addons_collects_every_incompatibility() -> None:
    addons = [
        _addon("gpu", category="compute", requires_gpu=True),
        _addon("notebooks", requires_flavor="python"),
        _addon("code-server"),
    ]

    result = validate_addons(addons, flavor_id="fullstack", has_gpu=False)
    assert result.valid is False
    assert result.offending_ids == ("gpu", "notebooks")
    assert len(result.errors) == 2

    ok = validate_addons(addons, flavor_id="python", has_gpu=True)
    assert ok.valid is True
    assert ok.errors == ()
