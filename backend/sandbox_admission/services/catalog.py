"""Read-only catalogs of resource tiers and container addons."""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Final

from sqlmodel import col

from sandbox_admission.core.errors import NotFoundError
from sandbox_admission.core.logging import get_logger
from sandbox_admission.core.time import utcnow
from sandbox_admission.db.upsert import insert_ignore
from sandbox_admission.models.addons import ADDON_CATEGORIES, ContainerAddon
from sandbox_admission.models.resource_tiers import ResourceTier
from sandbox_admission.services.db_service import DBService

if TYPE_CHECKING:
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

GPU_MIN_CPU_CORES: Final[int] = 4
GPU_MIN_MEMORY_GB: Final[int] = 8
MEMORY_RESERVATION_RATIO: Final[float] = 0.75

STOCK_TIERS: Final[tuple[dict[str, Any], ...]] = (
    {
        "id": "starter",
        "name": "Starter",
        "description": "Perfect for learning and small projects",
        "cpu_cores": 1,
        "memory_gb": 2,
        "storage_gb": 20,
        "price_monthly": Decimal("0"),
        "is_default": True,
        "sort_order": 1,
    },
    {
        "id": "builder",
        "name": "Builder",
        "description": "For active development and medium projects",
        "cpu_cores": 2,
        "memory_gb": 4,
        "storage_gb": 30,
        "price_monthly": Decimal("10"),
        "is_default": False,
        "sort_order": 2,
    },
    {
        "id": "creator",
        "name": "Creator",
        "description": "For professional development and larger projects",
        "cpu_cores": 4,
        "memory_gb": 8,
        "storage_gb": 50,
        "price_monthly": Decimal("25"),
        "is_default": False,
        "sort_order": 3,
    },
    {
        "id": "power",
        "name": "Power",
        "description": "Maximum resources for demanding workloads",
        "cpu_cores": 8,
        "memory_gb": 16,
        "storage_gb": 100,
        "price_monthly": Decimal("50"),
        "is_default": False,
        "sort_order": 4,
    },
)

STOCK_ADDONS: Final[tuple[dict[str, Any], ...]] = (
    {
        "id": "gui",
        "name": "Desktop GUI",
        "description": "Full desktop environment via KasmVNC",
        "category": "interface",
        "image_size_mb": 800,
        "port": 6080,
        "requires_gpu": False,
        "price_monthly": Decimal("5"),
        "sort_order": 1,
    },
    {
        "id": "code-server",
        "name": "VS Code",
        "description": "VS Code in browser via code-server",
        "category": "interface",
        "image_size_mb": 300,
        "port": 8080,
        "requires_gpu": False,
        "price_monthly": Decimal("0"),
        "sort_order": 2,
    },
    {
        "id": "databases",
        "name": "Databases",
        "description": "PostgreSQL, Redis, and DuckDB",
        "category": "storage",
        "image_size_mb": 400,
        "port": None,
        "requires_gpu": False,
        "price_monthly": Decimal("5"),
        "sort_order": 3,
    },
    {
        "id": "cloud",
        "name": "Cloud Tools",
        "description": "AWS CLI, gcloud, Terraform, kubectl",
        "category": "devops",
        "image_size_mb": 600,
        "port": None,
        "requires_gpu": False,
        "price_monthly": Decimal("0"),
        "sort_order": 4,
    },
    {
        "id": "gpu",
        "name": "GPU Support",
        "description": "NVIDIA CUDA toolkit for ML/AI workloads",
        "category": "compute",
        "image_size_mb": 500,
        "port": None,
        "requires_gpu": True,
        "price_monthly": Decimal("20"),
        "sort_order": 5,
    },
)


@dataclass(frozen=True, slots=True)
class AddonValidationResult:
    valid: bool
    errors: tuple[str, ...] = ()
    offending_ids: tuple[str, ...] = ()


class ResourceTierCatalog(DBService):
    """Lookups over the resource tier reference table."""

    async def find_tier(self, tier_id: str) -> ResourceTier | None:
        return await ResourceTier.objects.by_id(tier_id).first(self.session)

    async def get_tier(self, tier_id: str) -> ResourceTier:
        tier = await self.find_tier(tier_id)
        if tier is None:
            raise NotFoundError("resource tier", tier_id)
        return tier

    async def list_tiers(self) -> list[ResourceTier]:
        return await ResourceTier.objects.all().order_by(
            col(ResourceTier.sort_order).asc(),
            col(ResourceTier.id).asc(),
        ).all(self.session)

    async def get_default_tier(self) -> ResourceTier:
        """Return the default tier, lowest sort order first if several are flagged."""
        tier = await ResourceTier.objects.filter_by(is_default=True).order_by(
            col(ResourceTier.sort_order).asc(),
        ).first(self.session)
        if tier is None:
            raise NotFoundError("resource tier", "default")
        return tier


class AddonCatalog(DBService):
    """Lookups over the container addon reference table."""

    async def get_addon(self, addon_id: str) -> ContainerAddon:
        addon = await ContainerAddon.objects.by_id(addon_id).first(self.session)
        if addon is None:
            raise NotFoundError("addon", addon_id)
        return addon

    async def get_addons(self, addon_ids: Iterable[str]) -> list[ContainerAddon]:
        """Resolve every id, raising once with all unknown ids."""
        requested = list(dict.fromkeys(addon_ids))
        if not requested:
            return []
        rows = await ContainerAddon.objects.filter(col(ContainerAddon.id).in_(requested)).order_by(
            col(ContainerAddon.sort_order).asc(),
        ).all(self.session)
        found = {row.id for row in rows}
        missing = [addon_id for addon_id in requested if addon_id not in found]
        if missing:
            raise NotFoundError("addon", missing)
        return rows

    async def list_addons(self) -> list[ContainerAddon]:
        return await ContainerAddon.objects.all().order_by(
            col(ContainerAddon.sort_order).asc(),
            col(ContainerAddon.id).asc(),
        ).all(self.session)

    async def list_addons_by_category(self, category: str) -> list[ContainerAddon]:
        if category not in ADDON_CATEGORIES:
            msg = f"Unknown addon category: {category}"
            raise ValueError(msg)
        return await ContainerAddon.objects.filter_by(category=category).order_by(
            col(ContainerAddon.sort_order).asc(),
        ).all(self.session)

    async def list_non_gpu_addons(self) -> list[ContainerAddon]:
        return await ContainerAddon.objects.filter_by(requires_gpu=False).order_by(
            col(ContainerAddon.sort_order).asc(),
        ).all(self.session)


def tier_resource_limits(tier: ResourceTier) -> dict[str, str]:
    """Container runtime limits for a tier, using Docker's `<n>g` notation."""
    return {
        "limits_memory": f"{tier.memory_gb}g",
        "limits_memory_reservation": f"{math.floor(tier.memory_gb * MEMORY_RESERVATION_RATIO)}g",
        "limits_cpus": str(tier.cpu_cores),
    }


def has_gpu_capacity(tier: ResourceTier) -> bool:
    return tier.cpu_cores >= GPU_MIN_CPU_CORES and tier.memory_gb >= GPU_MIN_MEMORY_GB


def exposed_ports(addons: Sequence[ContainerAddon]) -> list[int]:
    return [addon.port for addon in addons if addon.port is not None]


def addons_price(addons: Sequence[ContainerAddon]) -> Decimal:
    return sum((Decimal(addon.price_monthly) for addon in addons), Decimal("0"))


def validate_addons(
    addons: Sequence[ContainerAddon],
    *,
    flavor_id: str,
    has_gpu: bool,
) -> AddonValidationResult:
    """Report every GPU and flavor requirement the selection violates."""
    errors: list[str] = []
    offending: list[str] = []
    for addon in addons:
        if addon.requires_gpu and not has_gpu:
            errors.append(f"Addon '{addon.id}' requires GPU support")
            offending.append(addon.id)
        if addon.requires_flavor and addon.requires_flavor != flavor_id:
            errors.append(f"Addon '{addon.id}' requires flavor '{addon.requires_flavor}'")
            if addon.id not in offending:
                offending.append(addon.id)
    return AddonValidationResult(
        valid=not errors,
        errors=tuple(errors),
        offending_ids=tuple(offending),
    )


async def seed_catalog(session: AsyncSession) -> tuple[int, int]:
    """Insert the stock tiers and addons, leaving existing rows untouched."""
    now = utcnow()
    tier_rows = [
        ResourceTier(**values, created_at=now, updated_at=now).model_dump() for values in STOCK_TIERS
    ]
    addon_rows = [
        ContainerAddon(**values, created_at=now, updated_at=now).model_dump() for values in STOCK_ADDONS
    ]
    tiers_added = await insert_ignore(session, ResourceTier, tier_rows, conflict_columns=("id",))
    addons_added = await insert_ignore(session, ContainerAddon, addon_rows, conflict_columns=("id",))
    await session.commit()
    logger.info(
        "catalog.seed.complete",
        extra={"tiers_added": tiers_added, "addons_added": addons_added},
    )
    return tiers_added, addons_added
