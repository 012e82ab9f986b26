"""Quota-aware admission decisions for sandbox creation and start requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Protocol

from sandbox_admission.core.config import settings
from sandbox_admission.core.errors import InvalidTransitionError
from sandbox_admission.core.logging import get_logger
from sandbox_admission.db.locks import SessionUserLock
from sandbox_admission.models.sandboxes import DEFAULT_FLAVOR_ID
from sandbox_admission.schemas.common import normalize_ids
from sandbox_admission.schemas.quotas import QuotaSummary, ResourceUsage
from sandbox_admission.schemas.sandboxes import SandboxCreate
from sandbox_admission.services.catalog import (
    AddonCatalog,
    ResourceTierCatalog,
    has_gpu_capacity,
    validate_addons,
)
from sandbox_admission.services.quota_policies import QuotaPolicyStore, as_read
from sandbox_admission.services.sandbox_registry import ResourceTotals, SandboxRegistry
from sandbox_admission.services.sandbox_transitions import validate_transition
from sandbox_admission.services.slugs import SlugAllocator

if TYPE_CHECKING:
    from collections.abc import Sequence
    from contextlib import AbstractAsyncContextManager
    from uuid import UUID

    from sqlmodel.ext.asyncio.session import AsyncSession

    from sandbox_admission.models.addons import ContainerAddon
    from sandbox_admission.models.quota_policies import QuotaPolicy
    from sandbox_admission.models.resource_tiers import ResourceTier
    from sandbox_admission.models.sandboxes import Sandbox

logger = get_logger(__name__)

AdmissionDenial = Literal[
    "sandbox_limit_exceeded",
    "tier_not_allowed",
    "addons_not_allowed",
    "addons_incompatible",
    "concurrency_limit_exceeded",
    "cpu_limit_exceeded",
    "memory_limit_exceeded",
]


class QuotaPolicyStoreProtocol(Protocol):
    async def get(self, user_id: str, *, commit: bool = True) -> QuotaPolicy: ...


class SandboxRegistryProtocol(Protocol):
    async def create(self, payload: SandboxCreate) -> Sandbox: ...

    async def get(self, sandbox_id: UUID) -> Sandbox: ...

    async def count_by_user(self, user_id: str) -> int: ...

    async def count_running_by_user(self, user_id: str) -> int: ...

    async def count_active_by_user(self, user_id: str) -> int: ...

    async def sum_running_resources(self, user_id: str) -> ResourceTotals: ...

    async def sum_active_resources(self, user_id: str) -> ResourceTotals: ...

    async def sum_storage(self, user_id: str) -> int: ...

    async def transition(
        self,
        sandbox_id: UUID,
        new_status: str,
        error_message: str | None = None,
    ) -> Sandbox: ...


class TierCatalogProtocol(Protocol):
    async def get_tier(self, tier_id: str) -> ResourceTier: ...

    async def get_default_tier(self) -> ResourceTier: ...


class AddonCatalogProtocol(Protocol):
    async def get_addons(self, addon_ids: Sequence[str]) -> list[ContainerAddon]: ...


class UserLockProtocol(Protocol):
    def hold(self, user_id: str) -> AbstractAsyncContextManager[None]: ...


class SlugAllocatorProtocol(Protocol):
    async def generate(self, user_id: str, base_name: str) -> str: ...


@dataclass(frozen=True, slots=True)
class AdmissionResult:
    allowed: bool
    denial: AdmissionDenial | None = None
    reason: str | None = None
    current: int | None = None
    limit: int | None = None
    disallowed: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AdmissionOutcome:
    result: AdmissionResult
    sandbox: Sandbox | None = None

    @property
    def allowed(self) -> bool:
        return self.result.allowed


ALLOWED = AdmissionResult(allowed=True)


def _deny(
    denial: AdmissionDenial,
    reason: str,
    *,
    current: int | None = None,
    limit: int | None = None,
    disallowed: Sequence[str] = (),
) -> AdmissionResult:
    return AdmissionResult(
        allowed=False,
        denial=denial,
        reason=reason,
        current=current,
        limit=limit,
        disallowed=tuple(disallowed),
    )


class AdmissionController:
    """Decide whether a user may create or start a sandbox under their quota.

    The `check_*` methods are read-only and do not serialize against
    concurrent requests. `admit_create` and `admit_start` hold the per-user
    lock across the check and the write that depends on it.
    """

    def __init__(
        self,
        *,
        policies: QuotaPolicyStoreProtocol,
        sandboxes: SandboxRegistryProtocol,
        tiers: TierCatalogProtocol,
        addons: AddonCatalogProtocol,
        lock: UserLockProtocol,
        slugs: SlugAllocatorProtocol,
        default_addon_ids: Sequence[str] | None = None,
    ) -> None:
        self.policies = policies
        self.sandboxes = sandboxes
        self.tiers = tiers
        self.addons = addons
        self.lock = lock
        self.slugs = slugs
        self.default_addon_ids = list(
            default_addon_ids if default_addon_ids is not None else settings.default_addons(),
        )

    @classmethod
    def for_session(cls, session: AsyncSession) -> AdmissionController:
        registry = SandboxRegistry(session)
        return cls(
            policies=QuotaPolicyStore(session),
            sandboxes=registry,
            tiers=ResourceTierCatalog(session),
            addons=AddonCatalog(session),
            lock=SessionUserLock(session),
            slugs=SlugAllocator(registry),
        )

    async def check_create(
        self,
        user_id: str,
        tier_id: str,
        addon_ids: Sequence[str],
        *,
        flavor_id: str | None = None,
    ) -> AdmissionResult:
        """Check sandbox count, tier and addon eligibility for a new sandbox."""
        policy = await self.policies.get(user_id)
        return await self._evaluate_create(policy, tier_id, addon_ids, flavor_id=flavor_id)

    async def _evaluate_create(
        self,
        policy: QuotaPolicy,
        tier_id: str,
        addon_ids: Sequence[str],
        *,
        flavor_id: str | None,
    ) -> AdmissionResult:
        tier_key = tier_id.strip().lower()
        requested_addons = normalize_ids(addon_ids)

        current = await self.sandboxes.count_by_user(policy.user_id)
        if current >= policy.max_sandboxes:
            return _deny(
                "sandbox_limit_exceeded",
                f"Sandbox limit reached. You can have up to {policy.max_sandboxes} sandbox(es).",
                current=current,
                limit=policy.max_sandboxes,
            )

        if tier_key not in policy.allowed_tier_ids:
            return _deny(
                "tier_not_allowed",
                f"Resource tier '{tier_key}' is not available for your account. "
                f"Allowed tiers: {', '.join(policy.allowed_tier_ids)}.",
            )

        if policy.allowed_addon_ids is not None:
            disallowed = [
                addon_id for addon_id in requested_addons if addon_id not in policy.allowed_addon_ids
            ]
            if disallowed:
                return _deny(
                    "addons_not_allowed",
                    f"Addon(s) not available for your account: {', '.join(disallowed)}.",
                    disallowed=disallowed,
                )

        tier = await self.tiers.get_tier(tier_key)
        addons = await self.addons.get_addons(requested_addons)
        if flavor_id is not None:
            compatibility = validate_addons(
                addons,
                flavor_id=flavor_id,
                has_gpu=has_gpu_capacity(tier),
            )
            if not compatibility.valid:
                return _deny(
                    "addons_incompatible",
                    "; ".join(compatibility.errors),
                    disallowed=compatibility.offending_ids,
                )
        return ALLOWED

    async def check_start(self, user_id: str, tier_id: str) -> AdmissionResult:
        """Check concurrency and aggregate CPU/memory budget against running sandboxes.

        Sandboxes still in `starting` are not counted here; `admit_start`
        counts them.
        """
        policy = await self.policies.get(user_id)
        return await self._evaluate_start(policy, tier_id, include_starting=False)

    async def _evaluate_start(
        self,
        policy: QuotaPolicy,
        tier_id: str,
        *,
        include_starting: bool,
    ) -> AdmissionResult:
        if include_starting:
            running = await self.sandboxes.count_active_by_user(policy.user_id)
        else:
            running = await self.sandboxes.count_running_by_user(policy.user_id)
        if running >= policy.max_concurrent_running:
            return _deny(
                "concurrency_limit_exceeded",
                "Concurrent running limit reached. Stop a running sandbox before starting another.",
                current=running,
                limit=policy.max_concurrent_running,
            )

        tier = await self.tiers.get_tier(tier_id.strip().lower())
        if include_starting:
            usage = await self.sandboxes.sum_active_resources(policy.user_id)
        else:
            usage = await self.sandboxes.sum_running_resources(policy.user_id)
        if usage.cpu_cores + tier.cpu_cores > policy.max_total_cpu_cores:
            return _deny(
                "cpu_limit_exceeded",
                f"CPU limit would be exceeded. Current: {usage.cpu_cores} cores, "
                f"requesting: {tier.cpu_cores} cores, limit: {policy.max_total_cpu_cores} cores.",
                current=usage.cpu_cores,
                limit=policy.max_total_cpu_cores,
            )
        if usage.memory_gb + tier.memory_gb > policy.max_total_memory_gb:
            return _deny(
                "memory_limit_exceeded",
                f"Memory limit would be exceeded. Current: {usage.memory_gb}GB, "
                f"requesting: {tier.memory_gb}GB, limit: {policy.max_total_memory_gb}GB.",
                current=usage.memory_gb,
                limit=policy.max_total_memory_gb,
            )
        return ALLOWED

    async def admit_create(
        self,
        user_id: str,
        name: str,
        *,
        tier_id: str | None = None,
        addon_ids: Sequence[str] | None = None,
        flavor_id: str | None = None,
        description: str | None = None,
    ) -> AdmissionOutcome:
        """Check and insert a new sandbox while holding the user's lock."""
        # The row lock used off Postgres needs the policy row to exist first.
        await self.policies.get(user_id)
        if tier_id is None:
            tier_id = (await self.tiers.get_default_tier()).id
        requested_addons = list(addon_ids) if addon_ids is not None else list(self.default_addon_ids)

        async with self.lock.hold(user_id):
            policy = await self.policies.get(user_id, commit=False)
            result = await self._evaluate_create(
                policy,
                tier_id,
                requested_addons,
                flavor_id=flavor_id,
            )
            if not result.allowed:
                logger.info(
                    "admission.create.denied",
                    extra={"user_id": user_id, "denial": result.denial, "tier_id": tier_id},
                )
                return AdmissionOutcome(result=result)

            slug = await self.slugs.generate(user_id, name)
            payload = SandboxCreate(
                user_id=user_id,
                name=name,
                slug=slug,
                tier_id=tier_id.strip().lower(),
                description=description,
                flavor_id=flavor_id or DEFAULT_FLAVOR_ID,
                addon_ids=requested_addons,
            )
            sandbox = await self.sandboxes.create(payload)

        logger.info(
            "admission.create.allowed",
            extra={"user_id": user_id, "sandbox_id": str(sandbox.id), "tier_id": sandbox.tier_id},
        )
        return AdmissionOutcome(result=result, sandbox=sandbox)

    async def admit_start(self, sandbox_id: UUID) -> AdmissionOutcome:
        """Check quota and move a sandbox to `starting` while holding the user's lock.

        Sandboxes already in `starting` count against the concurrency and
        CPU/memory limits, so back-to-back starts cannot overshoot them
        before the orchestrator reports either one as running.
        """
        user_id = (await self.sandboxes.get(sandbox_id)).user_id
        await self.policies.get(user_id)
        async with self.lock.hold(user_id):
            sandbox = await self.sandboxes.get(sandbox_id)
            transition = validate_transition(current_status=sandbox.status, target_status="starting")
            if not transition.ok:
                raise InvalidTransitionError(
                    current=sandbox.status,
                    target="starting",
                    reason=transition.reason or "Invalid sandbox status transition.",
                )
            if transition.noop:
                return AdmissionOutcome(result=ALLOWED, sandbox=sandbox)

            policy = await self.policies.get(user_id, commit=False)
            result = await self._evaluate_start(policy, sandbox.tier_id, include_starting=True)
            if not result.allowed:
                logger.info(
                    "admission.start.denied",
                    extra={
                        "user_id": user_id,
                        "sandbox_id": str(sandbox.id),
                        "denial": result.denial,
                    },
                )
                return AdmissionOutcome(result=result, sandbox=sandbox)
            sandbox = await self.sandboxes.transition(sandbox.id, "starting")

        logger.info(
            "admission.start.allowed",
            extra={"user_id": user_id, "sandbox_id": str(sandbox.id)},
        )
        return AdmissionOutcome(result=result, sandbox=sandbox)

    async def usage(self, user_id: str) -> ResourceUsage:
        totals = await self.sandboxes.sum_running_resources(user_id)
        return ResourceUsage(
            sandbox_count=await self.sandboxes.count_by_user(user_id),
            running_count=await self.sandboxes.count_running_by_user(user_id),
            total_cpu_cores=totals.cpu_cores,
            total_memory_gb=totals.memory_gb,
            total_storage_gb=await self.sandboxes.sum_storage(user_id),
        )

    async def summary(self, user_id: str) -> QuotaSummary:
        policy = await self.policies.get(user_id)
        return QuotaSummary(policy=as_read(policy), usage=await self.usage(user_id))
