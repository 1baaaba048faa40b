"""Subscription plan caps on children and specialists.

Two forms of the check:

* ``can_add_child`` / ``can_add_specialist`` are advisory.  They read the
  counter and answer; a caller acting on the answer can still race
  another request.
* ``reserve_child_slot`` / ``reserve_specialist_slot`` are strict.  The
  counter repo increments only while below the cap, in one step, so two
  concurrent adds can never jointly pass a cap of one.

Counts come from the per-organization counter documents rather than from
live queries over links or memberships.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from membership_service.core.clock import utcnow
from membership_service.core.errors import (
    LimitReachedError,
    MembershipServiceError,
    SubscriptionInactiveError,
    SubscriptionRequiredError,
)
from membership_service.core.metrics import PLAN_LIMIT_REJECTIONS
from membership_service.models.billing import CHILDREN, SPECIALISTS, PlanLimit, Resource
from membership_service.repos.store import Store

logger = logging.getLogger(__name__)

PLAN_LIMITS: dict[str, PlanLimit] = {
    "starter": PlanLimit(children=30, specialists=3),
    "growth": PlanLimit(children=80, specialists=None),
    "enterprise": PlanLimit(children=None, specialists=None),
}

LEGACY_PLAN_IDS = {
    "basic": "starter",
    "professional": "growth",
}


@dataclass(frozen=True, slots=True)
class ActivePlan:
    plan_id: str
    limits: PlanLimit


@dataclass(frozen=True, slots=True)
class PlanCheck:
    ok: bool
    code: str | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class PlanUsage:
    plan_id: str | None
    children_limit: int | None
    specialists_limit: int | None
    children_count: int
    specialists_count: int
    can_add_child: PlanCheck
    can_add_specialist: PlanCheck


def normalize_plan_id(plan_id: str) -> str:
    plan_id = plan_id.strip().lower()
    return LEGACY_PLAN_IDS.get(plan_id, plan_id)


def get_plan_limits(plan_id: str) -> PlanLimit | None:
    return PLAN_LIMITS.get(normalize_plan_id(plan_id))


def _limit_message(cap: int, resource: Resource) -> str:
    return f"Plan limit: {cap} {resource}. Upgrade in Billing to add more."


async def subscription_status(
    store: Store, org_id: UUID, now: datetime | None = None
) -> ActivePlan:
    """Resolve the org's active plan or raise why there is none."""
    now = now or utcnow()
    snapshot = await store.billing.get(org_id)
    if snapshot is None:
        raise SubscriptionRequiredError(
            "No subscription. Please choose a plan and pay in Billing."
        )
    if snapshot.status != "active":
        raise SubscriptionInactiveError(
            "Subscription is not active. Please renew in Billing."
        )
    if not snapshot.is_active(now):
        raise SubscriptionInactiveError("Subscription expired. Please renew in Billing.")

    limits = get_plan_limits(snapshot.plan_id)
    if limits is None:
        logger.warning("Unknown plan id=%r for org=%s", snapshot.plan_id, org_id)
        raise SubscriptionInactiveError("Invalid plan. Please renew in Billing.")
    return ActivePlan(plan_id=normalize_plan_id(snapshot.plan_id), limits=limits)


async def _can_add(
    store: Store, org_id: UUID, resource: Resource, now: datetime | None
) -> PlanCheck:
    try:
        plan = await subscription_status(store, org_id, now)
    except MembershipServiceError as e:
        return PlanCheck(ok=False, code=e.code, reason=e.message)

    cap = plan.limits.cap_for(resource)
    if cap is None:
        return PlanCheck(ok=True)
    count = await store.counters.get(org_id, resource)
    if count >= cap:
        return PlanCheck(
            ok=False, code=LimitReachedError.code, reason=_limit_message(cap, resource)
        )
    return PlanCheck(ok=True)


async def can_add_child(
    store: Store, org_id: UUID, now: datetime | None = None
) -> PlanCheck:
    return await _can_add(store, org_id, CHILDREN, now)


async def can_add_specialist(
    store: Store, org_id: UUID, now: datetime | None = None
) -> PlanCheck:
    return await _can_add(store, org_id, SPECIALISTS, now)


async def _reserve(
    store: Store, org_id: UUID, resource: Resource, now: datetime | None
) -> None:
    try:
        plan = await subscription_status(store, org_id, now)
    except MembershipServiceError as e:
        PLAN_LIMIT_REJECTIONS.labels(resource=resource, reason=e.code).inc()
        logger.warning("Plan check failed: org=%s resource=%s reason=%s", org_id, resource, e.code)
        raise

    cap = plan.limits.cap_for(resource)
    if not await store.counters.try_increment(org_id, resource, cap):
        PLAN_LIMIT_REJECTIONS.labels(resource=resource, reason=LimitReachedError.code).inc()
        logger.warning(
            "Plan limit reached: org=%s plan=%s resource=%s cap=%s",
            org_id,
            plan.plan_id,
            resource,
            cap,
        )
        # try_increment only fails with a finite cap
        raise LimitReachedError(_limit_message(cap or 0, resource))


async def reserve_child_slot(
    store: Store, org_id: UUID, now: datetime | None = None
) -> None:
    await _reserve(store, org_id, CHILDREN, now)


async def reserve_specialist_slot(
    store: Store, org_id: UUID, now: datetime | None = None
) -> None:
    await _reserve(store, org_id, SPECIALISTS, now)


async def release_child_slot(store: Store, org_id: UUID) -> None:
    await store.counters.decrement(org_id, CHILDREN)


async def release_specialist_slot(store: Store, org_id: UUID) -> None:
    await store.counters.decrement(org_id, SPECIALISTS)


async def plan_usage(
    store: Store, org_id: UUID, now: datetime | None = None
) -> PlanUsage:
    now = now or utcnow()
    plan_id: str | None = None
    limits = PlanLimit(children=None, specialists=None)
    try:
        plan = await subscription_status(store, org_id, now)
        plan_id, limits = plan.plan_id, plan.limits
    except MembershipServiceError:
        snapshot = await store.billing.get(org_id)
        if snapshot is not None:
            plan_id = normalize_plan_id(snapshot.plan_id)
            limits = get_plan_limits(snapshot.plan_id) or limits

    return PlanUsage(
        plan_id=plan_id,
        children_limit=limits.children,
        specialists_limit=limits.specialists,
        children_count=await store.counters.get(org_id, CHILDREN),
        specialists_count=await store.counters.get(org_id, SPECIALISTS),
        can_add_child=await can_add_child(store, org_id, now),
        can_add_specialist=await can_add_specialist(store, org_id, now),
    )
