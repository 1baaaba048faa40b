"""Organization lifecycle and direct membership management.

Role changes and removals refuse to act on the caller's own membership,
which keeps an organization from losing its last admin through a
self-demotion.  That check runs before any store read.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from uuid import UUID

from membership_service.core.clock import utcnow
from membership_service.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    OrganizationInactiveError,
)
from membership_service.models.billing import CHILDREN, SPECIALISTS
from membership_service.models.child import ChildOrgLink
from membership_service.models.organization import (
    ORG_ROLES,
    Membership,
    Organization,
    normalize_role,
)
from membership_service.repos.store import Store
from membership_service.services import plan_limits

logger = logging.getLogger(__name__)

PERSONAL_ORG_NAME = "My Practice"


def _validated_role(role: str) -> str:
    role = normalize_role(role)
    if role not in ORG_ROLES:
        raise InvalidOperationError(f"Invalid role: {role}")
    return role


async def get_active_org(store: Store, org_id: UUID) -> Organization:
    org = await store.orgs.get_by_id(org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    if not org.is_active:
        raise OrganizationInactiveError("Organization is inactive")
    return org


async def create_organization(
    store: Store,
    creator_id: str,
    name: str,
    *,
    email: str = "",
    country: str | None = None,
    kind: str = "practice",
    now: datetime | None = None,
) -> Organization:
    name = name.strip()
    if not name:
        raise InvalidOperationError("Organization name is required")
    if await store.orgs.find_by_creator(creator_id, name=name) is not None:
        raise InvalidOperationError("You already have an organization with this name")

    now = now or utcnow()
    org = Organization.new(
        name=name, created_by=creator_id, now=now, kind=kind, country=country
    )
    await store.orgs.add(org)
    await store.memberships.upsert(
        Membership.active(
            org_id=org.id, user_id=creator_id, role="org_admin", now=now, email=email
        )
    )
    await store.counters.set(org.id, SPECIALISTS, 1)
    await store.counters.set(org.id, CHILDREN, 0)
    logger.info(
        "Organization created: org=%s kind=%s by=%s", org.id, org.kind, creator_id
    )
    return org


async def find_or_create_personal_org(
    store: Store, user_id: str, *, email: str = "", now: datetime | None = None
) -> Organization:
    existing = await store.orgs.find_by_creator(user_id, kind="personal")
    if existing is not None:
        return existing
    return await create_organization(
        store, user_id, PERSONAL_ORG_NAME, email=email, kind="personal", now=now
    )


async def resolve_parent_invite_org(
    store: Store,
    user_id: str,
    *,
    org_id: UUID | None = None,
    email: str = "",
    now: datetime | None = None,
) -> UUID:
    """Pick the organization a specialist's parent invite belongs to.

    An explicit ``org_id`` must be one the caller is active in.  Otherwise
    the caller's earliest active membership wins, and a caller with none
    gets a personal practice.
    """
    if org_id is not None:
        membership = await store.memberships.get(org_id, user_id)
        if membership is None or not membership.is_active:
            raise ForbiddenError("Not a member of this organization")
        return org_id

    for membership in await store.memberships.list_by_user(user_id):
        if not membership.is_active:
            continue
        org = await store.orgs.get_by_id(membership.org_id)
        if org is not None and org.is_active:
            return org.id

    org = await find_or_create_personal_org(store, user_id, email=email, now=now)
    return org.id


async def add_member(
    store: Store,
    org_id: UUID,
    user_id: str,
    role: str,
    *,
    email: str = "",
    now: datetime | None = None,
) -> Membership:
    role = _validated_role(role)
    await get_active_org(store, org_id)

    existing = await store.memberships.get(org_id, user_id)
    if existing is not None and existing.is_active:
        raise ConflictError("User is already a member of this organization")

    now = now or utcnow()
    await plan_limits.reserve_specialist_slot(store, org_id, now)
    if existing is None:
        membership = Membership.active(
            org_id=org_id, user_id=user_id, role=role, now=now, email=email
        )
    else:
        membership = existing.reactivated(role=role, now=now, email=email)
    try:
        await store.memberships.upsert(membership)
    except Exception:
        logger.exception("Member add failed, releasing slot: org=%s user=%s", org_id, user_id)
        await plan_limits.release_specialist_slot(store, org_id)
        raise

    logger.info("Member added: org=%s user=%s role=%s", org_id, user_id, role)
    return membership


async def change_member_role(
    store: Store,
    org_id: UUID,
    actor_id: str,
    target_id: str,
    role: str,
) -> Membership:
    if actor_id == target_id:
        raise InvalidOperationError("You cannot change your own role")
    role = _validated_role(role)

    existing = await store.memberships.get(org_id, target_id)
    if existing is None or not existing.is_active:
        raise NotFoundError("Member not found")

    updated = await store.memberships.upsert(replace(existing, role=role))
    logger.info(
        "Member role changed: org=%s user=%s %s -> %s by=%s",
        org_id,
        target_id,
        existing.role,
        role,
        actor_id,
    )
    return updated


async def remove_member(
    store: Store,
    org_id: UUID,
    actor_id: str,
    target_id: str,
    *,
    now: datetime | None = None,
) -> Membership:
    if actor_id == target_id:
        raise InvalidOperationError("You cannot remove yourself")

    removed = await store.memberships.deactivate(
        org_id, target_id, actor_id, now or utcnow()
    )
    if removed is None:
        raise NotFoundError("Member not found")
    await plan_limits.release_specialist_slot(store, org_id)
    logger.info("Member removed: org=%s user=%s by=%s", org_id, target_id, actor_id)
    return removed


async def deactivate_organization(store: Store, org_id: UUID) -> Organization:
    org = await store.orgs.set_active(org_id, False)
    if org is None:
        raise NotFoundError("Organization not found")
    logger.info("Organization deactivated: org=%s", org_id)
    return org


# ---------------------------------------------------------------------------
# Children (direct admin operations)
# ---------------------------------------------------------------------------


async def _require_assignable_specialist(
    store: Store, org_id: UUID, specialist_id: str | None
) -> None:
    if specialist_id is None:
        return
    membership = await store.memberships.get(org_id, specialist_id)
    if membership is None or not membership.is_active:
        raise NotFoundError("Specialist not found")


async def add_child(
    store: Store,
    org_id: UUID,
    child_id: str,
    *,
    assigned_specialist_id: str | None = None,
    now: datetime | None = None,
) -> ChildOrgLink:
    child_id = child_id.strip()
    if not child_id:
        raise InvalidOperationError("childId is required")
    await get_active_org(store, org_id)
    await _require_assignable_specialist(store, org_id, assigned_specialist_id)

    existing = await store.child_links.get(org_id, child_id)
    if existing is not None and existing.assigned:
        raise ConflictError("Child is already linked to this organization")

    now = now or utcnow()
    await plan_limits.reserve_child_slot(store, org_id, now)
    link = ChildOrgLink(
        org_id=org_id,
        child_id=child_id,
        assigned=True,
        assigned_at=now,
        assigned_specialist_id=assigned_specialist_id,
        parent_uid=existing.parent_uid if existing else None,
    )
    try:
        await store.child_links.put(link)
    except Exception:
        logger.exception("Child link failed, releasing slot: org=%s child=%s", org_id, child_id)
        await plan_limits.release_child_slot(store, org_id)
        raise
    logger.info("Child linked: org=%s child=%s", org_id, child_id)
    return link


async def reassign_child(
    store: Store,
    org_id: UUID,
    child_id: str,
    assigned_specialist_id: str | None,
    *,
    now: datetime | None = None,
) -> ChildOrgLink:
    existing = await store.child_links.get(org_id, child_id)
    if existing is None or not existing.assigned:
        raise NotFoundError("Child not found in this organization")
    await _require_assignable_specialist(store, org_id, assigned_specialist_id)

    link = replace(
        existing,
        assigned_specialist_id=assigned_specialist_id,
        assigned_at=now or utcnow(),
    )
    await store.child_links.put(link)
    logger.info(
        "Child reassigned: org=%s child=%s specialist=%s",
        org_id,
        child_id,
        assigned_specialist_id,
    )
    return link


async def unassign_child(
    store: Store, org_id: UUID, child_id: str, *, now: datetime | None = None
) -> ChildOrgLink:
    existing = await store.child_links.get(org_id, child_id)
    if existing is None or not existing.assigned:
        raise NotFoundError("Child not found in this organization")

    link = replace(existing, assigned=False, assigned_specialist_id=None)
    await store.child_links.put(link)
    await plan_limits.release_child_slot(store, org_id)
    logger.info("Child unassigned: org=%s child=%s", org_id, child_id)
    return link
