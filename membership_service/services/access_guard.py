"""Authorization decisions for organization and child resources.

Each check either returns (the caller's org role, where there is one) or
raises a domain error.  Denials are logged at WARNING and counted in
``access_denials_total`` so a spike in rejected requests is visible.

Super admin status never implies org membership: platform operators use
the /admin endpoints, not the org-scoped ones.
"""

from __future__ import annotations

import logging
from collections.abc import Collection
from uuid import UUID

from membership_service.core.errors import ForbiddenError, NotFoundError
from membership_service.core.metrics import ACCESS_DENIALS
from membership_service.models.principal import Principal
from membership_service.repos.store import Store

logger = logging.getLogger(__name__)


def require_super_admin(
    principal: Principal,
    *,
    allow_list: Collection[str] = (),
    allow_list_enabled: bool = False,
) -> None:
    if principal.super_admin:
        return
    email = principal.email.strip().lower()
    if allow_list_enabled and email and email in allow_list:
        logger.info("Super admin granted via allow-list: user=%s", principal.user_id)
        return

    ACCESS_DENIALS.labels(check="super_admin").inc()
    logger.warning("Access denied: user=%s is not a super admin", principal.user_id)
    raise ForbiddenError("Super admin access required")


async def require_org_member(store: Store, org_id: UUID, subject_id: str) -> str:
    membership = await store.memberships.get(org_id, subject_id)
    if membership is None or not membership.is_active:
        ACCESS_DENIALS.labels(check="org_member").inc()
        logger.warning(
            "Access denied: user=%s not an active member of org=%s",
            subject_id,
            org_id,
        )
        raise ForbiddenError("Not a member of this organization")
    return membership.role


async def require_org_admin(store: Store, org_id: UUID, subject_id: str) -> str:
    role = await require_org_member(store, org_id, subject_id)
    if role != "org_admin":
        ACCESS_DENIALS.labels(check="org_admin").inc()
        logger.warning(
            "Access denied: user=%s org_role=%s required=org_admin org=%s",
            subject_id,
            role,
            org_id,
        )
        raise ForbiddenError("Organization admin access required")
    return role


async def require_child_access(
    store: Store, org_id: UUID, child_id: str, subject_id: str
) -> str:
    """Admins reach every assigned child; specialists only their own."""
    role = await require_org_member(store, org_id, subject_id)

    link = await store.child_links.get(org_id, child_id)
    if link is None or not link.assigned:
        raise NotFoundError("Child not found in this organization")

    if role == "org_admin":
        return role
    if link.assigned_specialist_id is not None and link.assigned_specialist_id == subject_id:
        return role

    ACCESS_DENIALS.labels(check="child_access").inc()
    logger.warning(
        "Access denied: user=%s not assigned to child=%s org=%s",
        subject_id,
        child_id,
        org_id,
    )
    raise ForbiddenError("Not assigned to this child")
