"""Organization management endpoints.

Org context is resolved from the URL path and checked against the
caller's membership at request time.  Member and role changes are
org-admin only; nobody can change or remove their own membership here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from membership_service.api.dependencies import (
    OrgAdminDep,
    OrgMemberDep,
    StoreDep,
    UserDep,
)
from membership_service.models.organization import Membership
from membership_service.models.principal import Principal
from membership_service.services import invite_issuer, org_service, plan_limits

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orgs", tags=["orgs"])


def _org_id(principal: Principal) -> UUID:
    """org_id from an org-scoped Principal, or 500 if missing.

    The org-scoped dependencies always set it before an endpoint body
    runs; this keeps that contract explicit for the type checker.
    """
    if principal.org_id is None:
        raise HTTPException(status_code=500, detail="org context not resolved")
    return principal.org_id


# --- Pydantic schemas ---


class OrgCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    country: str | None = Field(default=None, max_length=100)


class OrgCreatedOut(BaseModel):
    ok: bool = True
    orgId: str
    name: str
    country: str | None
    role: str


class OrgOut(BaseModel):
    ok: bool = True
    id: str
    name: str
    kind: str
    country: str | None
    isActive: bool
    billingPlan: str | None
    createdAt: datetime
    role: str | None


class MemberOut(BaseModel):
    userId: str
    role: str
    email: str
    displayName: str
    joinedAt: datetime


class MembersOut(BaseModel):
    ok: bool = True
    members: list[MemberOut]


class AddMemberIn(BaseModel):
    userId: str = Field(min_length=1, max_length=128)
    role: str = "specialist"
    email: str = ""


class UpdateRoleIn(BaseModel):
    role: str


class RoleOut(BaseModel):
    ok: bool = True
    role: str


class OkOut(BaseModel):
    ok: bool = True


class PlanCheckOut(BaseModel):
    ok: bool
    code: str | None = None
    reason: str | None = None


class PlanOut(BaseModel):
    ok: bool = True
    planId: str | None
    childrenLimit: int | None
    specialistsLimit: int | None
    childrenCount: int
    specialistsCount: int
    canAddChild: PlanCheckOut
    canAddSpecialist: PlanCheckOut


class InviteCreateIn(BaseModel):
    role: str = "specialist"
    maxUses: int | None = Field(default=None, ge=1, le=invite_issuer.MAX_INVITE_USES)
    expiresInDays: int = Field(
        default=invite_issuer.DEFAULT_EXPIRES_IN_DAYS,
        ge=1,
        le=invite_issuer.MAX_EXPIRES_IN_DAYS,
    )


class InviteCreatedOut(BaseModel):
    ok: bool = True
    inviteCode: str
    expiresAt: datetime
    role: str
    maxUses: int | None


def _member_out(m: Membership) -> MemberOut:
    return MemberOut(
        userId=m.user_id,
        role=m.role,
        email=m.email,
        displayName=m.display_name,
        joinedAt=m.joined_at,
    )


# --- Endpoints ---


@router.post("", response_model=OrgCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreateIn, principal: UserDep, store: StoreDep
) -> OrgCreatedOut:
    """Create an organization. The creator becomes its org admin."""
    org = await org_service.create_organization(
        store,
        principal.user_id,
        body.name,
        email=principal.email,
        country=body.country,
    )
    return OrgCreatedOut(
        orgId=str(org.id), name=org.name, country=org.country, role="org_admin"
    )


@router.get("/{org_id}", response_model=OrgOut)
async def get_org(principal: OrgMemberDep, store: StoreDep) -> OrgOut:
    """Org details. Any active member can view."""
    org = await store.orgs.get_by_id(_org_id(principal))
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return OrgOut(
        id=str(org.id),
        name=org.name,
        kind=org.kind,
        country=org.country,
        isActive=org.is_active,
        billingPlan=org.billing_plan,
        createdAt=org.created_at,
        role=principal.org_role,
    )


@router.get("/{org_id}/members", response_model=MembersOut)
async def list_members(principal: OrgAdminDep, store: StoreDep) -> MembersOut:
    members = await store.memberships.list_active(_org_id(principal))
    return MembersOut(members=[_member_out(m) for m in members])


@router.post(
    "/{org_id}/members",
    response_model=MemberOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_member(
    body: AddMemberIn, principal: OrgAdminDep, store: StoreDep
) -> MemberOut:
    """Add a member directly. Counts against the plan's specialist cap."""
    membership = await org_service.add_member(
        store,
        _org_id(principal),
        body.userId.strip(),
        body.role,
        email=body.email.strip().lower(),
    )
    logger.info(
        "Member added via API: org=%s user=%s by=%s",
        membership.org_id,
        membership.user_id,
        principal.user_id,
    )
    return _member_out(membership)


@router.patch("/{org_id}/members/{user_id}", response_model=RoleOut)
async def update_member_role(
    user_id: str, body: UpdateRoleIn, principal: OrgAdminDep, store: StoreDep
) -> RoleOut:
    updated = await org_service.change_member_role(
        store, _org_id(principal), principal.user_id, user_id, body.role
    )
    return RoleOut(role=updated.role)


@router.delete("/{org_id}/members/{user_id}", response_model=OkOut)
async def remove_member(
    user_id: str, principal: OrgAdminDep, store: StoreDep
) -> OkOut:
    await org_service.remove_member(
        store, _org_id(principal), principal.user_id, user_id
    )
    return OkOut()


@router.get("/{org_id}/plan", response_model=PlanOut)
async def get_plan(principal: OrgMemberDep, store: StoreDep) -> PlanOut:
    usage = await plan_limits.plan_usage(store, _org_id(principal))
    return PlanOut(
        planId=usage.plan_id,
        childrenLimit=usage.children_limit,
        specialistsLimit=usage.specialists_limit,
        childrenCount=usage.children_count,
        specialistsCount=usage.specialists_count,
        canAddChild=PlanCheckOut(
            ok=usage.can_add_child.ok,
            code=usage.can_add_child.code,
            reason=usage.can_add_child.reason,
        ),
        canAddSpecialist=PlanCheckOut(
            ok=usage.can_add_specialist.ok,
            code=usage.can_add_specialist.code,
            reason=usage.can_add_specialist.reason,
        ),
    )


@router.post("/{org_id}/invites", response_model=InviteCreatedOut)
async def create_invite(
    body: InviteCreateIn,
    principal: OrgAdminDep,
    store: StoreDep,
) -> InviteCreatedOut:
    invite = await invite_issuer.issue_org_invite(
        store,
        _org_id(principal),
        body.role,
        principal.user_id,
        expires_in_days=body.expiresInDays,
        max_uses=body.maxUses,
    )
    return InviteCreatedOut(
        inviteCode=invite.code,
        expiresAt=invite.expires_at,
        role=invite.role,
        maxUses=invite.max_uses,
    )
