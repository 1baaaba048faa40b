"""Child links inside an organization.

Only the link is managed here (is the child visible to the org, and to
which specialist); the child's record itself lives elsewhere.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, status
from pydantic import AliasChoices, BaseModel, Field

from membership_service.api.dependencies import (
    ChildAccessDep,
    OrgAdminDep,
    OrgMemberDep,
    StoreDep,
)
from membership_service.core.errors import NotFoundError
from membership_service.models.child import ChildOrgLink
from membership_service.services import org_service

router = APIRouter(prefix="/orgs/{org_id}/children", tags=["children"])

_SPECIALIST_ALIASES = AliasChoices("assignedSpecialistId", "assigned_specialist_id")


class ChildLinkOut(BaseModel):
    orgId: str
    childId: str
    assigned: bool
    assignedSpecialistId: str | None
    parentUid: str | None
    assignedAt: datetime


class ChildrenOut(BaseModel):
    ok: bool = True
    children: list[ChildLinkOut]


class AddChildIn(BaseModel):
    childId: str = Field(
        min_length=1, max_length=128, validation_alias=AliasChoices("childId", "child_id")
    )
    assignedSpecialistId: str | None = Field(
        default=None, max_length=128, validation_alias=_SPECIALIST_ALIASES
    )


class ReassignIn(BaseModel):
    assignedSpecialistId: str | None = Field(
        default=None, max_length=128, validation_alias=_SPECIALIST_ALIASES
    )


class OkOut(BaseModel):
    ok: bool = True


def _link_out(link: ChildOrgLink) -> ChildLinkOut:
    return ChildLinkOut(
        orgId=str(link.org_id),
        childId=link.child_id,
        assigned=link.assigned,
        assignedSpecialistId=link.assigned_specialist_id,
        parentUid=link.parent_uid,
        assignedAt=link.assigned_at,
    )


@router.get("", response_model=ChildrenOut)
async def list_children(
    org_id: UUID, principal: OrgMemberDep, store: StoreDep
) -> ChildrenOut:
    """Admins see every assigned child; specialists see their own."""
    specialist_id = None if principal.is_org_admin else principal.user_id
    links = await store.child_links.list_assigned(org_id, specialist_id=specialist_id)
    return ChildrenOut(children=[_link_out(l) for l in links])


@router.post("", response_model=ChildLinkOut, status_code=status.HTTP_201_CREATED)
async def add_child(
    org_id: UUID, body: AddChildIn, principal: OrgAdminDep, store: StoreDep
) -> ChildLinkOut:
    link = await org_service.add_child(
        store, org_id, body.childId, assigned_specialist_id=body.assignedSpecialistId
    )
    return _link_out(link)


@router.get("/{child_id}", response_model=ChildLinkOut)
async def get_child(
    org_id: UUID, child_id: str, principal: ChildAccessDep, store: StoreDep
) -> ChildLinkOut:
    link = await store.child_links.get(org_id, child_id)
    if link is None:
        raise NotFoundError("Child not found in this organization")
    return _link_out(link)


@router.patch("/{child_id}", response_model=ChildLinkOut)
async def reassign_child(
    org_id: UUID,
    child_id: str,
    body: ReassignIn,
    principal: OrgAdminDep,
    store: StoreDep,
) -> ChildLinkOut:
    link = await org_service.reassign_child(
        store, org_id, child_id, body.assignedSpecialistId
    )
    return _link_out(link)


@router.delete("/{child_id}", response_model=OkOut)
async def unassign_child(
    org_id: UUID, child_id: str, principal: OrgAdminDep, store: StoreDep
) -> OkOut:
    await org_service.unassign_child(store, org_id, child_id)
    return OkOut()
