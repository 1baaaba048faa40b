"""Parent invite codes: specialists issue them, parents redeem them.

A code links one of the parent's children to the issuing specialist
inside the specialist's organization.  Codes are case-insensitive and
carry no use limit.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter
from pydantic import AliasChoices, BaseModel, Field

from membership_service.api.dependencies import StoreDep, UserDep
from membership_service.services import invite_issuer, invite_redeemer, org_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["parent-invites"])

_CODE_ALIASES = AliasChoices("inviteCode", "code", "invite_code")


class SpecialistInviteIn(BaseModel):
    orgId: UUID | None = Field(default=None, validation_alias=AliasChoices("orgId", "org_id"))


class SpecialistInviteOut(BaseModel):
    ok: bool = True
    inviteCode: str
    expiresAt: datetime
    orgId: str


class ValidateIn(BaseModel):
    inviteCode: str = Field(min_length=1, max_length=32, validation_alias=_CODE_ALIASES)


class ValidateOut(BaseModel):
    ok: bool = True
    valid: bool = True
    specialistId: str
    specialistName: str
    orgId: str
    orgName: str


class UseIn(BaseModel):
    inviteCode: str = Field(min_length=1, max_length=32, validation_alias=_CODE_ALIASES)
    childId: str = Field(
        min_length=1, max_length=128, validation_alias=AliasChoices("childId", "child_id")
    )


class UseOut(BaseModel):
    ok: bool = True
    orgId: str
    childId: str
    parentUid: str
    message: str


@router.post("/specialists/invites", response_model=SpecialistInviteOut)
async def create_parent_invite(
    principal: UserDep, store: StoreDep, body: SpecialistInviteIn | None = None
) -> SpecialistInviteOut:
    """Issue a parent code in the given org, the caller's org, or a personal one."""
    org_id = await org_service.resolve_parent_invite_org(
        store,
        principal.user_id,
        org_id=body.orgId if body else None,
        email=principal.email,
    )
    invite = await invite_issuer.issue_parent_invite(store, principal.user_id, org_id)
    return SpecialistInviteOut(
        inviteCode=invite.code, expiresAt=invite.expires_at, orgId=str(invite.org_id)
    )


@router.post("/api/org/parent-invites/validate", response_model=ValidateOut)
async def validate_parent_invite(
    body: ValidateIn, principal: UserDep, store: StoreDep
) -> ValidateOut:
    preview = await invite_redeemer.validate_parent_invite(store, body.inviteCode)
    return ValidateOut(
        specialistId=preview.specialist_id,
        specialistName=preview.specialist_name,
        orgId=str(preview.org_id),
        orgName=preview.org_name,
    )


@router.post("/api/org/parent-invites/use", response_model=UseOut)
@router.post("/api/org/parent-invites/accept", response_model=UseOut)
async def use_parent_invite(body: UseIn, principal: UserDep, store: StoreDep) -> UseOut:
    result = await invite_redeemer.redeem_parent_invite(
        store, body.inviteCode, body.childId, principal.user_id
    )
    return UseOut(
        orgId=str(result.org_id),
        childId=result.child_id,
        parentUid=result.parent_uid,
        message=f"Child linked to {result.org_name}",
    )
