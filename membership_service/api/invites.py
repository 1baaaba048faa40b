"""Staff invite redemption.

``/join`` and ``/invites/accept`` run the same redemption; they differ
only in what they return.  Redeeming a code you already hold membership
for succeeds without using the code again.
"""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import AliasChoices, BaseModel, Field

from membership_service.api.dependencies import StoreDep, UserDep
from membership_service.services import invite_redeemer

router = APIRouter(tags=["invites"])

_CODE_ALIASES = AliasChoices("inviteCode", "code", "invite_code")


class RedeemIn(BaseModel):
    inviteCode: str = Field(min_length=1, max_length=128, validation_alias=_CODE_ALIASES)


class JoinOut(BaseModel):
    ok: bool = True
    orgId: str


class AcceptOut(BaseModel):
    ok: bool = True
    orgId: str
    role: str
    orgName: str
    message: str | None = None


@router.post("/join", response_model=JoinOut)
async def join(body: RedeemIn, principal: UserDep, store: StoreDep) -> JoinOut:
    result = await invite_redeemer.redeem_org_invite(
        store, body.inviteCode, principal.user_id, principal.email
    )
    return JoinOut(orgId=str(result.org_id))


@router.post("/invites/accept", response_model=AcceptOut)
async def accept_invite(
    body: RedeemIn, principal: UserDep, store: StoreDep
) -> AcceptOut:
    result = await invite_redeemer.redeem_org_invite(
        store, body.inviteCode, principal.user_id, principal.email
    )
    return AcceptOut(
        orgId=str(result.org_id),
        role=result.role,
        orgName=result.org_name,
        message="Already a member" if result.already_member else None,
    )
