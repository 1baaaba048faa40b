from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter
from pydantic import BaseModel

from membership_service.api.dependencies import StoreDep, SuperAdminDep
from membership_service.services import invite_redeemer, org_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class AdminOrgOut(BaseModel):
    id: str
    name: str
    kind: str
    isActive: bool
    createdBy: str
    createdAt: datetime


class AdminOrgsOut(BaseModel):
    ok: bool = True
    orgs: list[AdminOrgOut]


class OkOut(BaseModel):
    ok: bool = True


class ReconcileOut(BaseModel):
    ok: bool = True
    reconciled: int


@router.get("/orgs", response_model=AdminOrgsOut)
async def admin_list_orgs(principal: SuperAdminDep, store: StoreDep) -> AdminOrgsOut:
    logger.info("Admin org list requested by user=%s", principal.user_id)
    orgs = await store.orgs.list_all()
    return AdminOrgsOut(
        orgs=[
            AdminOrgOut(
                id=str(o.id),
                name=o.name,
                kind=o.kind,
                isActive=o.is_active,
                createdBy=o.created_by,
                createdAt=o.created_at,
            )
            for o in orgs
        ]
    )


@router.post("/orgs/{org_id}/deactivate", response_model=OkOut)
async def admin_deactivate_org(
    org_id: UUID, principal: SuperAdminDep, store: StoreDep
) -> OkOut:
    await org_service.deactivate_organization(store, org_id)
    logger.info("Org %s deactivated by super admin=%s", org_id, principal.user_id)
    return OkOut()


@router.post("/reconcile/child-links", response_model=ReconcileOut)
async def admin_reconcile_child_links(
    principal: SuperAdminDep, store: StoreDep
) -> ReconcileOut:
    reconciled = await invite_redeemer.reconcile_pending_links(store)
    return ReconcileOut(reconciled=reconciled)
