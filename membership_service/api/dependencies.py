from __future__ import annotations

import logging
from dataclasses import replace
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from membership_service.core.config import SETTINGS
from membership_service.core.errors import UnauthorizedError
from membership_service.core.logging import user_id_var
from membership_service.models.principal import Principal
from membership_service.repos.store import Store, get_store
from membership_service.services import access_guard, token_service

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

StoreDep = Annotated[Store, Depends(get_store)]


async def require_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> Principal:
    """Verify the bearer ID token. Returns a Principal.

    Used as a FastAPI dependency on every protected endpoint.  Async so the
    user id it puts in the logging context is visible to the endpoint.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    try:
        claims = token_service.verify_id_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise UnauthorizedError("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise UnauthorizedError("Invalid token") from None

    principal = Principal(
        user_id=claims["sub"],
        email=str(claims.get("email") or "").strip().lower(),
        super_admin=claims.get("super_admin") is True,
    )
    user_id_var.set(principal.user_id)
    logger.debug("Token verified for user=%s", principal.user_id)
    return principal


UserDep = Annotated[Principal, Depends(require_user)]


def require_super_admin(principal: UserDep) -> Principal:
    access_guard.require_super_admin(
        principal,
        allow_list=SETTINGS.super_admin_allow_list,
        allow_list_enabled=SETTINGS.allow_list_enabled,
    )
    return principal


# ---------------------------------------------------------------------------
# Org-scoped access guards
# ---------------------------------------------------------------------------


async def resolve_org_member(
    org_id: UUID, principal: UserDep, store: StoreDep
) -> Principal:
    """Resolve org context from the URL path.

    Returns the Principal enriched with org_id and org_role; 403 when the
    caller has no active membership in the org.

    Usage::

        @router.get("/orgs/{org_id}")
        async def get_org(principal: Annotated[Principal, Depends(resolve_org_member)]):
            ...
    """
    role = await access_guard.require_org_member(store, org_id, principal.user_id)
    return replace(principal, org_id=org_id, org_role=role)


async def require_org_admin(
    org_id: UUID, principal: UserDep, store: StoreDep
) -> Principal:
    role = await access_guard.require_org_admin(store, org_id, principal.user_id)
    return replace(principal, org_id=org_id, org_role=role)


async def require_child_access(
    org_id: UUID, child_id: str, principal: UserDep, store: StoreDep
) -> Principal:
    role = await access_guard.require_child_access(
        store, org_id, child_id, principal.user_id
    )
    return replace(principal, org_id=org_id, org_role=role)


OrgMemberDep = Annotated[Principal, Depends(resolve_org_member)]
OrgAdminDep = Annotated[Principal, Depends(require_org_admin)]
ChildAccessDep = Annotated[Principal, Depends(require_child_access)]
SuperAdminDep = Annotated[Principal, Depends(require_super_admin)]
