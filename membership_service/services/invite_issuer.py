"""Mint staff and parent invite codes.

Issuing writes exactly one invite document and never touches
memberships.  Both kinds are stored with a create-if-absent precondition,
so an existing code (live or long expired) is never overwritten.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime
from uuid import UUID

from membership_service.core.clock import to_epoch, utcnow
from membership_service.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    OrganizationInactiveError,
)
from membership_service.core.metrics import INVITES_ISSUED
from membership_service.models.invite import OrgInvite, ParentInvite
from membership_service.models.organization import ORG_ROLES, normalize_role
from membership_service.repos.store import Store

logger = logging.getLogger(__name__)

STAFF_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits
STAFF_SUFFIX_LENGTH = 6

# No 0/O or 1/I/L: parents read these codes off a screen or a printout.
PARENT_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"
PARENT_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10

DEFAULT_EXPIRES_IN_DAYS = 30
MAX_EXPIRES_IN_DAYS = 365
MAX_INVITE_USES = 1000


def _random_chars(alphabet: str, length: int) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_staff_code(org_id: UUID, now: datetime) -> str:
    epoch_ms = to_epoch(now) * 1000 + now.microsecond // 1000
    suffix = _random_chars(STAFF_SUFFIX_ALPHABET, STAFF_SUFFIX_LENGTH)
    return f"{org_id}-{epoch_ms}-{suffix}"


def generate_parent_code() -> str:
    return _random_chars(PARENT_CODE_ALPHABET, PARENT_CODE_LENGTH)


def normalize_staff_code(code: str) -> str:
    return code.strip()


def normalize_parent_code(code: str) -> str:
    """Parent codes are case-insensitive."""
    return code.strip().upper()


async def issue_org_invite(
    store: Store,
    org_id: UUID,
    role: str,
    created_by: str,
    *,
    expires_in_days: int = DEFAULT_EXPIRES_IN_DAYS,
    max_uses: int | None = None,
    now: datetime | None = None,
) -> OrgInvite:
    """Create a staff invite granting ``role`` in ``org_id``.

    The caller is expected to have passed the org-admin check already.
    """
    role = normalize_role(role)
    if role not in ORG_ROLES:
        raise InvalidOperationError(f"Invalid role: {role}")
    if not 1 <= expires_in_days <= MAX_EXPIRES_IN_DAYS:
        raise InvalidOperationError(
            f"expiresInDays must be between 1 and {MAX_EXPIRES_IN_DAYS}"
        )
    if max_uses is not None and not 1 <= max_uses <= MAX_INVITE_USES:
        raise InvalidOperationError(f"maxUses must be between 1 and {MAX_INVITE_USES}")

    org = await store.orgs.get_by_id(org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    if not org.is_active:
        raise OrganizationInactiveError("Organization is inactive")

    now = now or utcnow()
    for _ in range(MAX_CODE_ATTEMPTS):
        invite = OrgInvite.new(
            code=generate_staff_code(org_id, now),
            org_id=org_id,
            role=role,
            created_by=created_by,
            now=now,
            expires_in_days=expires_in_days,
            max_uses=max_uses,
        )
        if await store.org_invites.add_if_absent(invite):
            INVITES_ISSUED.labels(kind="staff").inc()
            logger.info(
                "Staff invite issued: org=%s role=%s max_uses=%s by=%s",
                org_id,
                role,
                max_uses,
                created_by,
            )
            return invite

    logger.error("Staff invite code space exhausted for org=%s", org_id)
    raise ConflictError("Could not generate a unique invite code, please retry")


async def issue_parent_invite(
    store: Store,
    specialist_id: str,
    org_id: UUID,
    *,
    now: datetime | None = None,
) -> ParentInvite:
    membership = await store.memberships.get(org_id, specialist_id)
    if membership is None or not membership.is_active:
        raise ForbiddenError("Not a member of this organization")

    org = await store.orgs.get_by_id(org_id)
    if org is None:
        raise NotFoundError("Organization not found")
    if not org.is_active:
        raise OrganizationInactiveError("Organization is inactive")

    now = now or utcnow()
    for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
        invite = ParentInvite.new(
            code=generate_parent_code(),
            specialist_id=specialist_id,
            org_id=org_id,
            now=now,
        )
        if await store.parent_invites.add_if_absent(invite):
            INVITES_ISSUED.labels(kind="parent").inc()
            logger.info(
                "Parent invite issued: org=%s specialist=%s attempts=%d",
                org_id,
                specialist_id,
                attempt,
            )
            return invite
        logger.debug("Parent invite code collision, retrying (attempt %d)", attempt)

    logger.error(
        "Parent invite code collisions exhausted %d attempts: org=%s",
        MAX_CODE_ATTEMPTS,
        org_id,
    )
    raise ConflictError("Could not generate a unique invite code, please retry")
