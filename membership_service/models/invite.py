from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from uuid import UUID

PARENT_INVITE_TTL_DAYS = 365


@dataclass(frozen=True, slots=True)
class OrgInvite:
    """Staff invite granting an organization role.

    Write-once, then only ``used_count`` moves (monotonically).  Never
    deleted; an expired or exhausted invite is simply dead.
    """

    code: str
    org_id: UUID
    role: str
    max_uses: int | None
    used_count: int
    expires_at: datetime
    created_by: str
    created_at: datetime

    @staticmethod
    def new(
        *,
        code: str,
        org_id: UUID,
        role: str,
        created_by: str,
        now: datetime,
        expires_in_days: int,
        max_uses: int | None = None,
    ) -> OrgInvite:
        return OrgInvite(
            code=code,
            org_id=org_id,
            role=role,
            max_uses=max_uses,
            used_count=0,
            expires_at=now + timedelta(days=expires_in_days),
            created_by=created_by,
            created_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.used_count >= self.max_uses


@dataclass(frozen=True, slots=True)
class ParentInvite:
    """Specialist-issued code a parent uses to link a child.

    Unlimited uses; ``used_count`` is kept for audit only.
    """

    code: str
    specialist_id: str
    org_id: UUID
    used_count: int
    expires_at: datetime
    created_at: datetime
    max_uses: int | None = None

    @staticmethod
    def new(
        *, code: str, specialist_id: str, org_id: UUID, now: datetime
    ) -> ParentInvite:
        return ParentInvite(
            code=code,
            specialist_id=specialist_id,
            org_id=org_id,
            used_count=0,
            expires_at=now + timedelta(days=PARENT_INVITE_TTL_DAYS),
            created_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class ConsumeOutcome(str, Enum):
    """Result of the atomic check-and-increment on a staff invite."""

    CONSUMED = "consumed"
    ALREADY_REDEEMED = "already_redeemed"
    MISSING = "missing"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
