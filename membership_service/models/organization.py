from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Literal
from uuid import UUID, uuid4

OrgRole = Literal["org_admin", "specialist"]
MembershipStatus = Literal["active", "inactive"]
OrgKind = Literal["practice", "personal"]

ORG_ROLES: tuple[str, ...] = ("org_admin", "specialist")


def normalize_role(role: str) -> str:
    """Map request-level role names onto stored roles ("admin" -> "org_admin")."""
    role = role.strip().lower()
    if role == "admin":
        return "org_admin"
    return role


@dataclass(frozen=True, slots=True)
class Organization:
    id: UUID
    name: str
    created_by: str
    created_at: datetime
    is_active: bool = True
    billing_plan: str | None = None
    kind: OrgKind = "practice"
    country: str | None = None

    @staticmethod
    def new(
        *,
        name: str,
        created_by: str,
        now: datetime,
        kind: OrgKind = "practice",
        country: str | None = None,
    ) -> Organization:
        return Organization(
            id=uuid4(),
            name=name,
            created_by=created_by,
            created_at=now,
            kind=kind,
            country=country,
        )


@dataclass(frozen=True, slots=True)
class Membership:
    """One subject's standing in one organization.

    Keyed by (org_id, user_id); there is never more than one document per
    key.  Removal flips status to inactive and stamps removed_at/by.
    """

    org_id: UUID
    user_id: str
    role: OrgRole
    status: MembershipStatus
    joined_at: datetime
    email: str = ""
    display_name: str = ""
    removed_at: datetime | None = None
    removed_by: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @staticmethod
    def active(
        *,
        org_id: UUID,
        user_id: str,
        role: OrgRole,
        now: datetime,
        email: str = "",
    ) -> Membership:
        return Membership(
            org_id=org_id,
            user_id=user_id,
            role=role,
            status="active",
            joined_at=now,
            email=email,
            display_name=display_name_from_email(email),
        )

    def reactivated(self, *, role: OrgRole, now: datetime, email: str = "") -> Membership:
        return replace(
            self,
            role=role,
            status="active",
            joined_at=now,
            email=email or self.email,
            display_name=self.display_name or display_name_from_email(email),
            removed_at=None,
            removed_by=None,
        )


def display_name_from_email(email: str) -> str:
    local = email.split("@")[0].strip()
    return local or "Specialist"
