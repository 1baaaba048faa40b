from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Literal
from uuid import UUID, uuid4

IntentStatus = Literal["pending", "complete"]


@dataclass(frozen=True, slots=True)
class ChildOrgLink:
    """Whether (and to whom) a child is assigned inside one organization.

    The child is visible to the org only while ``assigned`` is true.  With
    no ``assigned_specialist_id`` the child is reachable by org admins only.
    """

    org_id: UUID
    child_id: str
    assigned: bool
    assigned_at: datetime
    assigned_specialist_id: str | None = None
    parent_uid: str | None = None


@dataclass(frozen=True, slots=True)
class ParentLink:
    """Lookup record: which orgs and children a parent is connected to."""

    parent_uid: str
    org_id: UUID
    org_name: str
    linked_at: datetime
    child_ids: tuple[str, ...] = ()

    def with_child(self, child_id: str) -> ParentLink:
        if child_id in self.child_ids:
            return self
        return replace(self, child_ids=(*self.child_ids, child_id))


@dataclass(frozen=True, slots=True)
class LinkIntent:
    """Saga marker written before a parent redemption touches any link.

    A pending intent older than a request means the redemption stopped
    part-way; the reconciliation pass re-applies it.
    """

    id: UUID
    org_id: UUID
    child_id: str
    parent_uid: str
    specialist_id: str
    invite_code: str
    created_at: datetime
    status: IntentStatus = "pending"
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *,
        org_id: UUID,
        child_id: str,
        parent_uid: str,
        specialist_id: str,
        invite_code: str,
        now: datetime,
    ) -> LinkIntent:
        return LinkIntent(
            id=uuid4(),
            org_id=org_id,
            child_id=child_id,
            parent_uid=parent_uid,
            specialist_id=specialist_id,
            invite_code=invite_code,
            created_at=now,
        )
