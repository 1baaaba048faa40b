from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from membership_service.models.organization import Membership


class OrgMembershipRepo(Protocol):
    async def get(self, org_id: UUID, user_id: str) -> Membership | None: ...
    async def upsert(self, membership: Membership) -> Membership: ...
    async def deactivate(
        self, org_id: UUID, user_id: str, actor_id: str, now: datetime
    ) -> Membership | None: ...
    async def list_active(self, org_id: UUID) -> list[Membership]: ...
    async def list_by_user(self, user_id: str) -> list[Membership]: ...


class InMemoryOrgMembershipRepo:
    """Membership documents keyed by (org_id, user_id).

    Every method reads and writes a single key with no await in between,
    which is the per-document atomicity the services rely on.
    """

    def __init__(self) -> None:
        self._store: dict[tuple[UUID, str], Membership] = {}

    async def get(self, org_id: UUID, user_id: str) -> Membership | None:
        return self._store.get((org_id, user_id))

    async def upsert(self, membership: Membership) -> Membership:
        self._store[(membership.org_id, membership.user_id)] = membership
        return membership

    async def deactivate(
        self, org_id: UUID, user_id: str, actor_id: str, now: datetime
    ) -> Membership | None:
        key = (org_id, user_id)
        existing = self._store.get(key)
        if existing is None or not existing.is_active:
            return None
        updated = replace(existing, status="inactive", removed_at=now, removed_by=actor_id)
        self._store[key] = updated
        return updated

    async def list_active(self, org_id: UUID) -> list[Membership]:
        members = [m for m in self._store.values() if m.org_id == org_id and m.is_active]
        return sorted(members, key=lambda m: m.joined_at)

    async def list_by_user(self, user_id: str) -> list[Membership]:
        members = [m for m in self._store.values() if m.user_id == user_id]
        return sorted(members, key=lambda m: m.joined_at)
