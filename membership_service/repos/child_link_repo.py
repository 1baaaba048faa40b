from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol
from uuid import UUID

from membership_service.models.child import ChildOrgLink, LinkIntent, ParentLink


class ChildOrgLinkRepo(Protocol):
    async def get(self, org_id: UUID, child_id: str) -> ChildOrgLink | None: ...
    async def put(self, link: ChildOrgLink) -> None: ...
    async def list_assigned(
        self, org_id: UUID, *, specialist_id: str | None = None
    ) -> list[ChildOrgLink]: ...
    async def count_assigned(self, org_id: UUID) -> int: ...


class ParentLinkRepo(Protocol):
    async def get(self, parent_uid: str, org_id: UUID) -> ParentLink | None: ...
    async def link(
        self,
        parent_uid: str,
        org_id: UUID,
        org_name: str,
        child_id: str,
        now: datetime,
    ) -> ParentLink: ...
    async def list_by_parent(self, parent_uid: str) -> list[ParentLink]: ...


class LinkIntentRepo(Protocol):
    async def add(self, intent: LinkIntent) -> None: ...
    async def mark_complete(self, intent_id: UUID, now: datetime) -> None: ...
    async def list_pending(self) -> list[LinkIntent]: ...


class InMemoryChildOrgLinkRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[UUID, str], ChildOrgLink] = {}

    async def get(self, org_id: UUID, child_id: str) -> ChildOrgLink | None:
        return self._store.get((org_id, child_id))

    async def put(self, link: ChildOrgLink) -> None:
        # Overwrite, not merge: re-redemption re-parents and re-assigns.
        self._store[(link.org_id, link.child_id)] = link

    async def list_assigned(
        self, org_id: UUID, *, specialist_id: str | None = None
    ) -> list[ChildOrgLink]:
        links = [
            link
            for link in self._store.values()
            if link.org_id == org_id and link.assigned
        ]
        if specialist_id is not None:
            links = [l for l in links if l.assigned_specialist_id == specialist_id]
        return sorted(links, key=lambda l: l.assigned_at)

    async def count_assigned(self, org_id: UUID) -> int:
        return sum(1 for l in self._store.values() if l.org_id == org_id and l.assigned)


class InMemoryParentLinkRepo:
    def __init__(self) -> None:
        self._store: dict[tuple[str, UUID], ParentLink] = {}

    async def get(self, parent_uid: str, org_id: UUID) -> ParentLink | None:
        return self._store.get((parent_uid, org_id))

    async def link(
        self,
        parent_uid: str,
        org_id: UUID,
        org_name: str,
        child_id: str,
        now: datetime,
    ) -> ParentLink:
        key = (parent_uid, org_id)
        existing = self._store.get(key)
        if existing is None:
            existing = ParentLink(
                parent_uid=parent_uid, org_id=org_id, org_name=org_name, linked_at=now
            )
        updated = existing.with_child(child_id)
        self._store[key] = updated
        return updated

    async def list_by_parent(self, parent_uid: str) -> list[ParentLink]:
        links = [l for l in self._store.values() if l.parent_uid == parent_uid]
        return sorted(links, key=lambda l: l.linked_at)


class InMemoryLinkIntentRepo:
    def __init__(self) -> None:
        self._store: dict[UUID, LinkIntent] = {}

    async def add(self, intent: LinkIntent) -> None:
        self._store[intent.id] = intent

    async def mark_complete(self, intent_id: UUID, now: datetime) -> None:
        intent = self._store.get(intent_id)
        if intent is None:
            raise KeyError("link intent not found")
        self._store[intent_id] = replace(intent, status="complete", completed_at=now)

    async def list_pending(self) -> list[LinkIntent]:
        pending = [i for i in self._store.values() if i.status == "pending"]
        return sorted(pending, key=lambda i: i.created_at)
