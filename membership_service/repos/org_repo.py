from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from membership_service.models.organization import Organization


class OrgRepo(Protocol):
    async def get_by_id(self, org_id: UUID) -> Organization | None: ...
    async def add(self, org: Organization) -> None: ...
    async def list_all(self) -> list[Organization]: ...
    async def find_by_creator(
        self, created_by: str, *, name: str | None = None, kind: str | None = None
    ) -> Organization | None: ...
    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None: ...


class InMemoryOrgRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Organization] = {}

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        return self._by_id.get(org_id)

    async def add(self, org: Organization) -> None:
        if org.id in self._by_id:
            raise ValueError("organization already exists")
        self._by_id[org.id] = org

    async def list_all(self) -> list[Organization]:
        return sorted(self._by_id.values(), key=lambda o: o.created_at)

    async def find_by_creator(
        self, created_by: str, *, name: str | None = None, kind: str | None = None
    ) -> Organization | None:
        for org in self._by_id.values():
            if org.created_by != created_by:
                continue
            if name is not None and org.name != name:
                continue
            if kind is not None and org.kind != kind:
                continue
            return org
        return None

    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None:
        org = self._by_id.get(org_id)
        if org is None:
            return None
        updated = replace(org, is_active=is_active)
        self._by_id[org_id] = updated
        return updated
