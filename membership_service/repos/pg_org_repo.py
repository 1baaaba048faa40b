"""SQL implementations of OrgRepo and OrgMembershipRepo."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from membership_service.core.clock import from_epoch, to_epoch
from membership_service.db.tables import MembershipRow, OrganizationRow
from membership_service.models.organization import Membership, Organization


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        row = await self._session.get(OrganizationRow, org_id)
        if row is None:
            return None
        return _row_to_org(row)

    async def add(self, org: Organization) -> None:
        row = OrganizationRow(
            id=org.id,
            name=org.name,
            created_by=org.created_by,
            created_at=to_epoch(org.created_at),
            is_active=org.is_active,
            billing_plan=org.billing_plan,
            kind=org.kind,
            country=org.country,
        )
        self._session.add(row)
        await self._session.flush()

    async def list_all(self) -> list[Organization]:
        stmt = select(OrganizationRow).order_by(OrganizationRow.created_at)
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]

    async def find_by_creator(
        self, created_by: str, *, name: str | None = None, kind: str | None = None
    ) -> Organization | None:
        stmt = select(OrganizationRow).where(OrganizationRow.created_by == created_by)
        if name is not None:
            stmt = stmt.where(OrganizationRow.name == name)
        if kind is not None:
            stmt = stmt.where(OrganizationRow.kind == kind)
        row = (
            await self._session.execute(stmt.order_by(OrganizationRow.created_at).limit(1))
        ).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_org(row)

    async def set_active(self, org_id: UUID, is_active: bool) -> Organization | None:
        stmt = (
            update(OrganizationRow)
            .where(OrganizationRow.id == org_id)
            .values(is_active=is_active)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        self._session.expire_all()
        return await self.get_by_id(org_id)


class PgOrgMembershipRepo:
    """Satisfies the OrgMembershipRepo Protocol using SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID, user_id: str) -> Membership | None:
        row = await self._session.get(MembershipRow, (org_id, user_id))
        if row is None:
            return None
        return _row_to_membership(row)

    async def upsert(self, membership: Membership) -> Membership:
        row = MembershipRow(
            org_id=membership.org_id,
            user_id=membership.user_id,
            role=membership.role,
            status=membership.status,
            joined_at=to_epoch(membership.joined_at),
            email=membership.email,
            display_name=membership.display_name,
            removed_at=to_epoch(membership.removed_at) if membership.removed_at else None,
            removed_by=membership.removed_by,
        )
        await self._session.merge(row)
        await self._session.flush()
        return membership

    async def deactivate(
        self, org_id: UUID, user_id: str, actor_id: str, now: datetime
    ) -> Membership | None:
        stmt = (
            update(MembershipRow)
            .where(MembershipRow.org_id == org_id)
            .where(MembershipRow.user_id == user_id)
            .where(MembershipRow.status == "active")
            .values(status="inactive", removed_at=to_epoch(now), removed_by=actor_id)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            return None
        self._session.expire_all()
        return await self.get(org_id, user_id)

    async def list_active(self, org_id: UUID) -> list[Membership]:
        stmt = (
            select(MembershipRow)
            .where(MembershipRow.org_id == org_id)
            .where(MembershipRow.status == "active")
            .order_by(MembershipRow.joined_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]

    async def list_by_user(self, user_id: str) -> list[Membership]:
        stmt = (
            select(MembershipRow)
            .where(MembershipRow.user_id == user_id)
            .order_by(MembershipRow.joined_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_membership(r) for r in rows]


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        created_by=row.created_by,
        created_at=from_epoch(row.created_at),
        is_active=row.is_active,
        billing_plan=row.billing_plan,
        kind=row.kind,
        country=row.country,
    )


def _row_to_membership(row: MembershipRow) -> Membership:
    return Membership(
        org_id=row.org_id,
        user_id=row.user_id,
        role=row.role,
        status=row.status,
        joined_at=from_epoch(row.joined_at),
        email=row.email,
        display_name=row.display_name,
        removed_at=from_epoch(row.removed_at),
        removed_by=row.removed_by,
    )
