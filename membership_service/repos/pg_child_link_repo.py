"""SQL implementations of the child, parent-link and link-intent repos."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from membership_service.core.clock import from_epoch, to_epoch
from membership_service.db.tables import ChildOrgLinkRow, LinkIntentRow, ParentLinkRow
from membership_service.models.child import ChildOrgLink, LinkIntent, ParentLink


class PgChildOrgLinkRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID, child_id: str) -> ChildOrgLink | None:
        row = await self._session.get(
            ChildOrgLinkRow, (org_id, child_id), populate_existing=True
        )
        if row is None:
            return None
        return _row_to_child_link(row)

    async def put(self, link: ChildOrgLink) -> None:
        row = ChildOrgLinkRow(
            org_id=link.org_id,
            child_id=link.child_id,
            assigned=link.assigned,
            assigned_at=to_epoch(link.assigned_at),
            assigned_specialist_id=link.assigned_specialist_id,
            parent_uid=link.parent_uid,
        )
        await self._session.merge(row)
        await self._session.flush()

    async def list_assigned(
        self, org_id: UUID, *, specialist_id: str | None = None
    ) -> list[ChildOrgLink]:
        stmt = (
            select(ChildOrgLinkRow)
            .where(ChildOrgLinkRow.org_id == org_id)
            .where(ChildOrgLinkRow.assigned.is_(True))
        )
        if specialist_id is not None:
            stmt = stmt.where(ChildOrgLinkRow.assigned_specialist_id == specialist_id)
        rows = (
            await self._session.execute(stmt.order_by(ChildOrgLinkRow.assigned_at))
        ).scalars().all()
        return [_row_to_child_link(r) for r in rows]

    async def count_assigned(self, org_id: UUID) -> int:
        stmt = (
            select(func.count())
            .select_from(ChildOrgLinkRow)
            .where(ChildOrgLinkRow.org_id == org_id)
            .where(ChildOrgLinkRow.assigned.is_(True))
        )
        return int((await self._session.execute(stmt)).scalar_one())


class PgParentLinkRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, parent_uid: str, org_id: UUID) -> ParentLink | None:
        row = await self._session.get(
            ParentLinkRow, (parent_uid, org_id), populate_existing=True
        )
        if row is None:
            return None
        return _row_to_parent_link(row)

    async def link(
        self,
        parent_uid: str,
        org_id: UUID,
        org_name: str,
        child_id: str,
        now: datetime,
    ) -> ParentLink:
        row = await self._session.get(ParentLinkRow, (parent_uid, org_id))
        if row is None:
            row = ParentLinkRow(
                parent_uid=parent_uid,
                org_id=org_id,
                org_name=org_name,
                linked_at=to_epoch(now),
                child_ids=[child_id],
            )
            self._session.add(row)
        elif child_id not in row.child_ids:
            # JSON columns only track reassignment, not in-place mutation.
            row.child_ids = [*row.child_ids, child_id]
        await self._session.flush()
        return _row_to_parent_link(row)

    async def list_by_parent(self, parent_uid: str) -> list[ParentLink]:
        stmt = (
            select(ParentLinkRow)
            .where(ParentLinkRow.parent_uid == parent_uid)
            .order_by(ParentLinkRow.linked_at)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_parent_link(r) for r in rows]


class PgLinkIntentRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, intent: LinkIntent) -> None:
        row = LinkIntentRow(
            id=intent.id,
            org_id=intent.org_id,
            child_id=intent.child_id,
            parent_uid=intent.parent_uid,
            specialist_id=intent.specialist_id,
            invite_code=intent.invite_code,
            status=intent.status,
            created_at=to_epoch(intent.created_at),
            completed_at=to_epoch(intent.completed_at) if intent.completed_at else None,
        )
        self._session.add(row)
        await self._session.flush()

    async def mark_complete(self, intent_id: UUID, now: datetime) -> None:
        stmt = (
            update(LinkIntentRow)
            .where(LinkIntentRow.id == intent_id)
            .values(status="complete", completed_at=to_epoch(now))
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("link intent not found")

    async def list_pending(self) -> list[LinkIntent]:
        stmt = (
            select(LinkIntentRow)
            .where(LinkIntentRow.status == "pending")
            .order_by(LinkIntentRow.created_at)
        )
        rows = (
            await self._session.execute(stmt.execution_options(populate_existing=True))
        ).scalars().all()
        return [_row_to_intent(r) for r in rows]


def _row_to_child_link(row: ChildOrgLinkRow) -> ChildOrgLink:
    return ChildOrgLink(
        org_id=row.org_id,
        child_id=row.child_id,
        assigned=row.assigned,
        assigned_at=from_epoch(row.assigned_at),
        assigned_specialist_id=row.assigned_specialist_id,
        parent_uid=row.parent_uid,
    )


def _row_to_parent_link(row: ParentLinkRow) -> ParentLink:
    return ParentLink(
        parent_uid=row.parent_uid,
        org_id=row.org_id,
        org_name=row.org_name,
        linked_at=from_epoch(row.linked_at),
        child_ids=tuple(row.child_ids),
    )


def _row_to_intent(row: LinkIntentRow) -> LinkIntent:
    return LinkIntent(
        id=row.id,
        org_id=row.org_id,
        child_id=row.child_id,
        parent_uid=row.parent_uid,
        specialist_id=row.specialist_id,
        invite_code=row.invite_code,
        created_at=from_epoch(row.created_at),
        status=row.status,
        completed_at=from_epoch(row.completed_at),
    )
