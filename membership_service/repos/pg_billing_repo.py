"""SQL implementations of BillingSnapshotRepo and ResourceCounterRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from membership_service.core.clock import from_epoch
from membership_service.db.tables import BillingSnapshotRow, ResourceCounterRow
from membership_service.models.billing import BillingSnapshot, Resource


class PgBillingSnapshotRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID) -> BillingSnapshot | None:
        row = await self._session.get(BillingSnapshotRow, org_id)
        if row is None:
            return None
        return BillingSnapshot(
            org_id=row.org_id,
            plan_id=row.plan_id,
            status=row.status,
            expires_at=from_epoch(row.expires_at),
        )


class PgResourceCounterRepo:
    """Counters move only through conditional UPDATEs on a single row."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, org_id: UUID, resource: Resource) -> int:
        stmt = select(ResourceCounterRow.count).where(
            ResourceCounterRow.org_id == org_id,
            ResourceCounterRow.resource == resource,
        )
        value = (await self._session.execute(stmt)).scalar_one_or_none()
        return value or 0

    async def try_increment(
        self, org_id: UUID, resource: Resource, cap: int | None
    ) -> bool:
        await self._ensure_row(org_id, resource)
        stmt = update(ResourceCounterRow).where(
            ResourceCounterRow.org_id == org_id,
            ResourceCounterRow.resource == resource,
        )
        if cap is not None:
            stmt = stmt.where(ResourceCounterRow.count < cap)
        result = await self._session.execute(
            stmt.values(count=ResourceCounterRow.count + 1)
        )
        return result.rowcount == 1

    async def decrement(self, org_id: UUID, resource: Resource) -> None:
        stmt = (
            update(ResourceCounterRow)
            .where(
                ResourceCounterRow.org_id == org_id,
                ResourceCounterRow.resource == resource,
                ResourceCounterRow.count > 0,
            )
            .values(count=ResourceCounterRow.count - 1)
        )
        await self._session.execute(stmt)

    async def set(self, org_id: UUID, resource: Resource, value: int) -> None:
        await self._ensure_row(org_id, resource)
        stmt = (
            update(ResourceCounterRow)
            .where(
                ResourceCounterRow.org_id == org_id,
                ResourceCounterRow.resource == resource,
            )
            .values(count=max(value, 0))
        )
        await self._session.execute(stmt)

    async def _ensure_row(self, org_id: UUID, resource: Resource) -> None:
        stmt = select(ResourceCounterRow.count).where(
            ResourceCounterRow.org_id == org_id,
            ResourceCounterRow.resource == resource,
        )
        if (await self._session.execute(stmt)).first() is not None:
            return
        try:
            async with self._session.begin_nested():
                await self._session.execute(
                    insert(ResourceCounterRow).values(org_id=org_id, resource=resource, count=0)
                )
        except IntegrityError:
            # Another transaction created the row first.
            return
