"""SQL implementations of OrgInviteRepo and ParentInviteRepo."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, insert, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from membership_service.core.clock import from_epoch, to_epoch
from membership_service.db.tables import (
    OrgInviteRedemptionRow,
    OrgInviteRow,
    ParentInviteRow,
)
from membership_service.models.invite import ConsumeOutcome, OrgInvite, ParentInvite


class PgOrgInviteRepo:
    """Satisfies the OrgInviteRepo Protocol using SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, code: str) -> OrgInvite | None:
        row = await self._session.get(OrgInviteRow, code, populate_existing=True)
        if row is None:
            return None
        return _row_to_org_invite(row)

    async def add_if_absent(self, invite: OrgInvite) -> bool:
        stmt = insert(OrgInviteRow).values(
            code=invite.code,
            org_id=invite.org_id,
            role=invite.role,
            max_uses=invite.max_uses,
            used_count=invite.used_count,
            expires_at=to_epoch(invite.expires_at),
            created_by=invite.created_by,
            created_at=to_epoch(invite.created_at),
        )
        try:
            async with self._session.begin_nested():
                await self._session.execute(stmt)
        except IntegrityError:
            return False
        return True

    async def consume(self, code: str, subject_id: str, now: datetime) -> ConsumeOutcome:
        """Claim one use of ``code`` for ``subject_id``.

        The redemption row is inserted first; its primary key makes a second
        claim by the same subject fail.  The counter then moves only through a
        conditional UPDATE, so concurrent redeemers can never push
        ``used_count`` past ``max_uses``.
        """
        invite = await self.get(code)
        if invite is None:
            return ConsumeOutcome.MISSING
        if invite.is_expired(now):
            return ConsumeOutcome.EXPIRED

        now_ts = to_epoch(now)
        try:
            async with self._session.begin_nested():
                await self._session.execute(
                    insert(OrgInviteRedemptionRow).values(
                        code=code, subject_id=subject_id, redeemed_at=now_ts
                    )
                )
        except IntegrityError:
            return ConsumeOutcome.ALREADY_REDEEMED

        stmt = (
            update(OrgInviteRow)
            .where(OrgInviteRow.code == code)
            .where(OrgInviteRow.expires_at >= now_ts)
            .where(
                or_(
                    OrgInviteRow.max_uses.is_(None),
                    OrgInviteRow.used_count < OrgInviteRow.max_uses,
                )
            )
            .values(used_count=OrgInviteRow.used_count + 1)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 1:
            return ConsumeOutcome.CONSUMED

        await self._delete_redemption(code, subject_id)
        latest = await self.get(code)
        if latest is not None and latest.is_expired(now):
            return ConsumeOutcome.EXPIRED
        return ConsumeOutcome.EXHAUSTED

    async def release(self, code: str, subject_id: str) -> None:
        removed = await self._delete_redemption(code, subject_id)
        if not removed:
            return
        stmt = (
            update(OrgInviteRow)
            .where(OrgInviteRow.code == code)
            .where(OrgInviteRow.used_count > 0)
            .values(used_count=OrgInviteRow.used_count - 1)
        )
        await self._session.execute(stmt)

    async def _delete_redemption(self, code: str, subject_id: str) -> bool:
        stmt = (
            delete(OrgInviteRedemptionRow)
            .where(OrgInviteRedemptionRow.code == code)
            .where(OrgInviteRedemptionRow.subject_id == subject_id)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0


class PgParentInviteRepo:
    """Satisfies the ParentInviteRepo Protocol using SQLAlchemy."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, code: str) -> ParentInvite | None:
        row = await self._session.get(ParentInviteRow, code, populate_existing=True)
        if row is None:
            return None
        return _row_to_parent_invite(row)

    async def add_if_absent(self, invite: ParentInvite) -> bool:
        stmt = insert(ParentInviteRow).values(
            code=invite.code,
            specialist_id=invite.specialist_id,
            org_id=invite.org_id,
            used_count=invite.used_count,
            expires_at=to_epoch(invite.expires_at),
            created_at=to_epoch(invite.created_at),
        )
        try:
            async with self._session.begin_nested():
                await self._session.execute(stmt)
        except IntegrityError:
            return False
        return True

    async def record_use(self, code: str) -> None:
        stmt = (
            update(ParentInviteRow)
            .where(ParentInviteRow.code == code)
            .values(used_count=ParentInviteRow.used_count + 1)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise KeyError("parent invite not found")


def _row_to_org_invite(row: OrgInviteRow) -> OrgInvite:
    return OrgInvite(
        code=row.code,
        org_id=row.org_id,
        role=row.role,
        max_uses=row.max_uses,
        used_count=row.used_count,
        expires_at=from_epoch(row.expires_at),
        created_by=row.created_by,
        created_at=from_epoch(row.created_at),
    )


def _row_to_parent_invite(row: ParentInviteRow) -> ParentInvite:
    return ParentInvite(
        code=row.code,
        specialist_id=row.specialist_id,
        org_id=row.org_id,
        used_count=row.used_count,
        expires_at=from_epoch(row.expires_at),
        created_at=from_epoch(row.created_at),
    )
