from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Protocol

from membership_service.models.invite import ConsumeOutcome, OrgInvite, ParentInvite


class OrgInviteRepo(Protocol):
    async def get(self, code: str) -> OrgInvite | None: ...
    async def add_if_absent(self, invite: OrgInvite) -> bool: ...
    async def consume(
        self, code: str, subject_id: str, now: datetime
    ) -> ConsumeOutcome: ...
    async def release(self, code: str, subject_id: str) -> None: ...


class ParentInviteRepo(Protocol):
    async def get(self, code: str) -> ParentInvite | None: ...
    async def add_if_absent(self, invite: ParentInvite) -> bool: ...
    async def record_use(self, code: str) -> None: ...


class InMemoryOrgInviteRepo:
    def __init__(self) -> None:
        self._by_code: dict[str, OrgInvite] = {}
        self._redeemers: dict[str, set[str]] = {}

    async def get(self, code: str) -> OrgInvite | None:
        return self._by_code.get(code)

    async def add_if_absent(self, invite: OrgInvite) -> bool:
        if invite.code in self._by_code:
            return False
        self._by_code[invite.code] = invite
        self._redeemers[invite.code] = set()
        return True

    async def consume(self, code: str, subject_id: str, now: datetime) -> ConsumeOutcome:
        # Check and increment run without an await in between, so no other
        # redeemer on the event loop can observe the pre-increment count.
        invite = self._by_code.get(code)
        if invite is None:
            return ConsumeOutcome.MISSING
        if invite.is_expired(now):
            return ConsumeOutcome.EXPIRED
        redeemers = self._redeemers.setdefault(code, set())
        if subject_id in redeemers:
            return ConsumeOutcome.ALREADY_REDEEMED
        if invite.is_exhausted():
            return ConsumeOutcome.EXHAUSTED
        self._by_code[code] = replace(invite, used_count=invite.used_count + 1)
        redeemers.add(subject_id)
        return ConsumeOutcome.CONSUMED

    async def release(self, code: str, subject_id: str) -> None:
        invite = self._by_code.get(code)
        redeemers = self._redeemers.get(code, set())
        if invite is None or subject_id not in redeemers:
            return
        redeemers.discard(subject_id)
        self._by_code[code] = replace(invite, used_count=max(invite.used_count - 1, 0))


class InMemoryParentInviteRepo:
    def __init__(self) -> None:
        self._by_code: dict[str, ParentInvite] = {}

    async def get(self, code: str) -> ParentInvite | None:
        return self._by_code.get(code)

    async def add_if_absent(self, invite: ParentInvite) -> bool:
        if invite.code in self._by_code:
            return False
        self._by_code[invite.code] = invite
        return True

    async def record_use(self, code: str) -> None:
        invite = self._by_code.get(code)
        if invite is None:
            raise KeyError("parent invite not found")
        self._by_code[code] = replace(invite, used_count=invite.used_count + 1)
