"""SQL repositories against an in-memory SQLite database.

Each test runs one scenario inside a fresh engine.  pysqlite-style
drivers need the connect/begin hooks below before SAVEPOINT (used by
the create-if-absent writes) behaves.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import TypeVar
from uuid import uuid4

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from membership_service.core.clock import utcnow
from membership_service.db import tables
from membership_service.db.engine import Base, make_session_factory
from membership_service.models.billing import CHILDREN, SPECIALISTS
from membership_service.models.child import ChildOrgLink, LinkIntent
from membership_service.models.invite import ConsumeOutcome, OrgInvite, ParentInvite
from membership_service.models.organization import Membership, Organization
from membership_service.repos.store import Store, pg_store
from membership_service.services import invite_issuer, invite_redeemer, org_service

T = TypeVar("T")


def _run_in_session(scenario: Callable[[AsyncSession, Store], Awaitable[T]]) -> T:
    async def _main() -> T:
        engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

        @event.listens_for(engine.sync_engine, "connect")
        def _no_implicit_transactions(dbapi_connection, _record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _explicit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with make_session_factory(engine)() as session:
                return await scenario(session, pg_store(session))
        finally:
            await engine.dispose()

    return asyncio.run(_main())


async def _seed_org(store: Store, name: str = "SQL Practice") -> Organization:
    org = Organization.new(name=name, created_by="admin-1", now=utcnow())
    await store.orgs.add(org)
    return org


# ---- organizations & memberships ----


def test_org_roundtrip_and_deactivate() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        fetched = await store.orgs.get_by_id(org.id)
        found = await store.orgs.find_by_creator("admin-1", name="SQL Practice")
        missing = await store.orgs.find_by_creator("admin-1", kind="personal")
        updated = await store.orgs.set_active(org.id, False)
        unknown = await store.orgs.set_active(uuid4(), False)
        return org, fetched, found, missing, updated, unknown

    org, fetched, found, missing, updated, unknown = _run_in_session(scenario)

    assert fetched.name == org.name
    assert fetched.kind == "practice"
    assert found.id == org.id
    assert missing is None
    assert updated.is_active is False
    assert unknown is None


def test_membership_upsert_and_deactivate() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        now = utcnow()
        await store.memberships.upsert(
            Membership.active(org_id=org.id, user_id="therapist-1", role="specialist", now=now)
        )
        await store.memberships.upsert(
            Membership.active(
                org_id=org.id, user_id="therapist-2", role="specialist", now=now + timedelta(seconds=5)
            )
        )
        removed = await store.memberships.deactivate(org.id, "therapist-1", "admin-1", now)
        again = await store.memberships.deactivate(org.id, "therapist-1", "admin-1", now)
        active = await store.memberships.list_active(org.id)
        by_user = await store.memberships.list_by_user("therapist-1")
        return removed, again, active, by_user

    removed, again, active, by_user = _run_in_session(scenario)

    assert removed.status == "inactive"
    assert removed.removed_by == "admin-1"
    assert again is None
    assert [m.user_id for m in active] == ["therapist-2"]
    assert [m.status for m in by_user] == ["inactive"]


# ---- staff invites ----


def _invite(org_id, *, max_uses=None, days=30, code=None) -> OrgInvite:
    return OrgInvite.new(
        code=code or f"{org_id}-1-ABCDEF",
        org_id=org_id,
        role="specialist",
        created_by="admin-1",
        now=utcnow(),
        expires_in_days=days,
        max_uses=max_uses,
    )


def test_add_if_absent_never_overwrites() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        first = _invite(org.id, max_uses=1)
        added = await store.org_invites.add_if_absent(first)
        dup = await store.org_invites.add_if_absent(_invite(org.id, max_uses=9))
        stored = await store.org_invites.get(first.code)
        return added, dup, stored

    added, dup, stored = _run_in_session(scenario)

    assert added is True
    assert dup is False
    assert stored.max_uses == 1


def test_consume_respects_max_uses_and_subjects() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        invite = _invite(org.id, max_uses=2)
        await store.org_invites.add_if_absent(invite)
        now = utcnow()
        outcomes = [
            await store.org_invites.consume(invite.code, "a", now),
            await store.org_invites.consume(invite.code, "a", now),
            await store.org_invites.consume(invite.code, "b", now),
            await store.org_invites.consume(invite.code, "c", now),
        ]
        used_after_consume = (await store.org_invites.get(invite.code)).used_count
        await store.org_invites.release(invite.code, "b")
        await store.org_invites.release(invite.code, "b")
        used_after_release = (await store.org_invites.get(invite.code)).used_count
        retry = await store.org_invites.consume(invite.code, "c", now)
        return outcomes, used_after_consume, used_after_release, retry

    outcomes, used_after_consume, used_after_release, retry = _run_in_session(scenario)

    assert outcomes == [
        ConsumeOutcome.CONSUMED,
        ConsumeOutcome.ALREADY_REDEEMED,
        ConsumeOutcome.CONSUMED,
        ConsumeOutcome.EXHAUSTED,
    ]
    assert used_after_consume == 2
    assert used_after_release == 1
    assert retry is ConsumeOutcome.CONSUMED


def test_consume_missing_and_expired() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        invite = _invite(org.id, days=1)
        await store.org_invites.add_if_absent(invite)
        later = utcnow() + timedelta(days=2)
        return (
            await store.org_invites.consume("nope", "a", utcnow()),
            await store.org_invites.consume(invite.code, "a", later),
            (await store.org_invites.get(invite.code)).used_count,
        )

    missing, expired, used = _run_in_session(scenario)

    assert missing is ConsumeOutcome.MISSING
    assert expired is ConsumeOutcome.EXPIRED
    assert used == 0


# ---- parent invites ----


def test_parent_invite_record_use() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        invite = ParentInvite.new(code="ABC234", specialist_id="therapist-1", org_id=org.id, now=utcnow())
        await store.parent_invites.add_if_absent(invite)
        await store.parent_invites.record_use("ABC234")
        await store.parent_invites.record_use("ABC234")
        with pytest.raises(KeyError):
            await store.parent_invites.record_use("ZZZZZZ")
        return await store.parent_invites.get("ABC234")

    stored = _run_in_session(scenario)

    assert stored.used_count == 2
    assert stored.max_uses is None


# ---- links ----


def test_child_links_and_parent_links() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        now = utcnow()
        for child_id, specialist, assigned in (
            ("c1", "therapist-1", True),
            ("c2", "therapist-2", True),
            ("c3", "therapist-1", False),
        ):
            await store.child_links.put(
                ChildOrgLink(
                    org_id=org.id,
                    child_id=child_id,
                    assigned=assigned,
                    assigned_at=now,
                    assigned_specialist_id=specialist,
                )
            )
        mine = await store.child_links.list_assigned(org.id, specialist_id="therapist-1")
        count = await store.child_links.count_assigned(org.id)

        await store.parent_links.link("parent-1", org.id, org.name, "c1", now)
        await store.parent_links.link("parent-1", org.id, org.name, "c2", now)
        await store.parent_links.link("parent-1", org.id, org.name, "c1", now)
        parent_link = await store.parent_links.get("parent-1", org.id)
        return mine, count, parent_link

    mine, count, parent_link = _run_in_session(scenario)

    assert [l.child_id for l in mine] == ["c1"]
    assert count == 2
    assert parent_link.child_ids == ("c1", "c2")


def test_link_intents() -> None:
    async def scenario(session, store):
        org = await _seed_org(store)
        intent = LinkIntent.new(
            org_id=org.id,
            child_id="c1",
            parent_uid="parent-1",
            specialist_id="therapist-1",
            invite_code="ABC234",
            now=utcnow(),
        )
        await store.link_intents.add(intent)
        pending = await store.link_intents.list_pending()
        await store.link_intents.mark_complete(intent.id, utcnow())
        after = await store.link_intents.list_pending()
        with pytest.raises(KeyError):
            await store.link_intents.mark_complete(uuid4(), utcnow())
        return intent, pending, after

    intent, pending, after = _run_in_session(scenario)

    assert [i.id for i in pending] == [intent.id]
    assert after == []


# ---- billing & counters ----


def test_billing_snapshot_read() -> None:
    async def scenario(session, store):
        org_id = uuid4()
        session.add(tables.BillingSnapshotRow(org_id=org_id, plan_id="growth", status="active"))
        await session.flush()
        return await store.billing.get(org_id), await store.billing.get(uuid4())

    snapshot, missing = _run_in_session(scenario)

    assert snapshot.plan_id == "growth"
    assert snapshot.expires_at is None
    assert missing is None


def test_counters_never_pass_cap() -> None:
    async def scenario(session, store):
        org_id = uuid4()
        results = [await store.counters.try_increment(org_id, CHILDREN, 2) for _ in range(3)]
        at_cap = await store.counters.get(org_id, CHILDREN)
        await store.counters.decrement(org_id, CHILDREN)
        after_release = await store.counters.get(org_id, CHILDREN)
        await store.counters.set(org_id, SPECIALISTS, 5)
        unlimited = await store.counters.try_increment(org_id, SPECIALISTS, None)
        specialists = await store.counters.get(org_id, SPECIALISTS)
        await store.counters.decrement(uuid4(), CHILDREN)
        return results, at_cap, after_release, unlimited, specialists

    results, at_cap, after_release, unlimited, specialists = _run_in_session(scenario)

    assert results == [True, True, False]
    assert at_cap == 2
    assert after_release == 1
    assert unlimited is True
    assert specialists == 6


# ---- services over the SQL store ----


def test_staff_redemption_end_to_end() -> None:
    async def scenario(session, store):
        org = await org_service.create_organization(store, "founder", "Full Stack Practice")
        invite = await invite_issuer.issue_org_invite(
            store, org.id, "specialist", "founder", max_uses=1
        )
        joined = await invite_redeemer.redeem_org_invite(store, invite.code, "therapist-1")
        again = await invite_redeemer.redeem_org_invite(store, invite.code, "therapist-1")
        members = await store.memberships.list_active(org.id)
        specialists = await store.counters.get(org.id, SPECIALISTS)
        return joined, again, members, specialists

    joined, again, members, specialists = _run_in_session(scenario)

    assert joined.already_member is False
    assert again.already_member is True
    assert {m.user_id for m in members} == {"founder", "therapist-1"}
    assert specialists == 2


def test_parent_redemption_end_to_end() -> None:
    async def scenario(session, store):
        org = await org_service.create_organization(store, "founder", "Parent Practice")
        invite = await invite_issuer.issue_parent_invite(store, "founder", org.id)
        await invite_redeemer.redeem_parent_invite(store, invite.code.lower(), "c1", "parent-1")
        await invite_redeemer.redeem_parent_invite(store, invite.code, "c1", "parent-1")
        link = await store.child_links.get(org.id, "c1")
        children = await store.counters.get(org.id, CHILDREN)
        pending = await store.link_intents.list_pending()
        used = (await store.parent_invites.get(invite.code)).used_count
        return link, children, pending, used

    link, children, pending, used = _run_in_session(scenario)

    assert link.assigned_specialist_id == "founder"
    assert link.parent_uid == "parent-1"
    assert children == 1
    assert pending == []
    assert used == 2
