"""Bundles every repository behind one object the services take as input.

Two flavours exist:

* ``memory_store`` - process-wide in-memory repos, used when no
  DATABASE_URL is configured (dev, tests).
* ``pg_store(session)`` - SQL repos sharing one request-scoped
  ``AsyncSession``; the request commits or rolls back as a unit.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from membership_service.db import engine as db_engine
from membership_service.repos.billing_repo import (
    BillingSnapshotRepo,
    InMemoryBillingSnapshotRepo,
    InMemoryResourceCounterRepo,
    ResourceCounterRepo,
)
from membership_service.repos.child_link_repo import (
    ChildOrgLinkRepo,
    InMemoryChildOrgLinkRepo,
    InMemoryLinkIntentRepo,
    InMemoryParentLinkRepo,
    LinkIntentRepo,
    ParentLinkRepo,
)
from membership_service.repos.invite_repo import (
    InMemoryOrgInviteRepo,
    InMemoryParentInviteRepo,
    OrgInviteRepo,
    ParentInviteRepo,
)
from membership_service.repos.org_membership_repo import (
    InMemoryOrgMembershipRepo,
    OrgMembershipRepo,
)
from membership_service.repos.org_repo import InMemoryOrgRepo, OrgRepo
from membership_service.repos.pg_billing_repo import (
    PgBillingSnapshotRepo,
    PgResourceCounterRepo,
)
from membership_service.repos.pg_child_link_repo import (
    PgChildOrgLinkRepo,
    PgLinkIntentRepo,
    PgParentLinkRepo,
)
from membership_service.repos.pg_invite_repo import PgOrgInviteRepo, PgParentInviteRepo
from membership_service.repos.pg_org_repo import PgOrgMembershipRepo, PgOrgRepo

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Store:
    orgs: OrgRepo
    memberships: OrgMembershipRepo
    org_invites: OrgInviteRepo
    parent_invites: ParentInviteRepo
    child_links: ChildOrgLinkRepo
    parent_links: ParentLinkRepo
    link_intents: LinkIntentRepo
    billing: BillingSnapshotRepo
    counters: ResourceCounterRepo


def in_memory_store() -> Store:
    return Store(
        orgs=InMemoryOrgRepo(),
        memberships=InMemoryOrgMembershipRepo(),
        org_invites=InMemoryOrgInviteRepo(),
        parent_invites=InMemoryParentInviteRepo(),
        child_links=InMemoryChildOrgLinkRepo(),
        parent_links=InMemoryParentLinkRepo(),
        link_intents=InMemoryLinkIntentRepo(),
        billing=InMemoryBillingSnapshotRepo(),
        counters=InMemoryResourceCounterRepo(),
    )


def pg_store(session: AsyncSession) -> Store:
    return Store(
        orgs=PgOrgRepo(session),
        memberships=PgOrgMembershipRepo(session),
        org_invites=PgOrgInviteRepo(session),
        parent_invites=PgParentInviteRepo(session),
        child_links=PgChildOrgLinkRepo(session),
        parent_links=PgParentLinkRepo(session),
        link_intents=PgLinkIntentRepo(session),
        billing=PgBillingSnapshotRepo(session),
        counters=PgResourceCounterRepo(session),
    )


# Module-level singleton; tests reset it through reset_memory_store().
memory_store: Store = in_memory_store()


def reset_memory_store() -> Store:
    global memory_store
    memory_store = in_memory_store()
    return memory_store


async def get_store() -> AsyncIterator[Store]:
    """FastAPI dependency yielding the active Store for one request."""
    factory = db_engine.async_session_factory
    if factory is None:
        yield memory_store
        return

    async with factory() as session:
        try:
            yield pg_store(session)
            await session.commit()
        except Exception as exc:
            logger.warning("Rolling back request transaction: %s", type(exc).__name__)
            await session.rollback()
            raise
