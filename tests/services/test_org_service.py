from __future__ import annotations

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from membership_service.core.clock import utcnow
from membership_service.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    LimitReachedError,
    NotFoundError,
    OrganizationInactiveError,
)
from membership_service.models.billing import CHILDREN, SPECIALISTS
from membership_service.repos.store import Store
from membership_service.services import org_service
from tests.conftest import add_test_member, create_test_org, seed_billing


# ---- organizations ----


def test_create_organization_seeds_admin_and_counters(store: Store) -> None:
    org = asyncio.run(
        org_service.create_organization(
            store, "creator-1", "  Sunrise Therapy ", email="c1@example.com", country="CA"
        )
    )

    assert org.name == "Sunrise Therapy"
    assert org.kind == "practice"
    assert org.country == "CA"
    membership = asyncio.run(store.memberships.get(org.id, "creator-1"))
    assert membership.role == "org_admin"
    assert membership.display_name == "c1"
    assert asyncio.run(store.counters.get(org.id, SPECIALISTS)) == 1
    assert asyncio.run(store.counters.get(org.id, CHILDREN)) == 0


def test_duplicate_name_for_same_creator(store: Store) -> None:
    asyncio.run(org_service.create_organization(store, "creator-1", "Sunrise"))
    with pytest.raises(InvalidOperationError, match="already have an organization"):
        asyncio.run(org_service.create_organization(store, "creator-1", "Sunrise"))
    # Another creator may reuse the name.
    asyncio.run(org_service.create_organization(store, "creator-2", "Sunrise"))


def test_blank_org_name(store: Store) -> None:
    with pytest.raises(InvalidOperationError):
        asyncio.run(org_service.create_organization(store, "creator-1", "   "))


def test_personal_org_is_created_once(store: Store) -> None:
    first = asyncio.run(org_service.find_or_create_personal_org(store, "solo"))
    second = asyncio.run(org_service.find_or_create_personal_org(store, "solo"))

    assert first.id == second.id
    assert first.kind == "personal"
    assert first.name == org_service.PERSONAL_ORG_NAME


def test_deactivate_organization(store: Store) -> None:
    org = create_test_org()
    result = asyncio.run(org_service.deactivate_organization(store, org.id))
    assert result.is_active is False
    with pytest.raises(NotFoundError):
        asyncio.run(org_service.deactivate_organization(store, uuid4()))


# ---- parent invite org resolution ----


def test_resolve_explicit_org_requires_membership(store: Store) -> None:
    org = create_test_org()
    assert (
        asyncio.run(org_service.resolve_parent_invite_org(store, "admin-1", org_id=org.id))
        == org.id
    )
    with pytest.raises(ForbiddenError):
        asyncio.run(org_service.resolve_parent_invite_org(store, "stranger", org_id=org.id))


def test_resolve_prefers_earliest_active_membership(store: Store) -> None:
    older = create_test_org("Older", admin_id="a-old")
    newer = create_test_org("Newer", admin_id="a-new")
    now = utcnow()
    add_test_member(newer.id, "therapist-1", joined_at=now - timedelta(days=1))
    add_test_member(older.id, "therapist-1", joined_at=now - timedelta(days=10))

    assert asyncio.run(org_service.resolve_parent_invite_org(store, "therapist-1")) == older.id


def test_resolve_skips_inactive_orgs(store: Store) -> None:
    dead = create_test_org("Closed", admin_id="a-dead", is_active=False)
    live = create_test_org("Open", admin_id="a-live")
    now = utcnow()
    add_test_member(dead.id, "therapist-1", joined_at=now - timedelta(days=10))
    add_test_member(live.id, "therapist-1", joined_at=now - timedelta(days=1))

    assert asyncio.run(org_service.resolve_parent_invite_org(store, "therapist-1")) == live.id


def test_resolve_falls_back_to_personal_org(store: Store) -> None:
    org_id = asyncio.run(org_service.resolve_parent_invite_org(store, "solo"))
    org = asyncio.run(store.orgs.get_by_id(org_id))
    assert org.kind == "personal"
    assert asyncio.run(store.memberships.get(org_id, "solo")).role == "org_admin"


# ---- members ----


def test_add_member_reserves_specialist_slot(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")

    member = asyncio.run(
        org_service.add_member(store, org.id, "therapist-1", "specialist", email="s1@example.com")
    )

    assert member.is_active
    assert asyncio.run(store.counters.get(org.id, SPECIALISTS)) == 2


def test_add_member_over_plan_limit(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    add_test_member(org.id, "therapist-1")
    add_test_member(org.id, "therapist-2")

    with pytest.raises(LimitReachedError):
        asyncio.run(org_service.add_member(store, org.id, "therapist-3", "specialist"))
    assert asyncio.run(store.memberships.get(org.id, "therapist-3")) is None


def test_add_existing_member_conflicts(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="enterprise")
    add_test_member(org.id, "therapist-1")
    with pytest.raises(ConflictError):
        asyncio.run(org_service.add_member(store, org.id, "therapist-1", "specialist"))


def test_add_member_reactivates_removed_member(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="enterprise")
    add_test_member(org.id, "therapist-1")
    asyncio.run(org_service.remove_member(store, org.id, "admin-1", "therapist-1"))

    member = asyncio.run(org_service.add_member(store, org.id, "therapist-1", "admin"))

    assert member.role == "org_admin"
    assert member.removed_at is None
    assert member.display_name == "therapist-1"


def test_add_member_to_inactive_org(store: Store) -> None:
    org = create_test_org(is_active=False)
    with pytest.raises(OrganizationInactiveError):
        asyncio.run(org_service.add_member(store, org.id, "therapist-1", "specialist"))


@pytest.mark.parametrize(
    "op",
    [
        lambda s, org_id: org_service.change_member_role(
            s, org_id, "admin-1", "admin-1", "specialist"
        ),
        lambda s, org_id: org_service.remove_member(s, org_id, "admin-1", "admin-1"),
    ],
    ids=["demote_self", "remove_self"],
)
def test_self_protection(store: Store, op) -> None:
    org = create_test_org()
    with pytest.raises(InvalidOperationError):
        asyncio.run(op(store, org.id))
    assert asyncio.run(store.memberships.get(org.id, "admin-1")).role == "org_admin"


def test_change_role_of_missing_member(store: Store) -> None:
    org = create_test_org()
    with pytest.raises(NotFoundError):
        asyncio.run(
            org_service.change_member_role(store, org.id, "admin-1", "ghost", "org_admin")
        )


def test_change_role_rejects_unknown_role(store: Store) -> None:
    org = create_test_org()
    add_test_member(org.id, "therapist-1")
    with pytest.raises(InvalidOperationError):
        asyncio.run(
            org_service.change_member_role(store, org.id, "admin-1", "therapist-1", "owner")
        )


def test_remove_member_releases_slot(store: Store) -> None:
    org = create_test_org()
    add_test_member(org.id, "therapist-1")

    removed = asyncio.run(org_service.remove_member(store, org.id, "admin-1", "therapist-1"))

    assert removed.status == "inactive"
    assert removed.removed_by == "admin-1"
    assert asyncio.run(store.counters.get(org.id, SPECIALISTS)) == 1
    with pytest.raises(NotFoundError):
        asyncio.run(org_service.remove_member(store, org.id, "admin-1", "therapist-1"))


# ---- children ----


def test_add_child_and_conflict(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    add_test_member(org.id, "therapist-1")

    link = asyncio.run(
        org_service.add_child(store, org.id, "child-1", assigned_specialist_id="therapist-1")
    )

    assert link.assigned
    assert asyncio.run(store.counters.get(org.id, CHILDREN)) == 1
    with pytest.raises(ConflictError):
        asyncio.run(org_service.add_child(store, org.id, "child-1"))


def test_add_child_with_unknown_specialist(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    with pytest.raises(NotFoundError, match="Specialist not found"):
        asyncio.run(
            org_service.add_child(store, org.id, "child-1", assigned_specialist_id="ghost")
        )
    assert asyncio.run(store.counters.get(org.id, CHILDREN)) == 0


def test_add_child_at_plan_limit(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    asyncio.run(store.counters.set(org.id, CHILDREN, 30))

    with pytest.raises(LimitReachedError):
        asyncio.run(org_service.add_child(store, org.id, "child-31"))
    assert asyncio.run(store.child_links.get(org.id, "child-31")) is None


def test_reassign_and_unassign_child(store: Store) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    add_test_member(org.id, "therapist-1")
    add_test_member(org.id, "therapist-2")
    asyncio.run(
        org_service.add_child(store, org.id, "child-1", assigned_specialist_id="therapist-1")
    )

    moved = asyncio.run(org_service.reassign_child(store, org.id, "child-1", "therapist-2"))
    assert moved.assigned_specialist_id == "therapist-2"

    gone = asyncio.run(org_service.unassign_child(store, org.id, "child-1"))
    assert gone.assigned is False
    assert asyncio.run(store.counters.get(org.id, CHILDREN)) == 0
    with pytest.raises(NotFoundError):
        asyncio.run(org_service.reassign_child(store, org.id, "child-1", None))

    # A previously unassigned child can be added again.
    again = asyncio.run(org_service.add_child(store, org.id, "child-1"))
    assert again.assigned
