from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from membership_service.models.billing import CHILDREN
from tests.conftest import (
    add_test_member,
    auth,
    create_test_org,
    current_store,
    run,
    seed_billing,
)


@pytest.fixture
def org_id(client: TestClient) -> str:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    add_test_member(org.id, "therapist-1")
    add_test_member(org.id, "therapist-2")
    for child_id, specialist in (("child-1", "therapist-1"), ("child-2", "therapist-2"), ("child-3", None)):
        resp = client.post(
            f"/orgs/{org.id}/children",
            json={"childId": child_id, "assignedSpecialistId": specialist},
            headers=auth("admin-1"),
        )
        assert resp.status_code == 201, resp.text
    return str(org.id)


def _child_ids(resp) -> set[str]:
    return {c["childId"] for c in resp.json()["children"]}


def test_admin_sees_all_children(client: TestClient, org_id: str) -> None:
    resp = client.get(f"/orgs/{org_id}/children", headers=auth("admin-1"))
    assert resp.status_code == 200
    assert _child_ids(resp) == {"child-1", "child-2", "child-3"}


def test_specialist_sees_only_assigned(client: TestClient, org_id: str) -> None:
    resp = client.get(f"/orgs/{org_id}/children", headers=auth("therapist-1"))
    assert _child_ids(resp) == {"child-1"}


@pytest.mark.parametrize(
    "caller,child_id,expected",
    [
        ("admin-1", "child-3", 200),
        ("therapist-1", "child-1", 200),
        ("therapist-1", "child-2", 403),
        ("therapist-1", "child-3", 403),
        ("admin-1", "missing", 404),
    ],
)
def test_get_child_access(
    client: TestClient, org_id: str, caller: str, child_id: str, expected: int
) -> None:
    resp = client.get(f"/orgs/{org_id}/children/{child_id}", headers=auth(caller))
    assert resp.status_code == expected


def test_add_duplicate_child(client: TestClient, org_id: str) -> None:
    resp = client.post(
        f"/orgs/{org_id}/children", json={"child_id": "child-1"}, headers=auth("admin-1")
    )
    assert resp.status_code == 409


def test_add_child_for_unknown_specialist(client: TestClient, org_id: str) -> None:
    resp = client.post(
        f"/orgs/{org_id}/children",
        json={"childId": "child-4", "assigned_specialist_id": "ghost"},
        headers=auth("admin-1"),
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "Specialist not found"


def test_reassign_moves_visibility(client: TestClient, org_id: str) -> None:
    resp = client.patch(
        f"/orgs/{org_id}/children/child-1",
        json={"assignedSpecialistId": "therapist-2"},
        headers=auth("admin-1"),
    )
    assert resp.status_code == 200
    assert resp.json()["assignedSpecialistId"] == "therapist-2"

    assert client.get(f"/orgs/{org_id}/children/child-1", headers=auth("therapist-1")).status_code == 403
    assert client.get(f"/orgs/{org_id}/children/child-1", headers=auth("therapist-2")).status_code == 200


def test_unassign_hides_child_and_frees_slot(client: TestClient, org_id: str) -> None:
    resp = client.delete(f"/orgs/{org_id}/children/child-2", headers=auth("admin-1"))
    assert resp.status_code == 200

    assert client.get(f"/orgs/{org_id}/children/child-2", headers=auth("admin-1")).status_code == 404
    plan = client.get(f"/orgs/{org_id}/plan", headers=auth("admin-1")).json()
    assert plan["childrenCount"] == 2


def test_specialist_cannot_reassign(client: TestClient, org_id: str) -> None:
    resp = client.patch(
        f"/orgs/{org_id}/children/child-1",
        json={"assignedSpecialistId": "therapist-1"},
        headers=auth("therapist-1"),
    )
    assert resp.status_code == 403


def test_child_limit_reached(client: TestClient) -> None:
    org = create_test_org()
    seed_billing(org.id, plan_id="starter")
    run(current_store().counters.set(org.id, CHILDREN, 30))

    resp = client.post(
        f"/orgs/{org.id}/children", json={"childId": "child-31"}, headers=auth("admin-1")
    )

    assert resp.status_code == 400
    assert resp.json()["error"] == "Plan limit: 30 children. Upgrade in Billing to add more."
