from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from membership_service.api import dependencies
from membership_service.core.clock import utcnow
from membership_service.models.child import LinkIntent
from tests.conftest import add_test_member, auth, create_test_org, current_store, run


def test_list_orgs(client: TestClient) -> None:
    create_test_org("Alpha", admin_id="a1")
    create_test_org("Beta", admin_id="a2")

    resp = client.get("/admin/orgs", headers=auth("ops", super_admin=True))

    assert resp.status_code == 200
    assert [o["name"] for o in resp.json()["orgs"]] == ["Alpha", "Beta"]


def test_deactivate_org_blocks_redemption(client: TestClient) -> None:
    org = create_test_org()
    code = client.post(
        f"/orgs/{org.id}/invites", json={}, headers=auth("admin-1")
    ).json()["inviteCode"]

    resp = client.post(
        f"/admin/orgs/{org.id}/deactivate", headers=auth("ops", super_admin=True)
    )
    assert resp.status_code == 200

    resp = client.post("/join", json={"code": code}, headers=auth("therapist-1"))
    assert resp.status_code == 400
    assert resp.json()["code"] == "inactive"


def test_deactivate_unknown_org(client: TestClient) -> None:
    resp = client.post(
        "/admin/orgs/00000000-0000-0000-0000-000000000000/deactivate",
        headers=auth("ops", super_admin=True),
    )
    assert resp.status_code == 404


def test_reconcile_applies_pending_intents(client: TestClient) -> None:
    org = create_test_org()
    add_test_member(org.id, "therapist-1")
    store = current_store()
    intent = LinkIntent.new(
        org_id=org.id,
        child_id="child-1",
        parent_uid="parent-1",
        specialist_id="therapist-1",
        invite_code="ABCDEF",
        now=utcnow(),
    )
    run(store.link_intents.add(intent))

    resp = client.post("/admin/reconcile/child-links", headers=auth("ops", super_admin=True))

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "reconciled": 1}
    assert run(store.child_links.get(org.id, "child-1")).assigned
    assert run(store.link_intents.list_pending()) == []


@pytest.mark.parametrize(
    "app_env,expected",
    [("dev", 200), ("prod", 403)],
)
def test_email_allow_list_outside_prod(
    client: TestClient, monkeypatch: pytest.MonkeyPatch, app_env: str, expected: int
) -> None:
    settings = replace(
        dependencies.SETTINGS,
        app_env=app_env,
        super_admin_allow_list=("ops@example.com",),
    )
    monkeypatch.setattr(dependencies, "SETTINGS", settings)

    resp = client.get("/admin/orgs", headers=auth("ops", email="OPS@example.com"))

    assert resp.status_code == expected


def test_org_admin_is_not_super_admin(client: TestClient) -> None:
    create_test_org()
    resp = client.get("/admin/orgs", headers=auth("admin-1"))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Super admin access required", "code": "forbidden"}
