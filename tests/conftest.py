from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timedelta
from pathlib import Path
from uuid import UUID

# The suite always runs against the in-memory store.
os.environ["APP_ENV"] = "test"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("ID_TOKEN_PUBLIC_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

# Ensure repo root is on sys.path so `import membership_service` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from membership_service.core.clock import utcnow  # noqa: E402
from membership_service.main import app  # noqa: E402
from membership_service.models.billing import (  # noqa: E402
    CHILDREN,
    SPECIALISTS,
    BillingSnapshot,
)
from membership_service.models.organization import Membership, Organization  # noqa: E402
from membership_service.repos import store as store_module  # noqa: E402
from membership_service.repos.store import Store  # noqa: E402
from membership_service.services import token_service  # noqa: E402


@pytest.fixture(autouse=True)
def reset_store() -> Store:
    """Fresh in-memory repos for every test."""
    return store_module.reset_memory_store()


@pytest.fixture
def store(reset_store: Store) -> Store:
    return reset_store


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: str = "test-user",
    email: str = "",
    super_admin: bool = False,
) -> str:
    """Create a valid ES256 ID token for testing."""
    return token_service.create_id_token(sub=user_id, email=email, super_admin=super_admin)


def auth(user_id: str, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(user_id, **kwargs)}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def current_store() -> Store:
    return store_module.memory_store


def run(coro):
    return asyncio.run(coro)


def create_test_org(
    name: str = "Test Practice",
    *,
    admin_id: str = "admin-1",
    is_active: bool = True,
    store: Store | None = None,
) -> Organization:
    """Create an org whose admin is ``admin_id``; counters seeded like create_organization."""
    store = store or current_store()
    now = utcnow()
    org = Organization.new(name=name, created_by=admin_id, now=now)

    async def _create() -> Organization:
        await store.orgs.add(org)
        await store.memberships.upsert(
            Membership.active(
                org_id=org.id,
                user_id=admin_id,
                role="org_admin",
                now=now,
                email=f"{admin_id}@example.com",
            )
        )
        await store.counters.set(org.id, SPECIALISTS, 1)
        await store.counters.set(org.id, CHILDREN, 0)
        if not is_active:
            return await store.orgs.set_active(org.id, False)
        return org

    return run(_create())


def add_test_member(
    org_id: UUID,
    user_id: str,
    role: str = "specialist",
    *,
    store: Store | None = None,
    joined_at: datetime | None = None,
) -> Membership:
    store = store or current_store()
    membership = Membership.active(
        org_id=org_id,
        user_id=user_id,
        role=role,
        now=joined_at or utcnow(),
        email=f"{user_id}@example.com",
    )

    async def _add() -> Membership:
        await store.memberships.upsert(membership)
        await store.counters.try_increment(org_id, SPECIALISTS, None)
        return membership

    return run(_add())


def seed_billing(
    org_id: UUID,
    plan_id: str = "starter",
    status: str = "active",
    *,
    expires_in_days: int | None = 30,
    store: Store | None = None,
) -> BillingSnapshot:
    store = store or current_store()
    expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days is not None else None
    snapshot = BillingSnapshot(
        org_id=org_id, plan_id=plan_id, status=status, expires_at=expires_at
    )
    store.billing.put(snapshot)  # type: ignore[attr-defined]
    return snapshot
