from __future__ import annotations

from typing import Protocol
from uuid import UUID

from membership_service.models.billing import BillingSnapshot, Resource


class BillingSnapshotRepo(Protocol):
    """Read side of the payment subsystem.  This service never writes it."""

    async def get(self, org_id: UUID) -> BillingSnapshot | None: ...


class ResourceCounterRepo(Protocol):
    """Per-organization running counts of plan-limited resources."""

    async def get(self, org_id: UUID, resource: Resource) -> int: ...
    async def try_increment(
        self, org_id: UUID, resource: Resource, cap: int | None
    ) -> bool: ...
    async def decrement(self, org_id: UUID, resource: Resource) -> None: ...
    async def set(self, org_id: UUID, resource: Resource, value: int) -> None: ...


class InMemoryBillingSnapshotRepo:
    def __init__(self) -> None:
        self._by_org: dict[UUID, BillingSnapshot] = {}

    async def get(self, org_id: UUID) -> BillingSnapshot | None:
        return self._by_org.get(org_id)

    def put(self, snapshot: BillingSnapshot) -> None:
        """Feed a snapshot in, standing in for the payment system's sync."""
        self._by_org[snapshot.org_id] = snapshot


class InMemoryResourceCounterRepo:
    def __init__(self) -> None:
        self._counts: dict[tuple[UUID, str], int] = {}

    async def get(self, org_id: UUID, resource: Resource) -> int:
        return self._counts.get((org_id, resource), 0)

    async def try_increment(
        self, org_id: UUID, resource: Resource, cap: int | None
    ) -> bool:
        # Capacity check and increment share one step; see InMemoryOrgInviteRepo.consume.
        key = (org_id, resource)
        current = self._counts.get(key, 0)
        if cap is not None and current >= cap:
            return False
        self._counts[key] = current + 1
        return True

    async def decrement(self, org_id: UUID, resource: Resource) -> None:
        key = (org_id, resource)
        self._counts[key] = max(self._counts.get(key, 0) - 1, 0)

    async def set(self, org_id: UUID, resource: Resource, value: int) -> None:
        self._counts[(org_id, resource)] = max(value, 0)
