from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal
from uuid import UUID

SubscriptionStatus = Literal["active", "expired", "cancelled"]
Resource = Literal["children", "specialists"]

CHILDREN: Resource = "children"
SPECIALISTS: Resource = "specialists"


@dataclass(frozen=True, slots=True)
class BillingSnapshot:
    """Read-only view of an org's subscription, owned by the payment system."""

    org_id: UUID
    plan_id: str
    status: SubscriptionStatus
    expires_at: datetime | None = None

    def is_active(self, now: datetime) -> bool:
        if self.status != "active":
            return False
        return self.expires_at is None or now <= self.expires_at


@dataclass(frozen=True, slots=True)
class PlanLimit:
    children: int | None  # None = unlimited
    specialists: int | None

    def cap_for(self, resource: Resource) -> int | None:
        return self.children if resource == CHILDREN else self.specialists
