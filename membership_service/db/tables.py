"""SQLAlchemy table definitions.

Rows map onto the frozen dataclasses in membership_service/models; the
pg_* repositories convert between the two.  Timestamps are stored as
integer epoch seconds so comparisons in conditional UPDATEs are plain
integer comparisons on every backend.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from membership_service.db.engine import Base


class OrganizationRow(Base):
    __tablename__ = "organizations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    billing_plan: Mapped[str | None] = mapped_column(String(32), nullable=True)
    kind: Mapped[str] = mapped_column(
        String(16), nullable=False, default="practice"
    )  # practice|personal
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)


class MembershipRow(Base):
    __tablename__ = "org_memberships"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)  # org_admin|specialist
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # active|inactive
    joined_at: Mapped[int] = mapped_column(Integer, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    display_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    removed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)
    removed_by: Mapped[str | None] = mapped_column(String(128), nullable=True)


class OrgInviteRow(Base):
    __tablename__ = "org_invites"

    code: Mapped[str] = mapped_column(String(128), primary_key=True)
    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    max_uses: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class OrgInviteRedemptionRow(Base):
    __tablename__ = "org_invite_redemptions"

    code: Mapped[str] = mapped_column(
        String(128), ForeignKey("org_invites.code"), primary_key=True
    )
    subject_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    redeemed_at: Mapped[int] = mapped_column(Integer, nullable=False)


class ParentInviteRow(Base):
    __tablename__ = "parent_invites"

    code: Mapped[str] = mapped_column(String(16), primary_key=True)
    specialist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), nullable=False
    )
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    expires_at: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)


class ChildOrgLinkRow(Base):
    __tablename__ = "org_child_links"

    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), primary_key=True
    )
    child_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    assigned: Mapped[bool] = mapped_column(Boolean, nullable=False)
    assigned_at: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_specialist_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    parent_uid: Mapped[str | None] = mapped_column(String(128), nullable=True)


class ParentLinkRow(Base):
    __tablename__ = "parent_org_links"

    parent_uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    org_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("organizations.id"), primary_key=True
    )
    org_name: Mapped[str] = mapped_column(String(200), nullable=False)
    linked_at: Mapped[int] = mapped_column(Integer, nullable=False)
    child_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)


class LinkIntentRow(Base):
    __tablename__ = "child_link_intents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    child_id: Mapped[str] = mapped_column(String(128), nullable=False)
    parent_uid: Mapped[str] = mapped_column(String(128), nullable=False)
    specialist_id: Mapped[str] = mapped_column(String(128), nullable=False)
    invite_code: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending", index=True
    )  # pending|complete
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


class BillingSnapshotRow(Base):
    """Written by the payment subsystem; read-only here."""

    __tablename__ = "billing_snapshots"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    plan_id: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    expires_at: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ResourceCounterRow(Base):
    __tablename__ = "org_resource_counters"

    org_id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True)
    resource: Mapped[str] = mapped_column(String(32), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
