"""create membership tables

Revision ID: 3b1f9c2a7d10
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1f9c2a7d10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "organizations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("billing_plan", sa.String(length=32), nullable=True),
        sa.Column("kind", sa.String(length=16), nullable=False, server_default="practice"),
        sa.Column("country", sa.String(length=100), nullable=True),
    )
    op.create_index("ix_organizations_created_by", "organizations", ["created_by"])

    op.create_table(
        "org_memberships",
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), primary_key=True),
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("joined_at", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("display_name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("removed_at", sa.Integer(), nullable=True),
        sa.Column("removed_by", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_org_memberships_user_id", "org_memberships", ["user_id"])

    op.create_table(
        "org_invites",
        sa.Column("code", sa.String(length=128), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
    )

    op.create_table(
        "org_invite_redemptions",
        sa.Column(
            "code", sa.String(length=128), sa.ForeignKey("org_invites.code"), primary_key=True
        ),
        sa.Column("subject_id", sa.String(length=128), primary_key=True),
        sa.Column("redeemed_at", sa.Integer(), nullable=False),
    )

    op.create_table(
        "parent_invites",
        sa.Column("code", sa.String(length=16), primary_key=True),
        sa.Column("specialist_id", sa.String(length=128), nullable=False),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.Integer(), nullable=False),
    )

    op.create_table(
        "org_child_links",
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), primary_key=True),
        sa.Column("child_id", sa.String(length=128), primary_key=True),
        sa.Column("assigned", sa.Boolean(), nullable=False),
        sa.Column("assigned_at", sa.Integer(), nullable=False),
        sa.Column("assigned_specialist_id", sa.String(length=128), nullable=True),
        sa.Column("parent_uid", sa.String(length=128), nullable=True),
    )

    op.create_table(
        "parent_org_links",
        sa.Column("parent_uid", sa.String(length=128), primary_key=True),
        sa.Column("org_id", sa.Uuid(), sa.ForeignKey("organizations.id"), primary_key=True),
        sa.Column("org_name", sa.String(length=200), nullable=False),
        sa.Column("linked_at", sa.Integer(), nullable=False),
        sa.Column("child_ids", sa.JSON(), nullable=False),
    )

    op.create_table(
        "child_link_intents",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("org_id", sa.Uuid(), nullable=False),
        sa.Column("child_id", sa.String(length=128), nullable=False),
        sa.Column("parent_uid", sa.String(length=128), nullable=False),
        sa.Column("specialist_id", sa.String(length=128), nullable=False),
        sa.Column("invite_code", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.Integer(), nullable=False),
        sa.Column("completed_at", sa.Integer(), nullable=True),
    )
    op.create_index("ix_child_link_intents_status", "child_link_intents", ["status"])

    op.create_table(
        "billing_snapshots",
        sa.Column("org_id", sa.Uuid(), primary_key=True),
        sa.Column("plan_id", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("expires_at", sa.Integer(), nullable=True),
    )

    op.create_table(
        "org_resource_counters",
        sa.Column("org_id", sa.Uuid(), primary_key=True),
        sa.Column("resource", sa.String(length=32), primary_key=True),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
    )


def downgrade() -> None:
    op.drop_table("org_resource_counters")
    op.drop_table("billing_snapshots")
    op.drop_index("ix_child_link_intents_status", table_name="child_link_intents")
    op.drop_table("child_link_intents")
    op.drop_table("parent_org_links")
    op.drop_table("org_child_links")
    op.drop_table("parent_invites")
    op.drop_table("org_invite_redemptions")
    op.drop_table("org_invites")
    op.drop_index("ix_org_memberships_user_id", table_name="org_memberships")
    op.drop_table("org_memberships")
    op.drop_index("ix_organizations_created_by", table_name="organizations")
    op.drop_table("organizations")
