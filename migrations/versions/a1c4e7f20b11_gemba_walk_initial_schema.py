"""gemba_walk_initial_schema

Create users, gemba_walks (+ areas, participants), findings and notifications.

Revision ID: a1c4e7f20b11
Revises:
Create Date: 2026-10-17 09:30:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1c4e7f20b11"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("username", sa.String(length=150), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("first_name", sa.String(length=100), nullable=True),
            sa.Column("last_name", sa.String(length=100), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="user"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
            sa.UniqueConstraint("email"),
        )

    if "gemba_walks" not in existing_tables:
        op.create_table(
            "gemba_walks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("date", sa.Date(), nullable=False),
            sa.Column("leader_id", sa.String(length=36), nullable=True),
            sa.Column("created_by", sa.String(length=36), nullable=False),
            sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("recurrence_pattern", sa.String(length=20), nullable=True),
            sa.Column("recurrence_end_date", sa.Date(), nullable=True),
            sa.Column("parent_walk_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["leader_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
            sa.ForeignKeyConstraint(["parent_walk_id"], ["gemba_walks.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_gemba_walks_date", "gemba_walks", ["date"])
        op.create_index("ix_gemba_walks_leader_id", "gemba_walks", ["leader_id"])
        op.create_index("ix_gemba_walks_created_by", "gemba_walks", ["created_by"])
        op.create_index("ix_gemba_walks_parent_walk_id", "gemba_walks", ["parent_walk_id"])

    if "gemba_walk_areas" not in existing_tables:
        op.create_table(
            "gemba_walk_areas",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("gemba_walk_id", sa.Integer(), nullable=False),
            sa.Column("area_name", sa.String(length=200), nullable=False),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["gemba_walk_id"], ["gemba_walks.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_gemba_walk_areas_gemba_walk_id", "gemba_walk_areas", ["gemba_walk_id"])

    if "gemba_walk_participants" not in existing_tables:
        op.create_table(
            "gemba_walk_participants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("gemba_walk_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.ForeignKeyConstraint(["gemba_walk_id"], ["gemba_walks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("gemba_walk_id", "user_id", name="uq_walk_participant"),
        )
        op.create_index(
            "ix_gemba_walk_participants_gemba_walk_id", "gemba_walk_participants", ["gemba_walk_id"],
        )
        op.create_index("ix_gemba_walk_participants_user_id", "gemba_walk_participants", ["user_id"])

    if "findings" not in existing_tables:
        op.create_table(
            "findings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("gemba_walk_id", sa.Integer(), nullable=False),
            sa.Column("area", sa.String(length=200), nullable=True),
            sa.Column("category", sa.String(length=100), nullable=False),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("responsible_id", sa.String(length=36), nullable=False),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
            sa.Column("attachment_urls", sa.JSON(), nullable=True),
            sa.Column("close_comment", sa.Text(), nullable=True),
            sa.Column("close_evidence_url", sa.String(length=500), nullable=True),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["gemba_walk_id"], ["gemba_walks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["responsible_id"], ["users.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_findings_gemba_walk_id", "findings", ["gemba_walk_id"])
        op.create_index("ix_findings_responsible_id", "findings", ["responsible_id"])
        op.create_index("ix_findings_status", "findings", ["status"])

    if "notifications" not in existing_tables:
        # related_* ids are plain integers: notifications outlive deleted walks/findings
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("related_finding_id", sa.Integer(), nullable=True),
            sa.Column("related_walk_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("is_action_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_action_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
        op.create_index("ix_notifications_related_finding_id", "notifications", ["related_finding_id"])
        op.create_index("ix_notifications_related_walk_id", "notifications", ["related_walk_id"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())

    for table in (
        "notifications",
        "findings",
        "gemba_walk_participants",
        "gemba_walk_areas",
        "gemba_walks",
        "users",
    ):
        if table in existing_tables:
            op.drop_table(table)
