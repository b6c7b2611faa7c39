"""Initial schema: users, device attempts, activity log

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column("device_name", sa.String(100), nullable=True),
        sa.Column("device_model", sa.String(100), nullable=True),
        sa.Column("device_platform", sa.String(50), nullable=True),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_device_id", "users", ["device_id"], unique=True)

    op.create_table(
        "device_attempts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("device_id", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("registration_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("blocked_at", sa.DateTime(), nullable=True),
        sa.Column("block_reason", sa.Text(), nullable=True),
        sa.Column(
            "unblock_request_sent", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("unblock_request_message", sa.Text(), nullable=True),
        sa.Column("unblock_requested_at", sa.DateTime(), nullable=True),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_login_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("login_block_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("login_block_expires_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("registration_attempts >= 0", name="ck_device_attempts_reg_nonneg"),
        sa.CheckConstraint("login_attempts >= 0", name="ck_device_attempts_login_nonneg"),
        sa.CheckConstraint(
            "login_block_level BETWEEN 0 AND 3", name="ck_device_attempts_login_level"
        ),
    )
    op.create_index("ix_device_attempts_device_id", "device_attempts", ["device_id"], unique=True)
    op.create_index("ix_device_attempts_is_blocked", "device_attempts", ["is_blocked"])
    op.create_index(
        "ix_device_attempts_unblock_request_sent", "device_attempts", ["unblock_request_sent"]
    )

    op.create_table(
        "activity_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index("ix_activity_log_device_id", "activity_log", ["device_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_log_device_id")
    op.drop_table("activity_log")
    op.drop_index("ix_device_attempts_unblock_request_sent")
    op.drop_index("ix_device_attempts_is_blocked")
    op.drop_index("ix_device_attempts_device_id")
    op.drop_table("device_attempts")
    op.drop_index("ix_users_device_id")
    op.drop_index("ix_users_role")
    op.drop_index("ix_users_email")
    op.drop_index("ix_users_username")
    op.drop_table("users")
