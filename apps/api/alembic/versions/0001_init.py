"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=True),
    sa.Column("role", sa.String(), nullable=False, server_default="maintainer"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.CheckConstraint("role in ('admin', 'maintainer', 'supervisor')", name="ck_users_role"),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "assets",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("purchasedate", sa.Date(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_assets_created_at", "assets", ["created_at"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("asset_id", sa.String(36), sa.ForeignKey("assets.id", ondelete="CASCADE"), nullable=True),
    sa.Column("task_name", sa.String(), nullable=False),
    sa.Column("last_done_date", sa.Date(), nullable=True),
    sa.Column("next_due_date", sa.Date(), nullable=True),
    sa.Column("frequency_days", sa.Integer(), nullable=True),
    sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
    sa.Column("notes", sa.Text(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_asset_id", "tasks", ["asset_id"], unique=False)
  op.create_index("ix_tasks_next_due_date", "tasks", ["next_due_date"], unique=False)

  op.create_table(
    "identity_accounts",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("password_hash", sa.String(), nullable=True),
    sa.Column("email_confirmed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("invited_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("user_metadata", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_identity_accounts_email", "identity_accounts", ["email"], unique=True)

  op.create_table(
    "auth_sessions",
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column(
      "identity_id", sa.String(36), sa.ForeignKey("identity_accounts.id", ondelete="CASCADE"), nullable=False
    ),
    sa.Column("created_ip", sa.String(), nullable=True),
    sa.Column("user_agent", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_auth_sessions_identity_id", "auth_sessions", ["identity_id"], unique=False)

  op.create_table(
    "auth_codes",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column(
      "identity_id", sa.String(36), sa.ForeignKey("identity_accounts.id", ondelete="CASCADE"), nullable=False
    ),
    sa.Column("code_hash", sa.String(), nullable=False),
    sa.Column("purpose", sa.String(), nullable=False),
    sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_auth_codes_identity_id", "auth_codes", ["identity_id"], unique=False)
  op.create_index("ix_auth_codes_code_hash", "auth_codes", ["code_hash"], unique=True)

  op.create_table(
    "audit_events",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("actor_id", sa.String(36), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(36), nullable=True),
    sa.Column("payload", sa.JSON(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"], unique=False)


def downgrade() -> None:
  op.drop_table("audit_events")
  op.drop_table("auth_codes")
  op.drop_table("auth_sessions")
  op.drop_table("identity_accounts")
  op.drop_table("tasks")
  op.drop_table("assets")
  op.drop_table("users")
