"""Initial CRM schema: users, oauth states, audience segments, campaigns"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

USER_ROLE = sa.Enum("user", "admin", "customer", name="user_role")
AUTH_PROVIDER = sa.Enum("local", "google", name="auth_provider")
CAMPAIGN_TYPE = sa.Enum("email", "sms", "push", "social", name="campaign_type")
CAMPAIGN_STATUS = sa.Enum(
    "draft", "scheduled", "sending", "completed", "failed", "paused", name="campaign_status"
)
RECURRING_PATTERN = sa.Enum("daily", "weekly", "monthly", name="recurring_pattern")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("role", USER_ROLE, nullable=False),
        sa.Column("provider", AUTH_PROVIDER, nullable=False),
        sa.Column("google_id", sa.String(255), nullable=True, unique=True),
        sa.Column("avatar", sa.Text(), nullable=True),
        sa.Column("email_verified", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(50), nullable=True),
        sa.Column("total_spent", sa.Float(), nullable=False),
        sa.Column("orders", sa.Integer(), nullable=False),
        sa.Column("visits", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_users_role_created_by", "users", ["role", "created_by"])
    op.create_index("idx_users_created_at", "users", ["created_at"])

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "audience_segments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("audience_size", sa.Integer(), nullable=False),
        sa.Column("estimated_reach", sa.Integer(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_audience_segments_owner_created", "audience_segments", ["created_by", "created_at"])
    op.create_index("idx_audience_segments_active", "audience_segments", ["is_active"])

    op.create_table(
        "campaigns",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("type", CAMPAIGN_TYPE, nullable=False),
        sa.Column("status", CAMPAIGN_STATUS, nullable=False),
        sa.Column("audience_segment_id", sa.String(36), nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("template", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=False),
        sa.Column("send_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("schedule_timezone", sa.String(64), nullable=False),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurring_pattern", RECURRING_PATTERN, nullable=True),
        sa.Column("audience_size", sa.Integer(), nullable=False),
        sa.Column("sent", sa.Integer(), nullable=False),
        sa.Column("delivered", sa.Integer(), nullable=False),
        sa.Column("failed", sa.Integer(), nullable=False),
        sa.Column("opened", sa.Integer(), nullable=False),
        sa.Column("clicked", sa.Integer(), nullable=False),
        sa.Column("unsubscribed", sa.Integer(), nullable=False),
        sa.Column("bounced", sa.Integer(), nullable=False),
        sa.Column("track_opens", sa.Boolean(), nullable=False),
        sa.Column("track_clicks", sa.Boolean(), nullable=False),
        sa.Column("allow_unsubscribe", sa.Boolean(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(36), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_campaigns_owner_created", "campaigns", ["created_by", "created_at"])
    op.create_index("idx_campaigns_status", "campaigns", ["status"])
    op.create_index("idx_campaigns_type", "campaigns", ["type"])
    op.create_index("idx_campaigns_send_at", "campaigns", ["send_at"])
    op.create_index("idx_campaigns_segment", "campaigns", ["audience_segment_id"])


def downgrade() -> None:
    op.drop_index("idx_campaigns_segment", table_name="campaigns")
    op.drop_index("idx_campaigns_send_at", table_name="campaigns")
    op.drop_index("idx_campaigns_type", table_name="campaigns")
    op.drop_index("idx_campaigns_status", table_name="campaigns")
    op.drop_index("idx_campaigns_owner_created", table_name="campaigns")
    op.drop_table("campaigns")
    op.drop_index("idx_audience_segments_active", table_name="audience_segments")
    op.drop_index("idx_audience_segments_owner_created", table_name="audience_segments")
    op.drop_table("audience_segments")
    op.drop_table("oauth_states")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_index("idx_users_role_created_by", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (RECURRING_PATTERN, CAMPAIGN_STATUS, CAMPAIGN_TYPE, AUTH_PROVIDER, USER_ROLE):
        enum_type.drop(bind, checkfirst=True)
