"""initial sync schema: users, surveys, photos, sync_logs

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    # ── users ────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(50), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "SUPERVISOR", "ENUMERATOR", name="userrole"),
            nullable=False,
        ),
        sa.Column("full_name", sa.String(200), nullable=True),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_login", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # ── surveys ──────────────────────────────────────
    op.create_table(
        "surveys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.String(100), nullable=False),
        sa.Column("device_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.String(50), nullable=True),
        sa.Column("farmer_name", sa.String(200), nullable=False),
        sa.Column("household_size", sa.Integer(), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("village", sa.String(100), nullable=True),
        sa.Column("island", sa.String(100), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("gps_accuracy", sa.Float(), nullable=True),
        sa.Column("farm_size", sa.Float(), nullable=True),
        sa.Column("crops", JSONType, nullable=True),
        sa.Column("livestock", JSONType, nullable=True),
        sa.Column("pest_issues", sa.String(50), nullable=True),
        sa.Column("pest_severity", sa.String(20), nullable=True),
        sa.Column("pest_description", sa.Text(), nullable=True),
        sa.Column("treatment_used", sa.Text(), nullable=True),
        sa.Column("harvest_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("client_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("server_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_by", sa.String(50), nullable=True),
        sa.UniqueConstraint("client_id", "device_id", name="uq_surveys_client_device"),
    )
    op.create_index("ix_surveys_user_id", "surveys", ["user_id"])
    op.create_index("ix_surveys_village", "surveys", ["village"])
    op.create_index("ix_surveys_island", "surveys", ["island"])
    op.create_index("idx_surveys_created_at", "surveys", ["created_at"])
    op.create_index("idx_surveys_farmer_name", "surveys", ["farmer_name"])
    op.create_index("idx_surveys_lat_lng", "surveys", ["latitude", "longitude"])

    # ── photos ───────────────────────────────────────
    op.create_table(
        "photos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "survey_id",
            sa.Integer(),
            sa.ForeignKey("surveys.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("photo_data", sa.Text(), nullable=False),
        sa.Column("photo_type", sa.String(50), nullable=True),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("survey_id", "content_hash", name="uq_photos_survey_hash"),
    )
    op.create_index("ix_photos_survey_id", "photos", ["survey_id"])

    # ── sync_logs ────────────────────────────────────
    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("user_id", sa.String(50), nullable=True),
        sa.Column("device_id", sa.String(100), nullable=True),
        sa.Column("survey_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("inserted_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rejected_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            server_default=sa.func.now(), nullable=False,
        ),
    )
    op.create_index("idx_sync_logs_created_at", "sync_logs", ["created_at"])
    op.create_index("idx_sync_logs_device", "sync_logs", ["device_id", "created_at"])


def downgrade() -> None:
    op.drop_table("sync_logs")
    op.drop_table("photos")
    op.drop_table("surveys")
    op.drop_table("users")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
