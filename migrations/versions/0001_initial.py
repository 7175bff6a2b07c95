"""Initial schema: users, chairs, rides, ride_status_events, coupons, payment_tokens, settings"""
from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("username", sa.String(255), unique=True, nullable=False),
        sa.Column("firstname", sa.String(255), nullable=False),
        sa.Column("lastname", sa.String(255), nullable=False),
        sa.Column("date_of_birth", sa.String(30), nullable=False),
        sa.Column("invitation_code", sa.String(30), unique=True, nullable=False),
        sa.Column("current_ride_id", sa.String, nullable=True),
        sa.Column("ride_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "chairs",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("owner_id", sa.String, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("speed", sa.Integer, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("latitude", sa.Integer, nullable=True),
        sa.Column("longitude", sa.Integer, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_ride_id", sa.String, nullable=True),
        sa.Column("total_distance", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_rides_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_evaluation", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_chairs_owner", "chairs", ["owner_id"])
    op.create_index("idx_chairs_current_ride", "chairs", ["current_ride_id"])
    op.create_index("idx_chairs_idle", "chairs", ["is_active", "current_ride_id", "speed"])

    op.create_table(
        "rides",
        sa.Column("id", sa.String, primary_key=True),
        sa.Column("user_id", sa.String, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("chair_id", sa.String, sa.ForeignKey("chairs.id"), nullable=True),
        sa.Column("pickup_latitude", sa.Integer, nullable=False),
        sa.Column("pickup_longitude", sa.Integer, nullable=False),
        sa.Column("destination_latitude", sa.Integer, nullable=False),
        sa.Column("destination_longitude", sa.Integer, nullable=False),
        sa.Column("fare", sa.Integer, nullable=True),
        sa.Column("evaluation", sa.Integer, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="MATCHING"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_user", "rides", ["user_id"])
    op.create_index("idx_rides_chair", "rides", ["chair_id"])
    op.create_index("idx_rides_created", "rides", ["created_at"])

    op.create_table(
        "ride_status_events",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("ride_id", sa.String, sa.ForeignKey("rides.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("app_delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("chair_delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_ride_status_events_ride", "ride_status_events", ["ride_id", "created_at"])

    op.create_table(
        "coupons",
        sa.Column("user_id", sa.String, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("code", sa.String(255), primary_key=True),
        sa.Column("discount", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("used_by", sa.String, nullable=True),
    )
    op.create_index("idx_coupons_code", "coupons", ["code"])
    op.create_index("idx_coupons_used_by", "coupons", ["used_by"])

    op.create_table(
        "payment_tokens",
        sa.Column("user_id", sa.String, sa.ForeignKey("users.id"), primary_key=True),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "settings",
        sa.Column("name", sa.String(255), primary_key=True),
        sa.Column("value", sa.String(1024), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("settings")
    op.drop_table("payment_tokens")
    op.drop_table("coupons")
    op.drop_table("ride_status_events")
    op.drop_table("rides")
    op.drop_table("chairs")
    op.drop_table("users")
