from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    resource_type = postgresql.ENUM("LAV", "ASC", "GYM", name="resourcetype")
    resource_type.create(op.get_bind(), checkfirst=True)
    booking_status = postgresql.ENUM("booked", "cancelled", "no_show", name="bookingstatus")
    booking_status.create(op.get_bind(), checkfirst=True)
    app_role = postgresql.ENUM("resident", "staff", "admin", name="approle")
    app_role.create(op.get_bind(), checkfirst=True)
    actor_type = postgresql.ENUM("user", "staff", "system", name="actortype")
    actor_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False, index=True),
        sa.Column("role", app_role, server_default="resident"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )

    op.create_table(
        "slots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint(
            "resource_type", "day_of_week", "start_time", name="uq_slot_resource_day_start"
        ),
        sa.CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_slot_day_of_week"),
        sa.CheckConstraint("capacity > 0", name="ck_slot_capacity_positive"),
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("slot_id", sa.Integer(), sa.ForeignKey("slots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("resource_type", resource_type, nullable=False),
        sa.Column("units", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("status", booking_status, server_default="booked"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_by", sa.String(length=64)),
        sa.Column("cancellation_reason", sa.String(length=255)),
        sa.CheckConstraint(
            "(resource_type = 'LAV' AND units IN (1, 2)) OR "
            "(resource_type IN ('ASC', 'GYM') AND units = 1)",
            name="bookings_units_check",
        ),
    )
    op.create_index("idx_bookings_user_date", "bookings", ["user_id", "booking_date"])
    op.create_index(
        "idx_bookings_slot_date", "bookings", ["slot_id", "booking_date", "resource_type"]
    )
    op.create_index(
        "idx_bookings_user_week_resource",
        "bookings",
        ["user_id", "resource_type", "booking_date", "status"],
    )
    op.create_table(
        "weekly_quotas",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("lav_count", sa.Integer(), server_default="0"),
        sa.Column("asc_count", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "year", "week_number", name="uq_weekly_quota_user_week"),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_type", actor_type),
        sa.Column("actor_id", sa.String(length=64)),
        sa.Column("action", sa.String(length=255)),
        sa.Column("entity_type", sa.String(length=64)),
        sa.Column("entity_id", sa.Integer()),
        sa.Column("payload", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("weekly_quotas")
    op.drop_table("bookings")
    op.drop_table("slots")
    op.drop_table("user_roles")
    for name in ("actortype", "approle", "bookingstatus", "resourcetype"):
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
