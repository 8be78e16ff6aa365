"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=30), nullable=False, server_default="bookable"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "booking_settings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("capacity_per_slot", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("enable_waitlist", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_booking_settings_product_id", "booking_settings", ["product_id"], unique=True)

    op.create_table(
        "availability_slots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("product_id", sa.String(length=36), nullable=False),
        sa.Column("slot_date", sa.String(length=10), nullable=False),
        sa.Column("slot_time", sa.String(length=5), nullable=False),
        sa.Column("slot_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_capacity", sa.Integer(), nullable=False),
        sa.Column("reserved_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("product_id", "slot_date", "slot_time", name="uq_slot_product_date_time"),
        sa.CheckConstraint("reserved_count >= 0 AND reserved_count <= total_capacity",
                           name="ck_slot_reserved_within_capacity"),
    )
    op.create_index("ix_availability_slots_product_id", "availability_slots", ["product_id"])
    op.create_index("ix_availability_slots_slot_date", "availability_slots", ["slot_date"])
    op.create_index("ix_availability_slots_slot_start", "availability_slots", ["slot_start"])

    op.create_table(
        "slot_prices",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("slot_id", sa.String(length=36), nullable=False),
        sa.Column("person_type", sa.String(length=10), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.UniqueConstraint("slot_id", "person_type", name="uq_slot_price_person_type"),
    )
    op.create_index("ix_slot_prices_slot_id", "slot_prices", ["slot_id"])

    op.create_table(
        "booking_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("availability_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("person_type_quantities", sa.JSON(), nullable=True),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending_payment"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_booking_requests_availability_id", "booking_requests", ["availability_id"])
    op.create_index("ix_booking_requests_user_id", "booking_requests", ["user_id"])
    op.create_index("ix_booking_requests_status_expires_at", "booking_requests", ["status", "expires_at"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_request_id", sa.String(length=36), nullable=False),
        sa.Column("order_item_id", sa.String(length=36), nullable=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("availability_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="confirmed"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bookings_booking_request_id", "bookings", ["booking_request_id"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_availability_id", "bookings", ["availability_id"])

    op.create_table(
        "booking_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("person_type", sa.String(length=10), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
    )
    op.create_index("ix_booking_items_booking_id", "booking_items", ["booking_id"])

    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("availability_id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="waiting"),
        sa.Column("notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("availability_id", "position", name="uq_waitlist_slot_position"),
    )
    op.create_index("ix_waitlist_entries_availability_id", "waitlist_entries", ["availability_id"])
    op.create_index("ix_waitlist_entries_user_id", "waitlist_entries", ["user_id"])
    live = sa.text("status IN ('waiting', 'notified')")
    op.create_index(
        "uq_waitlist_live_user", "waitlist_entries", ["availability_id", "user_id"],
        unique=True, postgresql_where=live, sqlite_where=live,
    )

    op.create_table(
        "notification_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("kind", sa.String(length=60), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False, server_default=""),
        sa.Column("payload_json", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_notification_logs_kind", "notification_logs", ["kind"])
    op.create_index("ix_notification_logs_user_id", "notification_logs", ["user_id"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])


def downgrade() -> None:
    for table in (
        "audit_logs",
        "notification_logs",
        "waitlist_entries",
        "booking_items",
        "bookings",
        "booking_requests",
        "slot_prices",
        "availability_slots",
        "booking_settings",
        "products",
    ):
        op.drop_table(table)
