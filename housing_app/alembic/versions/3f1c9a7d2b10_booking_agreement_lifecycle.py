"""booking and agreement lifecycle tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:12:41.530211

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        sa.Column("signing_order", sa.String(length=13), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_properties_owner_id", "properties", ["owner_id"])

    op.create_table(
        "room_types",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("property_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("room_kind", sa.String(length=6), nullable=False),
        sa.Column("total_rooms", sa.Integer(), nullable=False),
        sa.Column("available_rooms", sa.Integer(), nullable=False),
        sa.Column("max_occupancy", sa.Integer(), nullable=False),
        sa.Column("price_per_bed", sa.Numeric(12, 2), nullable=False),
        sa.Column("price_per_room", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("total_rooms >= 1", name="ck_room_types_total_positive"),
        sa.CheckConstraint(
            "available_rooms >= 0 AND available_rooms <= total_rooms",
            name="ck_room_types_available_bounds",
        ),
        sa.CheckConstraint(
            "max_occupancy >= 1", name="ck_room_types_occupancy_positive"
        ),
        sa.ForeignKeyConstraint(
            ["property_id"], ["properties.id"], ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_room_types_property_id", "room_types", ["property_id"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("property_id", sa.Uuid(), nullable=False),
        sa.Column("room_type_id", sa.Uuid(), nullable=True),
        sa.Column("rooms_count", sa.Integer(), nullable=False),
        sa.Column("members_count", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=9), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("decided_by_id", sa.Uuid(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("completion_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("end_date > start_date", name="ck_bookings_dates"),
        sa.CheckConstraint("rooms_count >= 1", name="ck_bookings_rooms_positive"),
        sa.CheckConstraint(
            "members_count >= 1", name="ck_bookings_members_positive"
        ),
        sa.ForeignKeyConstraint(
            ["property_id"], ["properties.id"], ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["room_type_id"], ["room_types.id"], ondelete="SET NULL"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bookings_student_id", "bookings", ["student_id"])
    op.create_index("ix_bookings_property_id", "bookings", ["property_id"])
    op.create_index("ix_bookings_room_type_id", "bookings", ["room_type_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "agreements",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("agreement_number", sa.String(length=32), nullable=False),
        sa.Column("booking_id", sa.Uuid(), nullable=False),
        sa.Column("property_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("student_id", sa.Uuid(), nullable=False),
        sa.Column("agreement_type", sa.String(length=6), nullable=False),
        sa.Column("status", sa.String(length=15), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("monthly_rent", sa.Numeric(12, 2), nullable=False),
        sa.Column("security_deposit", sa.Numeric(12, 2), nullable=False),
        sa.Column("maintenance_charges", sa.Numeric(12, 2), nullable=False),
        sa.Column("notice_period_days", sa.Integer(), nullable=False),
        sa.Column("terms", sa.JSON(), nullable=False),
        sa.Column("rules", sa.JSON(), nullable=False),
        sa.Column("included_services", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("owner_signed", sa.Boolean(), nullable=False),
        sa.Column("owner_signed_at", sa.DateTime(), nullable=True),
        sa.Column("owner_signature_data", sa.Text(), nullable=True),
        sa.Column("owner_signature_ip", sa.String(length=64), nullable=True),
        sa.Column("owner_signature_user_agent", sa.String(length=255), nullable=True),
        sa.Column("student_signed", sa.Boolean(), nullable=False),
        sa.Column("student_signed_at", sa.DateTime(), nullable=True),
        sa.Column("student_signature_data", sa.Text(), nullable=True),
        sa.Column("student_signature_ip", sa.String(length=64), nullable=True),
        sa.Column(
            "student_signature_user_agent", sa.String(length=255), nullable=True
        ),
        sa.Column("terminated_by_id", sa.Uuid(), nullable=True),
        sa.Column("termination_reason", sa.Text(), nullable=True),
        sa.Column("terminated_at", sa.DateTime(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("expired_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("end_date > start_date", name="ck_agreements_dates"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["property_id"], ["properties.id"], ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_agreements_agreement_number",
        "agreements",
        ["agreement_number"],
        unique=True,
    )
    op.create_index("ix_agreements_booking_id", "agreements", ["booking_id"])
    op.create_index("ix_agreements_owner_id", "agreements", ["owner_id"])
    op.create_index("ix_agreements_student_id", "agreements", ["student_id"])
    op.create_index("ix_agreements_status", "agreements", ["status"])
    op.create_index(
        "uq_agreements_open_booking",
        "agreements",
        ["booking_id"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )

    op.create_table(
        "lifecycle_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_type", sa.String(length=9), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("event", sa.String(length=20), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_lifecycle_logs_entity_id", "lifecycle_logs", ["entity_id"])
    op.create_index("ix_lifecycle_logs_event", "lifecycle_logs", ["event"])


def downgrade():
    op.drop_index("ix_lifecycle_logs_event", table_name="lifecycle_logs")
    op.drop_index("ix_lifecycle_logs_entity_id", table_name="lifecycle_logs")
    op.drop_table("lifecycle_logs")
    op.drop_index("uq_agreements_open_booking", table_name="agreements")
    op.drop_index("ix_agreements_status", table_name="agreements")
    op.drop_index("ix_agreements_student_id", table_name="agreements")
    op.drop_index("ix_agreements_owner_id", table_name="agreements")
    op.drop_index("ix_agreements_booking_id", table_name="agreements")
    op.drop_index("ix_agreements_agreement_number", table_name="agreements")
    op.drop_table("agreements")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_room_type_id", table_name="bookings")
    op.drop_index("ix_bookings_property_id", table_name="bookings")
    op.drop_index("ix_bookings_student_id", table_name="bookings")
    op.drop_table("bookings")
    op.drop_index("ix_room_types_property_id", table_name="room_types")
    op.drop_table("room_types")
    op.drop_index("ix_properties_owner_id", table_name="properties")
    op.drop_table("properties")
