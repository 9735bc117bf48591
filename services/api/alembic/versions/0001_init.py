"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-16

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Index("ix_users_email", "email", unique=True),
    )

    op.create_table(
        "return_locations",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("address", sa.String(length=512), nullable=False),
    )

    op.create_table(
        "manufacturers",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=True),
        sa.UniqueConstraint("name", name="uq_manufacturers_name"),
    )

    op.create_table(
        "bikes",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("make", sa.String(length=128), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("serial_number", sa.String(length=128), nullable=False),
        sa.Column("tracker_id", sa.String(length=8), nullable=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("last_signal", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("return_location_id", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["return_location_id"], ["return_locations.id"], name="fk_bikes_return_location"),
        sa.Index("ix_bikes_make", "make"),
        sa.Index("ix_bikes_serial_number", "serial_number"),
        sa.Index("ix_bikes_status", "status"),
    )

    op.create_table(
        "location_samples",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bike_id"], ["bikes.id"], name="fk_location_samples_bike"),
        sa.Index("ix_location_samples_bike_id_ts", "bike_id", "ts"),
    )

    op.create_table(
        "pending_updates",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("reported_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("enqueued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Index("ix_pending_updates_bike_id", "bike_id"),
        sa.Index("ix_pending_updates_enqueued_at", "enqueued_at"),
    )

    op.create_table(
        "attempts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["bike_id"], ["bikes.id"], name="fk_attempts_bike"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_attempts_user"),
        sa.Index("ix_attempts_bike_id", "bike_id"),
    )
    op.create_index(
        "uq_attempts_open_bike_id",
        "attempts",
        ["bike_id"],
        unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table(
        "recoveries",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("found_by", sa.Uuid(), nullable=False),
        sa.Column("return_location_id", sa.Uuid(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recovered_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bike_id"], ["bikes.id"], name="fk_recoveries_bike"),
        sa.ForeignKeyConstraint(["found_by"], ["users.id"], name="fk_recoveries_user"),
        sa.ForeignKeyConstraint(["return_location_id"], ["return_locations.id"], name="fk_recoveries_location"),
        sa.Index("ix_recoveries_bike_id", "bike_id"),
        sa.Index("ix_recoveries_recovered_at", "recovered_at"),
    )

    op.create_table(
        "missing_reports",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("make", sa.String(length=128), nullable=False),
        sa.Column("model", sa.String(length=128), nullable=False),
        sa.Column("serial_number", sa.String(length=128), nullable=False),
        sa.Column("member_email", sa.String(length=320), nullable=False),
        sa.Column("last_seen_on", sa.DateTime(timezone=True), nullable=True),
        sa.Column("missing_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bike_id"], ["bikes.id"], name="fk_missing_reports_bike"),
        sa.UniqueConstraint("bike_id", name="uq_missing_reports_bike_id"),
    )

    op.create_table(
        "notes",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("bike_id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bike_id"], ["bikes.id"], name="fk_notes_bike"),
        sa.Index("ix_notes_bike_id", "bike_id"),
    )


def downgrade() -> None:
    op.drop_table("notes")
    op.drop_table("missing_reports")
    op.drop_table("recoveries")
    op.drop_index("uq_attempts_open_bike_id", table_name="attempts")
    op.drop_table("attempts")
    op.drop_table("pending_updates")
    op.drop_table("location_samples")
    op.drop_table("bikes")
    op.drop_table("manufacturers")
    op.drop_table("return_locations")
    op.drop_table("users")
