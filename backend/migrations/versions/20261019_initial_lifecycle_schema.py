"""Initial booking/job lifecycle schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("vehicle_reg", sa.String(16), nullable=False),
        sa.Column("vehicle_type", sa.String(16), nullable=False),
        sa.Column("vehicle_fuel_type", sa.String(16), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("vehicle_reg"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("drivers", schema=None) as batch_op:
        batch_op.create_index("ix_drivers_is_active", ["is_active"], unique=False)

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_number", sa.String(32), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=True),
        sa.Column("site_name", sa.String(255), nullable=False),
        sa.Column("site_address", sa.Text(), nullable=False),
        sa.Column("postcode", sa.String(16), nullable=False),
        sa.Column("site_lat", sa.Float(), nullable=True),
        sa.Column("site_lng", sa.Float(), nullable=True),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("contact_phone", sa.String(32), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("charity_percent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("preferred_vehicle_type", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="created"),
        sa.Column("estimated_co2e_kg", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("estimated_buyback_pence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("round_trip_distance_km", sa.Numeric(10, 2), nullable=True),
        sa.Column("round_trip_distance_miles", sa.Numeric(10, 2), nullable=True),
        sa.Column("driver_id", sa.Integer(), nullable=True),
        sa.Column("driver_name", sa.String(255), nullable=True),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("collected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sanitised_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(64), nullable=True),
        sa.Column("scheduled_by", sa.String(64), nullable=True),
        sa.Column("completed_by", sa.String(64), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["driver_id"], ["drivers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.create_index("ix_bookings_booking_number", ["booking_number"], unique=True)
        batch_op.create_index("ix_bookings_client_name", ["client_name"], unique=False)
        batch_op.create_index("ix_bookings_status", ["status"], unique=False)
        batch_op.create_index("ix_bookings_driver_id", ["driver_id"], unique=False)
        batch_op.create_index("ix_bookings_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_bookings_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "booking_asset_lines",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.String(32), nullable=False),
        sa.Column("category_name", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_booking_lines_quantity_positive"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "category_id", name="uq_booking_lines_booking_category"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("booking_asset_lines", schema=None) as batch_op:
        batch_op.create_index("ix_booking_asset_lines_booking_id", ["booking_id"], unique=False)

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_number", sa.String(32), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="booked"),
        sa.Column("driver_id", sa.Integer(), nullable=True),
        sa.Column("driver_name", sa.String(255), nullable=False),
        sa.Column("vehicle_reg", sa.String(16), nullable=False),
        sa.Column("vehicle_type", sa.String(16), nullable=False),
        sa.Column("vehicle_fuel_type", sa.String(16), nullable=True),
        sa.Column("driver_phone", sa.String(32), nullable=True),
        sa.Column("co2e_saved_kg", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("travel_emissions_kg", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("buyback_value_pence", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("charity_percent", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("round_trip_distance_km", sa.Numeric(10, 2), nullable=True),
        sa.Column("journey_details", sa.JSON(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.ForeignKeyConstraint(["driver_id"], ["drivers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("jobs", schema=None) as batch_op:
        batch_op.create_index("ix_jobs_job_number", ["job_number"], unique=True)
        batch_op.create_index("ix_jobs_status", ["status"], unique=False)
        batch_op.create_index("ix_jobs_driver_id", ["driver_id"], unique=False)
        batch_op.create_index("ix_jobs_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_jobs_status_created", ["status", "created_at"], unique=False)

    op.create_table(
        "job_assets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.String(32), nullable=False),
        sa.Column("category_name", sa.String(64), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("job_assets", schema=None) as batch_op:
        batch_op.create_index("ix_job_assets_job_id", ["job_id"], unique=False)

    op.create_table(
        "job_evidence",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("photos", sa.JSON(), nullable=False),
        sa.Column("signature", sa.Text(), nullable=True),
        sa.Column("seal_numbers", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id", "status", name="uq_job_evidence_job_status"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("job_evidence", schema=None) as batch_op:
        batch_op.create_index("ix_job_evidence_job_id", ["job_id"], unique=False)

    op.create_table(
        "grading_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("asset_id", sa.String(32), nullable=False),
        sa.Column("asset_category", sa.String(64), nullable=False),
        sa.Column("grade", sa.String(16), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("resale_value_per_unit_pence", sa.Integer(), nullable=False),
        sa.Column("resale_total_pence", sa.Integer(), nullable=False),
        sa.Column("condition", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("graded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("graded_by", sa.String(64), nullable=True),
        sa.Column("revision", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("booking_id", "asset_id", name="uq_grading_booking_asset"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("grading_records", schema=None) as batch_op:
        batch_op.create_index("ix_grading_records_booking_id", ["booking_id"], unique=False)
        batch_op.create_index("ix_grading_records_job_id", ["job_id"], unique=False)

    op.create_table(
        "sanitisation_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("asset_id", sa.String(32), nullable=False),
        sa.Column("method", sa.String(32), nullable=False),
        sa.Column("method_details", sa.Text(), nullable=True),
        sa.Column("certificate_id", sa.String(32), nullable=False),
        sa.Column("certificate_url", sa.String(512), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_by", sa.String(64), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("performed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("performed_by", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("certificate_id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sanitisation_records", schema=None) as batch_op:
        batch_op.create_index("ix_sanitisation_records_booking_id", ["booking_id"], unique=False)
        batch_op.create_index("ix_sanitisation_records_job_id", ["job_id"], unique=False)
        batch_op.create_index("ix_sanitisation_booking_asset", ["booking_id", "asset_id"], unique=False)

    op.create_table(
        "lifecycle_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), nullable=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("from_status", sa.String(16), nullable=True),
        sa.Column("to_status", sa.String(16), nullable=True),
        sa.Column("actor", sa.String(64), nullable=True),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("lifecycle_events", schema=None) as batch_op:
        batch_op.create_index("ix_lifecycle_events_booking_id", ["booking_id"], unique=False)
        batch_op.create_index("ix_lifecycle_events_job_id", ["job_id"], unique=False)
        batch_op.create_index("ix_lifecycle_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_lifecycle_events_booking_occurred", ["booking_id", "occurred_at"], unique=False)

    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("document_sequences", schema=None) as batch_op:
        batch_op.create_index("ix_document_sequences_document_type", ["document_type"], unique=False)


def downgrade():
    op.drop_table("document_sequences")
    op.drop_table("lifecycle_events")
    op.drop_table("sanitisation_records")
    op.drop_table("grading_records")
    op.drop_table("job_evidence")
    op.drop_table("job_assets")
    op.drop_table("jobs")
    op.drop_table("booking_asset_lines")
    op.drop_table("bookings")
    op.drop_table("drivers")
