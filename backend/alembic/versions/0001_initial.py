"""initial schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "patients",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("last_name", sa.String(length=120), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=False),
        sa.Column("last_name_kana", sa.String(length=120), nullable=False),
        sa.Column("first_name_kana", sa.String(length=120), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("first_visit_date", sa.Date(), nullable=False),
        sa.Column("address", sa.String(length=300), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("emergency_contact", sa.String(length=200), nullable=True),
        sa.Column("medical_history", sa.Text(), nullable=True),
        sa.Column("current_medications", sa.Text(), nullable=True),
        sa.Column("allergies", sa.Text(), nullable=True),
        sa.Column(
            "status",
            sa.Enum("active", "completed", name="patient_status"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "chart_entries",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("patient_id", sa.String(length=36), sa.ForeignKey("patients.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("therapy_methods", sa.JSON(), nullable=False),
        sa.Column("next_appointment", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modified_reason", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delete_reason", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_chart_entries_patient_id", "chart_entries", ["patient_id"])
    op.create_index("ix_chart_entries_deleted_at", "chart_entries", ["deleted_at"])

    op.create_table(
        "chart_entry_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "chart_entry_id",
            sa.String(length=36),
            sa.ForeignKey("chart_entries.id"),
            nullable=False,
        ),
        sa.Column("patient_id", sa.String(length=36), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column(
            "event_type",
            sa.Enum("create", "edit", "delete", name="chart_entry_event_type"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sa.UniqueConstraint("chart_entry_id", "sequence"),
    )
    op.create_index("ix_chart_entry_events_chart_entry_id", "chart_entry_events", ["chart_entry_id"])
    op.create_index("ix_chart_entry_events_patient_id", "chart_entry_events", ["patient_id"])


def downgrade() -> None:
    op.drop_index("ix_chart_entry_events_patient_id", table_name="chart_entry_events")
    op.drop_index("ix_chart_entry_events_chart_entry_id", table_name="chart_entry_events")
    op.drop_table("chart_entry_events")
    op.drop_index("ix_chart_entries_deleted_at", table_name="chart_entries")
    op.drop_index("ix_chart_entries_patient_id", table_name="chart_entries")
    op.drop_table("chart_entries")
    op.drop_table("patients")
    sa.Enum(name="chart_entry_event_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="patient_status").drop(op.get_bind(), checkfirst=True)
