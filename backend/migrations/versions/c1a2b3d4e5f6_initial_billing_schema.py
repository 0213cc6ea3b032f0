"""Initial clinic billing schema: tenancy, catalog, patients, visits, charges, payments, queue, sequences

Revision ID: c1a2b3d4e5f6
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "c1a2b3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None


def _now():
    return sa.text("CURRENT_TIMESTAMP")


def upgrade():
    # Tenancy
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )
    op.create_index("ix_organizations_code", "organizations", ["code"], unique=True)
    op.create_index("ix_organizations_is_active", "organizations", ["is_active"], unique=False)

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.UniqueConstraint("org_id", "code", name="uq_branches_org_code"),
    )
    op.create_index("ix_branches_org_id", "branches", ["org_id"], unique=False)

    op.create_table(
        "doctors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
    )
    op.create_index("ix_doctors_org_id", "doctors", ["org_id"], unique=False)
    op.create_index("ix_doctors_branch_id", "doctors", ["branch_id"], unique=False)

    # Catalog
    op.create_table(
        "service_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.UniqueConstraint("org_id", "code", name="uq_service_lines_org_code"),
    )
    op.create_index("ix_service_lines_org_id", "service_lines", ["org_id"], unique=False)

    op.create_table(
        "service_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("service_line_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("rate_cents", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(["service_line_id"], ["service_lines.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.UniqueConstraint("service_line_id", "branch_id", name="uq_service_rates_line_branch"),
    )
    op.create_index("ix_service_rates_service_line_id", "service_rates", ["service_line_id"], unique=False)
    op.create_index("ix_service_rates_branch_id", "service_rates", ["branch_id"], unique=False)

    op.create_table(
        "payment_modes",
        sa.Column("code", sa.String(length=32), primary_key=True),
        sa.Column("display_name", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False),
    )

    # Patients and visits
    op.create_table(
        "patients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("patient_code", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.UniqueConstraint("phone"),
    )
    op.create_index("ix_patients_patient_code", "patients", ["patient_code"], unique=True)
    op.create_index("ix_patients_org_id", "patients", ["org_id"], unique=False)
    op.create_index("ix_patients_branch_id", "patients", ["branch_id"], unique=False)

    op.create_table(
        "visits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("doctor_id", sa.Integer(), nullable=False),
        sa.Column("visit_date", sa.Date(), nullable=False),
        sa.Column("referral_id", sa.String(length=64), nullable=True),
        sa.Column("remarks", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["patient_id"], ["patients.id"]),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.ForeignKeyConstraint(["doctor_id"], ["doctors.id"]),
    )
    op.create_index("ix_visits_patient_id", "visits", ["patient_id"], unique=False)
    op.create_index("ix_visits_org_id", "visits", ["org_id"], unique=False)
    op.create_index("ix_visits_doctor_id", "visits", ["doctor_id"], unique=False)
    op.create_index("ix_visits_status", "visits", ["status"], unique=False)
    op.create_index("ix_visits_branch_date", "visits", ["branch_id", "visit_date"], unique=False)

    # Charges and audit trail
    op.create_table(
        "charges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visit_id", sa.Integer(), nullable=False),
        sa.Column("service_line_id", sa.Integer(), nullable=False),
        sa.Column("gross_cents", sa.Integer(), nullable=False),
        sa.Column("discount_cents", sa.Integer(), nullable=False),
        sa.Column("net_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
        sa.ForeignKeyConstraint(["service_line_id"], ["service_lines.id"]),
        sa.UniqueConstraint("visit_id", "service_line_id", name="uq_charges_visit_service_line"),
        sa.CheckConstraint("discount_cents >= 0 AND discount_cents <= gross_cents", name="ck_charges_discount_range"),
        sa.CheckConstraint("net_cents = gross_cents - discount_cents", name="ck_charges_net"),
    )
    op.create_index("ix_charges_visit_id", "charges", ["visit_id"], unique=False)

    op.create_table(
        "charge_adjustments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("charge_id", sa.Integer(), nullable=False),
        sa.Column("visit_id", sa.Integer(), nullable=False),
        sa.Column("service_line_id", sa.Integer(), nullable=False),
        sa.Column("old_gross_cents", sa.Integer(), nullable=False),
        sa.Column("old_discount_cents", sa.Integer(), nullable=False),
        sa.Column("old_net_cents", sa.Integer(), nullable=False),
        sa.Column("new_discount_cents", sa.Integer(), nullable=False),
        sa.Column("new_net_cents", sa.Integer(), nullable=False),
        sa.Column("paid_cents", sa.Integer(), nullable=False),
        sa.Column("refund_due_cents", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("authorized_by_doctor_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.ForeignKeyConstraint(["charge_id"], ["charges.id"]),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
        sa.ForeignKeyConstraint(["service_line_id"], ["service_lines.id"]),
        sa.ForeignKeyConstraint(["authorized_by_doctor_id"], ["doctors.id"]),
    )
    op.create_index("ix_charge_adjustments_charge_id", "charge_adjustments", ["charge_id"], unique=False)
    op.create_index("ix_charge_adjustments_visit_id", "charge_adjustments", ["visit_id"], unique=False)

    # Payments
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visit_id", sa.Integer(), nullable=False),
        sa.Column("service_line_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("mode", sa.String(length=32), nullable=False),
        sa.Column("direction", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column("settled_by", sa.Integer(), nullable=True),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
        sa.ForeignKeyConstraint(["service_line_id"], ["service_lines.id"]),
        sa.ForeignKeyConstraint(["mode"], ["payment_modes.code"]),
        sa.CheckConstraint("amount_cents > 0", name="ck_payments_amount_positive"),
    )
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)
    op.create_index("ix_payments_visit_service_line", "payments", ["visit_id", "service_line_id"], unique=False)

    op.create_table(
        "payment_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("payment_id", sa.Integer(), nullable=False),
        sa.Column("charge_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["payment_id"], ["payments.id"]),
        sa.ForeignKeyConstraint(["charge_id"], ["charges.id"]),
    )
    op.create_index("ix_payment_allocations_payment_id", "payment_allocations", ["payment_id"], unique=False)
    op.create_index("ix_payment_allocations_charge_id", "payment_allocations", ["charge_id"], unique=False)

    # Queue and sequences
    op.create_table(
        "queue_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("visit_id", sa.Integer(), nullable=False),
        sa.Column("branch_id", sa.Integer(), nullable=False),
        sa.Column("queue_date", sa.Date(), nullable=False),
        sa.Column("token_no", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["visit_id"], ["visits.id"]),
        sa.ForeignKeyConstraint(["branch_id"], ["branches.id"]),
        sa.UniqueConstraint("visit_id", "queue_date", name="uq_queue_entries_visit_date"),
        sa.UniqueConstraint("branch_id", "queue_date", "token_no", name="uq_queue_entries_branch_date_token"),
    )
    op.create_index("ix_queue_entries_visit_id", "queue_entries", ["visit_id"], unique=False)

    op.create_table(
        "sequence_counters",
        sa.Column("scope_key", sa.String(length=128), primary_key=True),
        sa.Column("next_value", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )


def downgrade():
    op.drop_table("sequence_counters")
    op.drop_index("ix_queue_entries_visit_id", table_name="queue_entries")
    op.drop_table("queue_entries")
    op.drop_index("ix_payment_allocations_charge_id", table_name="payment_allocations")
    op.drop_index("ix_payment_allocations_payment_id", table_name="payment_allocations")
    op.drop_table("payment_allocations")
    op.drop_index("ix_payments_visit_service_line", table_name="payments")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_table("payments")
    op.drop_index("ix_charge_adjustments_visit_id", table_name="charge_adjustments")
    op.drop_index("ix_charge_adjustments_charge_id", table_name="charge_adjustments")
    op.drop_table("charge_adjustments")
    op.drop_index("ix_charges_visit_id", table_name="charges")
    op.drop_table("charges")
    op.drop_index("ix_visits_branch_date", table_name="visits")
    op.drop_index("ix_visits_status", table_name="visits")
    op.drop_index("ix_visits_doctor_id", table_name="visits")
    op.drop_index("ix_visits_org_id", table_name="visits")
    op.drop_index("ix_visits_patient_id", table_name="visits")
    op.drop_table("visits")
    op.drop_index("ix_patients_branch_id", table_name="patients")
    op.drop_index("ix_patients_org_id", table_name="patients")
    op.drop_index("ix_patients_patient_code", table_name="patients")
    op.drop_table("patients")
    op.drop_table("payment_modes")
    op.drop_index("ix_service_rates_branch_id", table_name="service_rates")
    op.drop_index("ix_service_rates_service_line_id", table_name="service_rates")
    op.drop_table("service_rates")
    op.drop_index("ix_service_lines_org_id", table_name="service_lines")
    op.drop_table("service_lines")
    op.drop_index("ix_doctors_branch_id", table_name="doctors")
    op.drop_index("ix_doctors_org_id", table_name="doctors")
    op.drop_table("doctors")
    op.drop_index("ix_branches_org_id", table_name="branches")
    op.drop_table("branches")
    op.drop_index("ix_organizations_is_active", table_name="organizations")
    op.drop_index("ix_organizations_code", table_name="organizations")
    op.drop_table("organizations")
