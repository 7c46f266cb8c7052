"""0001 - Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "institutions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="school"),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("email", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
        sa.CheckConstraint("type IN ('school', 'college')", name="check_institution_type"),
    )
    op.create_index("ix_institutions_id", "institutions", ["id"])

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("role IN ('admin', 'parent')", name="check_user_role"),
    )
    op.create_index("ix_users_id", "users", ["id"])

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("roll_number", sa.String(100), nullable=True),
        sa.Column("class_name", sa.String(100), nullable=True),
        sa.Column("section", sa.String(50), nullable=True),
        sa.Column("admission_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["parent_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"]),
    )
    op.create_index("ix_students_id", "students", ["id"])
    op.create_index("ix_students_parent_id", "students", ["parent_id"])

    op.create_table(
        "fee_structures",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("semester", sa.String(50), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"], ondelete="CASCADE"),
        sa.CheckConstraint("amount > 0", name="check_fee_structure_amount"),
    )
    op.create_index("ix_fee_structures_id", "fee_structures", ["id"])
    op.create_index("ix_fee_structures_institution_id", "fee_structures", ["institution_id"])

    op.create_table(
        "emi_plans",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fee_structure_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("installments", sa.Integer(), nullable=False),
        sa.Column("interest_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("processing_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_structure_id"], ["fee_structures.id"], ondelete="CASCADE"),
        sa.CheckConstraint("installments > 0", name="check_emi_plan_installments"),
        sa.CheckConstraint("interest_rate >= 0", name="check_emi_plan_interest_rate"),
        sa.CheckConstraint("processing_fee >= 0", name="check_emi_plan_processing_fee"),
    )
    op.create_index("ix_emi_plans_id", "emi_plans", ["id"])

    op.create_table(
        "fee_applications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("student_id", sa.Integer(), nullable=False),
        sa.Column("fee_structure_id", sa.Integer(), nullable=False),
        sa.Column("emi_plan_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(30), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("monthly_installment", sa.Numeric(12, 2), nullable=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("platform_paid_to_institution", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("institution_payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["fee_structure_id"], ["fee_structures.id"]),
        sa.ForeignKeyConstraint(["emi_plan_id"], ["emi_plans.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
        sa.CheckConstraint(
            "status IN ('onboarding_pending', 'emi_pending', 'platform_review', "
            "'approved', 'rejected', 'active', 'completed')",
            name="check_fee_application_status",
        ),
        sa.CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= total_amount",
            name="check_fee_application_remaining_amount",
        ),
    )
    op.create_index("ix_fee_applications_id", "fee_applications", ["id"])
    op.create_index("ix_fee_applications_student_id", "fee_applications", ["student_id"])

    op.create_table(
        "installments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fee_application_id", sa.Integer(), nullable=False),
        sa.Column("installment_number", sa.Integer(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_application_id"], ["fee_applications.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("fee_application_id", "installment_number", name="uq_installment_number"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'overdue')", name="check_installment_status"),
        sa.CheckConstraint("amount > 0", name="check_installment_amount"),
    )
    op.create_index("ix_installments_id", "installments", ["id"])
    op.create_index("ix_installments_fee_application_id", "installments", ["fee_application_id"])

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_type", sa.String(30), nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("payment_gateway", sa.String(50), nullable=True),
        sa.Column("transaction_id", sa.String(100), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("fee_application_id", sa.Integer(), nullable=False),
        sa.Column("institution_id", sa.Integer(), nullable=True),
        sa.Column("installment_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transaction_id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["fee_application_id"], ["fee_applications.id"]),
        sa.ForeignKeyConstraint(["institution_id"], ["institutions.id"]),
        sa.ForeignKeyConstraint(["installment_id"], ["installments.id"]),
        sa.CheckConstraint(
            "payment_type IN ('emi_payment', 'institution_payment', 'platform_to_institution')",
            name="check_payment_type",
        ),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_fee_application_id", "payments", ["fee_application_id"])

    # installments and payments reference each other
    op.create_foreign_key(
        "fk_installments_payment_id", "installments", "payments", ["payment_id"], ["id"]
    )


def downgrade() -> None:
    op.drop_constraint("fk_installments_payment_id", "installments", type_="foreignkey")
    op.drop_table("payments")
    op.drop_table("installments")
    op.drop_table("fee_applications")
    op.drop_table("emi_plans")
    op.drop_table("fee_structures")
    op.drop_table("students")
    op.drop_table("users")
    op.drop_table("institutions")
