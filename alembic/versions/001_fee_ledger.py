"""Fee ledger tables

Revision ID: 001_fee_ledger
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_fee_ledger"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Audit log
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("actor", sa.String(100), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_actor", "audit_logs", ["actor"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])

    # Student directory (owned by the registry, read-only here)
    op.create_table(
        "students",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("program", sa.String(200), nullable=False),
        sa.Column("class_name", sa.String(100), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_students_student_number", "students", ["student_number"], unique=True)
    op.create_index("ix_students_program", "students", ["program"])
    op.create_index("ix_students_class_name", "students", ["class_name"])
    op.create_index("ix_students_is_active", "students", ["is_active"])

    # Payment records (appended by the bank integration)
    op.create_table(
        "payment_records",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("payment_reference", sa.String(100), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column(
            "date_received",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_reference"),
    )
    op.create_index("ix_payment_records_student_number", "payment_records", ["student_number"])

    # Fee catalog
    op.create_table(
        "fee_categories",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(20), nullable=False, server_default="Standard"),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="OneTime"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "fee_structures",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("semester", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "academic_year", "semester", "name", name="uq_fee_structure_period_name"
        ),
    )
    op.create_index("ix_fee_structures_academic_year", "fee_structures", ["academic_year"])
    op.create_index("ix_fee_structures_is_active", "fee_structures", ["is_active"])

    op.create_table(
        "fee_structure_items",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("fee_structure_id", sa.BigInteger(), nullable=False),
        sa.Column("fee_category_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("due_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_structure_id"], ["fee_structures.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["fee_category_id"], ["fee_categories.id"]),
    )
    op.create_index(
        "ix_fee_structure_items_fee_structure_id", "fee_structure_items", ["fee_structure_id"]
    )
    op.create_index(
        "ix_fee_structure_items_fee_category_id", "fee_structure_items", ["fee_category_id"]
    )

    # Assignments
    op.create_table(
        "student_fee_assignments",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("fee_structure_id", sa.BigInteger(), nullable=False),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("semester", sa.String(50), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_by", sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_structure_id"], ["fee_structures.id"]),
        sa.UniqueConstraint(
            "student_number",
            "fee_structure_id",
            "academic_year",
            "semester",
            name="uq_student_fee_assignment_student_structure_period",
        ),
    )
    op.create_index(
        "ix_student_fee_assignments_student_number", "student_fee_assignments", ["student_number"]
    )
    op.create_index(
        "ix_student_fee_assignments_fee_structure_id",
        "student_fee_assignments",
        ["fee_structure_id"],
    )

    # Balance ledger
    op.create_table(
        "student_fee_balances",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("fee_structure_item_id", sa.BigInteger(), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("outstanding_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Outstanding"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_structure_item_id"], ["fee_structure_items.id"]),
        sa.UniqueConstraint(
            "student_number", "fee_structure_item_id", name="uq_student_fee_balance_student_item"
        ),
    )
    op.create_index(
        "ix_student_fee_balances_student_number", "student_fee_balances", ["student_number"]
    )
    op.create_index(
        "ix_student_fee_balances_fee_structure_item_id",
        "student_fee_balances",
        ["fee_structure_item_id"],
    )
    op.create_index("ix_student_fee_balances_due_date", "student_fee_balances", ["due_date"])
    op.create_index("ix_student_fee_balances_status", "student_fee_balances", ["status"])

    # Additional fees
    op.create_table(
        "additional_fees",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("frequency", sa.String(20), nullable=False, server_default="OneTime"),
        sa.Column("applicability", sa.String(20), nullable=False, server_default="All"),
        sa.Column("applicable_programs", sa.JSON(), nullable=False),
        sa.Column("applicable_classes", sa.JSON(), nullable=False),
        sa.Column("applicable_students", sa.JSON(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by", sa.String(100), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_additional_fees_is_active", "additional_fees", ["is_active"])

    op.create_table(
        "student_additional_fees",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("additional_fee_id", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Outstanding"),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["additional_fee_id"], ["additional_fees.id"]),
        sa.UniqueConstraint(
            "student_number",
            "additional_fee_id",
            name="uq_student_additional_fee_student_fee",
        ),
    )
    op.create_index(
        "ix_student_additional_fees_student_number", "student_additional_fees", ["student_number"]
    )
    op.create_index(
        "ix_student_additional_fees_additional_fee_id",
        "student_additional_fees",
        ["additional_fee_id"],
    )

    # Legacy fee model (source of the one-time migration)
    op.create_table(
        "fee_schedules",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("semester", sa.String(50), nullable=False),
        sa.Column("academic_year", sa.String(20), nullable=False),
        sa.Column("program", sa.String(200), nullable=False),
        sa.Column("tuition_fee", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("registration_fee", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("library_fee", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("laboratory_fee", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("other_fees", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "student_balances",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("student_number", sa.String(50), nullable=False),
        sa.Column("fee_schedule_id", sa.BigInteger(), nullable=False),
        sa.Column("total_amount", sa.Numeric(15, 2), nullable=False),
        sa.Column("amount_paid", sa.Numeric(15, 2), nullable=False, server_default="0"),
        sa.Column("outstanding_balance", sa.Numeric(15, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["fee_schedule_id"], ["fee_schedules.id"]),
    )
    op.create_index("ix_student_balances_student_number", "student_balances", ["student_number"])


def downgrade() -> None:
    op.drop_table("student_balances")
    op.drop_table("fee_schedules")
    op.drop_table("student_additional_fees")
    op.drop_table("additional_fees")
    op.drop_table("student_fee_balances")
    op.drop_table("student_fee_assignments")
    op.drop_table("fee_structure_items")
    op.drop_table("fee_structures")
    op.drop_table("fee_categories")
    op.drop_table("payment_records")
    op.drop_table("students")
    op.drop_table("audit_logs")
