"""initial ledger schema

Revision ID: 202510180900
Revises:
Create Date: 2025-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202510180900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "counters",
        sa.Column("name", sa.String(length=50), primary_key=True),
        sa.Column("sequence", sa.Integer(), nullable=False, server_default="0"),
        sa.CheckConstraint("sequence >= 0", name="ck_counter_sequence_non_negative"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sequential_id", sa.String(length=20), nullable=False),
        sa.Column("external_identity_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=120), nullable=False),
        sa.Column("profile_image_ref", sa.String(length=500), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("sequential_id"),
        sa.UniqueConstraint("external_identity_id"),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_sequential_id", sa.String(length=20), nullable=False),
        sa.Column("owner_display_name", sa.String(length=120), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("amount_minor_units", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("occurred_on", sa.DateTime(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("expense_number", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint(
            "owner_id", "expense_number", name="uq_expense_owner_number"
        ),
        sa.CheckConstraint(
            "amount_minor_units > 0", name="ck_expenses_amount_positive"
        ),
        sa.CheckConstraint("expense_number > 0", name="ck_expenses_number_positive"),
    )
    op.create_index(
        "ix_expenses_owner_occurred", "expenses", ["owner_id", "occurred_on"]
    )


def downgrade():
    op.drop_index("ix_expenses_owner_occurred", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("counters")
