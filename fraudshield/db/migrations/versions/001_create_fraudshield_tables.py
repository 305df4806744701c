"""Create signal store and fraud decision ledger tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(), primary_key=True),
        sa.Column("email", sa.String(), nullable=True, unique=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("risk_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_table(
        "accounts",
        sa.Column("account_id", sa.String(), primary_key=True),
        sa.Column("user_id", sa.String(), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("account_type", sa.String(), nullable=True),
        sa.Column("bank", sa.String(), nullable=True),
    )
    op.create_index(op.f("ix_accounts_user_id"), "accounts", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("transaction_id", sa.String(), primary_key=True),
        sa.Column("from_account_id", sa.String(), nullable=False),
        sa.Column("to_account_id", sa.String(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column(
            "txn_timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("status", sa.String(), nullable=False, server_default="PENDING"),
    )
    op.create_index(op.f("ix_transactions_from_account_id"), "transactions", ["from_account_id"])
    op.create_index(op.f("ix_transactions_txn_timestamp"), "transactions", ["txn_timestamp"])

    op.create_table(
        "knows_edges",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("from_user_id", sa.String(), sa.ForeignKey("users.user_id"), nullable=False),
        sa.Column("to_user_id", sa.String(), sa.ForeignKey("users.user_id"), nullable=False),
    )
    op.create_index(op.f("ix_knows_edges_from_user_id"), "knows_edges", ["from_user_id"])
    op.create_index(op.f("ix_knows_edges_to_user_id"), "knows_edges", ["to_user_id"])

    op.create_table(
        "device_fingerprints",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("device_data", postgresql.JSONB(), nullable=False),
        sa.Column("captured_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(op.f("ix_device_fingerprints_user_id"), "device_fingerprints", ["user_id"])
    op.create_index(
        "ix_device_fingerprints_device_id",
        "device_fingerprints",
        [sa.text("(device_data ->> 'deviceId')")],
    )

    op.create_table(
        "fraud_patterns",
        sa.Column("pattern_id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("description", sa.String(500), nullable=False, server_default=""),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("embedding", postgresql.ARRAY(sa.Float()), nullable=False),
    )

    op.create_table(
        "fraud_decisions",
        sa.Column("sequence", sa.BigInteger(), primary_key=True),
        sa.Column("decision_id", sa.String(), nullable=False, unique=True),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("risk_score", sa.Float(), nullable=False),
        sa.Column("reasons", sa.Text(), nullable=False),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("decided_by", sa.String(100), nullable=False, server_default="SYSTEM"),
        sa.Column("previous_hash", sa.String(64), nullable=False),
        sa.Column("entry_hash", sa.String(64), nullable=False, unique=True),
    )
    op.create_index(op.f("ix_fraud_decisions_transaction_id"), "fraud_decisions", ["transaction_id"])
    op.create_index(op.f("ix_fraud_decisions_user_id"), "fraud_decisions", ["user_id"])


def downgrade() -> None:
    op.drop_table("fraud_decisions")
    op.drop_table("fraud_patterns")
    op.drop_index("ix_device_fingerprints_device_id", table_name="device_fingerprints")
    op.drop_table("device_fingerprints")
    op.drop_table("knows_edges")
    op.drop_table("transactions")
    op.drop_table("accounts")
    op.drop_table("users")
