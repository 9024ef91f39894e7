"""Initial ledger schema: wallets, subledgers, copied trades, positions, runs.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tracked source wallets with optional guardrail overrides
    op.create_table(
        "tracked_wallets",
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("alias", sa.String(100), nullable=True),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.Column("total_deposited", sa.Numeric(20, 6), nullable=False),
        sa.Column("total_withdrawn", sa.Numeric(20, 6), nullable=False),
        sa.Column("max_cost_per_trade", sa.Numeric(20, 6), nullable=True),
        sa.Column("max_exposure", sa.Numeric(20, 6), nullable=True),
        sa.Column("sizing_mode", sa.String(20), nullable=True),
        sa.Column("fixed_dollar_amount", sa.Numeric(20, 6), nullable=True),
        sa.Column("conviction_ratio", sa.Numeric(12, 6), nullable=True),
        sa.Column("min_price", sa.Numeric(12, 6), nullable=True),
        sa.Column("max_price", sa.Numeric(12, 6), nullable=True),
        sa.Column("allow_overdraft", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("address"),
    )
    op.create_index("idx_tracked_wallets_enabled", "tracked_wallets", ["enabled"])

    # Subledger deposits and withdrawals
    op.create_table(
        "subledger_transactions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(20, 6), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('deposit', 'withdrawal')", name="ck_subledger_transactions_type"),
        sa.CheckConstraint("amount > 0", name="ck_subledger_transactions_amount"),
    )
    op.create_index(
        "idx_subledger_transactions_wallet",
        "subledger_transactions",
        ["wallet_address", "created_at"],
    )

    # Pooled operating account (single row)
    op.create_table(
        "operating_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("total_deposited", sa.Numeric(20, 6), nullable=False),
        sa.Column("total_withdrawn", sa.Numeric(20, 6), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("id = 1", name="ck_operating_account_singleton"),
    )

    # One record per observed source trade
    op.create_table(
        "copied_trades",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("source_wallet", sa.String(42), nullable=False),
        sa.Column("original_trade_id", sa.String(80), nullable=False),
        sa.Column("token_id", sa.String(100), nullable=False),
        sa.Column("condition_id", sa.String(100), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("original_price", sa.Numeric(12, 6), nullable=False),
        sa.Column("original_size", sa.Numeric(20, 6), nullable=False),
        sa.Column("copy_price", sa.Numeric(12, 6), nullable=True),
        sa.Column("copy_size", sa.Numeric(20, 6), nullable=True),
        sa.Column("copy_cost", sa.Numeric(20, 6), nullable=True),
        sa.Column("order_id", sa.String(100), nullable=True),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("skip_reason", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("market_title", sa.Text(), nullable=True),
        sa.Column("market_slug", sa.String(255), nullable=True),
        sa.Column("event_slug", sa.String(255), nullable=True),
        sa.Column("outcome", sa.String(100), nullable=True),
        sa.Column("original_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("evaluation_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_wallet", "original_trade_id", name="uq_copied_trades_source_trade"),
        sa.CheckConstraint(
            "status IN ('pending', 'placed', 'filled', 'failed', 'skipped')",
            name="ck_copied_trades_status",
        ),
    )
    op.create_index("idx_copied_trades_wallet_created", "copied_trades", ["source_wallet", "created_at"])
    op.create_index("idx_copied_trades_status", "copied_trades", ["status"])

    # Internally tracked positions
    op.create_table(
        "positions",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("source_wallet", sa.String(42), nullable=False),
        sa.Column("token_id", sa.String(100), nullable=False),
        sa.Column("condition_id", sa.String(100), nullable=False),
        sa.Column("shares", sa.Numeric(20, 6), nullable=False),
        sa.Column("avg_entry_price", sa.Numeric(12, 6), nullable=False),
        sa.Column("total_cost", sa.Numeric(20, 6), nullable=False),
        sa.Column("status", sa.String(10), nullable=False),
        sa.Column("exit_price", sa.Numeric(12, 6), nullable=True),
        sa.Column("exit_proceeds", sa.Numeric(20, 6), nullable=True),
        sa.Column("realized_pnl", sa.Numeric(20, 6), nullable=True),
        sa.Column("close_reason", sa.String(20), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("status IN ('open', 'closed')", name="ck_positions_status"),
    )
    op.create_index(
        "uq_positions_open_wallet_token",
        "positions",
        ["source_wallet", "token_id"],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_index("idx_positions_wallet_status", "positions", ["source_wallet", "status"])

    # Poll run audit rows
    op.create_table(
        "poll_runs",
        sa.Column("id", sa.String(36), nullable=False),
        sa.Column("source_wallet", sa.String(42), nullable=False),
        sa.Column("dry_run", sa.Boolean(), nullable=False),
        sa.Column("trades_found", sa.Integer(), nullable=False),
        sa.Column("trades_new", sa.Integer(), nullable=False),
        sa.Column("trades_copied", sa.Integer(), nullable=False),
        sa.Column("trades_skipped", sa.Integer(), nullable=False),
        sa.Column("trades_failed", sa.Integer(), nullable=False),
        sa.Column("errors", sa.Integer(), nullable=False),
        sa.Column("total_cost", sa.Numeric(20, 6), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_poll_runs_wallet_started", "poll_runs", ["source_wallet", "started_at"])

    # Per-wallet copy cursors
    op.create_table(
        "copy_cursors",
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("last_trade_timestamp", sa.BigInteger(), nullable=False),
        sa.Column("last_trade_id", sa.String(80), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("wallet_address"),
    )


def downgrade() -> None:
    op.drop_table("copy_cursors")
    op.drop_index("idx_poll_runs_wallet_started", table_name="poll_runs")
    op.drop_table("poll_runs")
    op.drop_index("idx_positions_wallet_status", table_name="positions")
    op.drop_index("uq_positions_open_wallet_token", table_name="positions")
    op.drop_table("positions")
    op.drop_index("idx_copied_trades_status", table_name="copied_trades")
    op.drop_index("idx_copied_trades_wallet_created", table_name="copied_trades")
    op.drop_table("copied_trades")
    op.drop_table("operating_account")
    op.drop_index("idx_subledger_transactions_wallet", table_name="subledger_transactions")
    op.drop_table("subledger_transactions")
    op.drop_index("idx_tracked_wallets_enabled", table_name="tracked_wallets")
    op.drop_table("tracked_wallets")
