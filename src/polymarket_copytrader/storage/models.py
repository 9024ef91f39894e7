"""SQLAlchemy models for persistent storage.

This module defines the ledger schema: tracked source wallets, their
subledger transactions, the pooled operating account, copied trade
records, positions, poll runs, and per-wallet cursors.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Money and share quantities share one precision.
AMOUNT = Numeric(20, 6)
PRICE = Numeric(12, 6)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TrackedWalletModel(Base):
    """A source wallet whose trades are mirrored.

    Override columns are nullable; NULL means "use the global default".
    """

    __tablename__ = "tracked_wallets"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    alias: Mapped[str | None] = mapped_column(String(100), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    total_deposited: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    total_withdrawn: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))

    max_cost_per_trade: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    max_exposure: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    sizing_mode: Mapped[str | None] = mapped_column(String(20), nullable=True)
    fixed_dollar_amount: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    conviction_ratio: Mapped[Decimal | None] = mapped_column(PRICE, nullable=True)
    min_price: Mapped[Decimal | None] = mapped_column(PRICE, nullable=True)
    max_price: Mapped[Decimal | None] = mapped_column(PRICE, nullable=True)
    allow_overdraft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (Index("idx_tracked_wallets_enabled", "enabled"),)


class SubledgerTransactionModel(Base):
    """Append-only funding movement on a wallet's subledger."""

    __tablename__ = "subledger_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    amount: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint("type IN ('deposit', 'withdrawal')", name="ck_subledger_transactions_type"),
        CheckConstraint("amount > 0", name="ck_subledger_transactions_amount"),
        Index("idx_subledger_transactions_wallet", "wallet_address", "created_at"),
    )


class OperatingAccountModel(Base):
    """Singleton row holding the pooled operating account totals."""

    __tablename__ = "operating_account"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    total_deposited: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    total_withdrawn: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (CheckConstraint("id = 1", name="ck_operating_account_singleton"),)


class CopiedTradeModel(Base):
    """One row per observed source trade, whatever the decision was."""

    __tablename__ = "copied_trades"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    original_trade_id: Mapped[str] = mapped_column(String(80), nullable=False)

    token_id: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_id: Mapped[str] = mapped_column(String(100), nullable=False)
    side: Mapped[str] = mapped_column(String(4), nullable=False)

    original_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False)
    original_size: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    copy_price: Mapped[Decimal | None] = mapped_column(PRICE, nullable=True)
    copy_size: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    copy_cost: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)

    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(10), nullable=False)
    skip_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    market_title: Mapped[str | None] = mapped_column(Text, nullable=True)
    market_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_slug: Mapped[str | None] = mapped_column(String(255), nullable=True)
    outcome: Mapped[str | None] = mapped_column(String(100), nullable=True)
    original_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    evaluation_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("source_wallet", "original_trade_id", name="uq_copied_trades_source_trade"),
        CheckConstraint(
            "status IN ('pending', 'placed', 'filled', 'failed', 'skipped')",
            name="ck_copied_trades_status",
        ),
        Index("idx_copied_trades_wallet_created", "source_wallet", "created_at"),
        Index("idx_copied_trades_status", "status"),
    )


class PositionModel(Base):
    """Internally tracked holding attributed to one source wallet."""

    __tablename__ = "positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    token_id: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_id: Mapped[str] = mapped_column(String(100), nullable=False)

    shares: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    avg_entry_price: Mapped[Decimal] = mapped_column(PRICE, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False)
    status: Mapped[str] = mapped_column(String(10), nullable=False, default="open")

    exit_price: Mapped[Decimal | None] = mapped_column(PRICE, nullable=True)
    exit_proceeds: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    realized_pnl: Mapped[Decimal | None] = mapped_column(AMOUNT, nullable=True)
    close_reason: Mapped[str | None] = mapped_column(String(20), nullable=True)

    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('open', 'closed')", name="ck_positions_status"),
        # At most one open position per (wallet, token).
        Index(
            "uq_positions_open_wallet_token",
            "source_wallet",
            "token_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
        Index("idx_positions_wallet_status", "source_wallet", "status"),
    )


class PollRunModel(Base):
    """Audit row for one orchestrator invocation against one wallet."""

    __tablename__ = "poll_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source_wallet: Mapped[str] = mapped_column(String(42), nullable=False)
    dry_run: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    trades_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_new: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_copied: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    trades_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_cost: Mapped[Decimal] = mapped_column(AMOUNT, nullable=False, default=Decimal("0"))

    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_poll_runs_wallet_started", "source_wallet", "started_at"),)


class CopyCursorModel(Base):
    """Latest source trade seen per wallet."""

    __tablename__ = "copy_cursors"

    wallet_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    last_trade_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_trade_id: Mapped[str] = mapped_column(String(80), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )
