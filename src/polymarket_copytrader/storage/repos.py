"""Repository pattern implementations for data access.

This module provides clean data access abstractions for tracked wallets,
subledger transactions, the operating account, copied trade records,
positions, poll runs, and copy cursors. Repositories only persist and
query; balance arithmetic lives in the ledger package.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_copytrader.storage.models import (
    CopiedTradeModel,
    CopyCursorModel,
    OperatingAccountModel,
    PollRunModel,
    PositionModel,
    SubledgerTransactionModel,
    TrackedWalletModel,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# Override columns that may be changed through WalletRepository.update_overrides.
OVERRIDE_FIELDS = frozenset(
    {
        "max_cost_per_trade",
        "max_exposure",
        "sizing_mode",
        "fixed_dollar_amount",
        "conviction_ratio",
        "min_price",
        "max_price",
        "allow_overdraft",
    }
)


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _dialect_insert(session: AsyncSession, model: type[Any]) -> Any:
    """Return an INSERT construct that supports ON CONFLICT for the bound dialect."""
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


@dataclass
class TrackedWalletDTO:
    """Data transfer object for tracked source wallets."""

    address: str
    alias: str | None = None
    enabled: bool = True
    total_deposited: Decimal = ZERO
    total_withdrawn: Decimal = ZERO
    max_cost_per_trade: Decimal | None = None
    max_exposure: Decimal | None = None
    sizing_mode: str | None = None
    fixed_dollar_amount: Decimal | None = None
    conviction_ratio: Decimal | None = None
    min_price: Decimal | None = None
    max_price: Decimal | None = None
    allow_overdraft: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TrackedWalletModel) -> TrackedWalletDTO:
        return cls(
            address=model.address,
            alias=model.alias,
            enabled=model.enabled,
            total_deposited=_to_decimal(model.total_deposited),
            total_withdrawn=_to_decimal(model.total_withdrawn),
            max_cost_per_trade=model.max_cost_per_trade,
            max_exposure=model.max_exposure,
            sizing_mode=model.sizing_mode,
            fixed_dollar_amount=model.fixed_dollar_amount,
            conviction_ratio=model.conviction_ratio,
            min_price=model.min_price,
            max_price=model.max_price,
            allow_overdraft=model.allow_overdraft,
            created_at=model.created_at,
        )


@dataclass
class SubledgerTransactionDTO:
    """Data transfer object for subledger deposits and withdrawals."""

    wallet_address: str
    type: str
    amount: Decimal
    note: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: SubledgerTransactionModel) -> SubledgerTransactionDTO:
        return cls(
            id=model.id,
            wallet_address=model.wallet_address,
            type=model.type,
            amount=_to_decimal(model.amount),
            note=model.note,
            created_at=model.created_at,
        )


@dataclass
class CopiedTradeDTO:
    """Data transfer object for copied trade records."""

    source_wallet: str
    original_trade_id: str
    token_id: str
    condition_id: str
    side: str
    original_price: Decimal
    original_size: Decimal
    original_timestamp: int
    status: str
    copy_price: Decimal | None = None
    copy_size: Decimal | None = None
    copy_cost: Decimal | None = None
    order_id: str | None = None
    skip_reason: str | None = None
    error: str | None = None
    market_title: str | None = None
    market_slug: str | None = None
    event_slug: str | None = None
    outcome: str | None = None
    evaluation: dict[str, Any] | None = None
    id: str | None = None
    created_at: datetime | None = None
    executed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: CopiedTradeModel) -> CopiedTradeDTO:
        return cls(
            id=model.id,
            source_wallet=model.source_wallet,
            original_trade_id=model.original_trade_id,
            token_id=model.token_id,
            condition_id=model.condition_id,
            side=model.side,
            original_price=_to_decimal(model.original_price),
            original_size=_to_decimal(model.original_size),
            original_timestamp=model.original_timestamp,
            status=model.status,
            copy_price=model.copy_price,
            copy_size=model.copy_size,
            copy_cost=model.copy_cost,
            order_id=model.order_id,
            skip_reason=model.skip_reason,
            error=model.error,
            market_title=model.market_title,
            market_slug=model.market_slug,
            event_slug=model.event_slug,
            outcome=model.outcome,
            evaluation=json.loads(model.evaluation_json) if model.evaluation_json else None,
            created_at=model.created_at,
            executed_at=model.executed_at,
        )


@dataclass
class PositionDTO:
    """Data transfer object for internally tracked positions."""

    source_wallet: str
    token_id: str
    condition_id: str
    shares: Decimal
    avg_entry_price: Decimal
    total_cost: Decimal
    status: str = "open"
    exit_price: Decimal | None = None
    exit_proceeds: Decimal | None = None
    realized_pnl: Decimal | None = None
    close_reason: str | None = None
    id: str | None = None
    opened_at: datetime | None = None
    closed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status == "open"

    @classmethod
    def from_model(cls, model: PositionModel) -> PositionDTO:
        return cls(
            id=model.id,
            source_wallet=model.source_wallet,
            token_id=model.token_id,
            condition_id=model.condition_id,
            shares=_to_decimal(model.shares),
            avg_entry_price=_to_decimal(model.avg_entry_price),
            total_cost=_to_decimal(model.total_cost),
            status=model.status,
            exit_price=model.exit_price,
            exit_proceeds=model.exit_proceeds,
            realized_pnl=model.realized_pnl,
            close_reason=model.close_reason,
            opened_at=model.opened_at,
            closed_at=model.closed_at,
        )


@dataclass
class PollRunDTO:
    """Data transfer object for poll run audit rows."""

    source_wallet: str
    dry_run: bool = False
    trades_found: int = 0
    trades_new: int = 0
    trades_copied: int = 0
    trades_skipped: int = 0
    trades_failed: int = 0
    errors: int = 0
    total_cost: Decimal = ZERO
    note: str | None = None
    last_error: str | None = None
    id: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, model: PollRunModel) -> PollRunDTO:
        return cls(
            id=model.id,
            source_wallet=model.source_wallet,
            dry_run=model.dry_run,
            trades_found=model.trades_found,
            trades_new=model.trades_new,
            trades_copied=model.trades_copied,
            trades_skipped=model.trades_skipped,
            trades_failed=model.trades_failed,
            errors=model.errors,
            total_cost=_to_decimal(model.total_cost),
            note=model.note,
            last_error=model.last_error,
            started_at=model.started_at,
            completed_at=model.completed_at,
        )


@dataclass
class CopyCursorDTO:
    """Data transfer object for per-wallet copy cursors."""

    wallet_address: str
    last_trade_timestamp: int
    last_trade_id: str
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, model: CopyCursorModel) -> CopyCursorDTO:
        return cls(
            wallet_address=model.wallet_address,
            last_trade_timestamp=model.last_trade_timestamp,
            last_trade_id=model.last_trade_id,
            updated_at=model.updated_at,
        )


class WalletRepository:
    """Repository for tracked source wallets."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, address: str) -> TrackedWalletDTO | None:
        model = await self.session.get(TrackedWalletModel, address.lower())
        return TrackedWalletDTO.from_model(model) if model else None

    async def register(self, address: str, *, alias: str | None = None) -> TrackedWalletDTO:
        """Register a wallet, or re-enable it if it is already known.

        History (transactions, positions, totals) of a re-registered wallet
        is preserved.
        """
        address = address.lower()
        now = datetime.now(UTC)
        stmt = _dialect_insert(self.session, TrackedWalletModel).values(
            address=address,
            alias=alias,
            enabled=True,
            total_deposited=ZERO,
            total_withdrawn=ZERO,
            allow_overdraft=False,
            created_at=now,
            updated_at=now,
        )
        set_: dict[str, Any] = {"enabled": True, "updated_at": now}
        if alias is not None:
            set_["alias"] = alias
        stmt = stmt.on_conflict_do_update(index_elements=["address"], set_=set_)
        await self.session.execute(stmt)
        await self.session.flush()

        model = await self.session.get(TrackedWalletModel, address, populate_existing=True)
        if model is None:
            raise RuntimeError(f"wallet {address} missing after upsert")
        logger.info("Registered tracked wallet %s (%s)", address, alias or "no alias")
        return TrackedWalletDTO.from_model(model)

    async def set_enabled(self, address: str, enabled: bool) -> bool:
        """Enable or disable a wallet. Returns False if the wallet is unknown."""
        result = await self.session.execute(
            update(TrackedWalletModel)
            .where(TrackedWalletModel.address == address.lower())
            .values(enabled=enabled, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def update_overrides(self, address: str, **overrides: Any) -> bool:
        """Partially update per-wallet overrides; None clears an override."""
        unknown = set(overrides) - OVERRIDE_FIELDS
        if unknown:
            raise ValueError(f"Unknown wallet override(s): {', '.join(sorted(unknown))}")
        if not overrides:
            return await self.get(address) is not None
        if overrides.get("allow_overdraft") is None:
            overrides.pop("allow_overdraft", None)
        result = await self.session.execute(
            update(TrackedWalletModel)
            .where(TrackedWalletModel.address == address.lower())
            .values(**overrides, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def add_to_totals(
        self,
        address: str,
        *,
        deposited: Decimal = ZERO,
        withdrawn: Decimal = ZERO,
    ) -> None:
        await self.session.execute(
            update(TrackedWalletModel)
            .where(TrackedWalletModel.address == address.lower())
            .values(
                total_deposited=TrackedWalletModel.total_deposited + deposited,
                total_withdrawn=TrackedWalletModel.total_withdrawn + withdrawn,
                updated_at=datetime.now(UTC),
            )
        )
        await self.session.flush()

    async def list_wallets(self, *, enabled_only: bool = False) -> list[TrackedWalletDTO]:
        query = select(TrackedWalletModel).order_by(TrackedWalletModel.created_at, TrackedWalletModel.address)
        if enabled_only:
            query = query.where(TrackedWalletModel.enabled.is_(True))
        result = await self.session.execute(query)
        return [TrackedWalletDTO.from_model(m) for m in result.scalars().all()]


class SubledgerTransactionRepository:
    """Repository for append-only subledger transactions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: SubledgerTransactionDTO) -> SubledgerTransactionDTO:
        model = SubledgerTransactionModel(
            wallet_address=dto.wallet_address.lower(),
            type=dto.type,
            amount=dto.amount,
            note=dto.note,
        )
        self.session.add(model)
        await self.session.flush()
        return SubledgerTransactionDTO.from_model(model)

    async def totals(self, wallet_address: str | None = None) -> tuple[Decimal, Decimal]:
        """Return (deposited, withdrawn) for one wallet, or across all wallets.

        Amounts are summed as Decimals client-side so the result is exact on
        every dialect.
        """
        query = select(SubledgerTransactionModel.type, SubledgerTransactionModel.amount)
        if wallet_address is not None:
            query = query.where(SubledgerTransactionModel.wallet_address == wallet_address.lower())
        deposited = withdrawn = ZERO
        for tx_type, amount in (await self.session.execute(query)).all():
            if tx_type == "deposit":
                deposited += _to_decimal(amount)
            else:
                withdrawn += _to_decimal(amount)
        return deposited, withdrawn

    async def list_for_wallet(self, wallet_address: str, *, limit: int = 100) -> list[SubledgerTransactionDTO]:
        result = await self.session.execute(
            select(SubledgerTransactionModel)
            .where(SubledgerTransactionModel.wallet_address == wallet_address.lower())
            .order_by(SubledgerTransactionModel.created_at.desc())
            .limit(limit)
        )
        return [SubledgerTransactionDTO.from_model(m) for m in result.scalars().all()]


class OperatingAccountRepository:
    """Repository for the singleton operating account row."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_totals(self) -> tuple[Decimal, Decimal]:
        model = await self.session.get(OperatingAccountModel, 1)
        if model is None:
            return ZERO, ZERO
        return _to_decimal(model.total_deposited), _to_decimal(model.total_withdrawn)

    async def add(self, *, deposited: Decimal = ZERO, withdrawn: Decimal = ZERO) -> None:
        model = await self.session.get(OperatingAccountModel, 1)
        if model is None:
            model = OperatingAccountModel(id=1, total_deposited=ZERO, total_withdrawn=ZERO)
            self.session.add(model)
        model.total_deposited = _to_decimal(model.total_deposited) + deposited
        model.total_withdrawn = _to_decimal(model.total_withdrawn) + withdrawn
        await self.session.flush()


class CopiedTradeRepository:
    """Repository for copied trade records (one per observed source trade)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: CopiedTradeDTO) -> CopiedTradeDTO:
        """Insert a record. Raises IntegrityError if the source trade was already recorded."""
        model = CopiedTradeModel(
            source_wallet=dto.source_wallet.lower(),
            original_trade_id=dto.original_trade_id,
            token_id=dto.token_id,
            condition_id=dto.condition_id,
            side=dto.side,
            original_price=dto.original_price,
            original_size=dto.original_size,
            original_timestamp=dto.original_timestamp,
            status=dto.status,
            copy_price=dto.copy_price,
            copy_size=dto.copy_size,
            copy_cost=dto.copy_cost,
            order_id=dto.order_id,
            skip_reason=dto.skip_reason,
            error=dto.error,
            market_title=dto.market_title,
            market_slug=dto.market_slug,
            event_slug=dto.event_slug,
            outcome=dto.outcome,
            evaluation_json=json.dumps(dto.evaluation) if dto.evaluation is not None else None,
            executed_at=dto.executed_at,
        )
        self.session.add(model)
        await self.session.flush()
        return CopiedTradeDTO.from_model(model)

    async def get(self, record_id: str) -> CopiedTradeDTO | None:
        model = await self.session.get(CopiedTradeModel, record_id)
        return CopiedTradeDTO.from_model(model) if model else None

    async def get_by_original(self, source_wallet: str, original_trade_id: str) -> CopiedTradeDTO | None:
        result = await self.session.execute(
            select(CopiedTradeModel).where(
                CopiedTradeModel.source_wallet == source_wallet.lower(),
                CopiedTradeModel.original_trade_id == original_trade_id,
            )
        )
        model = result.scalar_one_or_none()
        return CopiedTradeDTO.from_model(model) if model else None

    async def existing_trade_ids(self, source_wallet: str, trade_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``trade_ids`` already recorded for this wallet."""
        ids = list(dict.fromkeys(trade_ids))
        if not ids:
            return set()
        found: set[str] = set()
        # Chunked to stay under bound-parameter limits.
        for start in range(0, len(ids), 500):
            chunk = ids[start : start + 500]
            result = await self.session.execute(
                select(CopiedTradeModel.original_trade_id).where(
                    CopiedTradeModel.source_wallet == source_wallet.lower(),
                    CopiedTradeModel.original_trade_id.in_(chunk),
                )
            )
            found.update(result.scalars().all())
        return found

    async def mark_result(
        self,
        record_id: str,
        *,
        status: str,
        order_id: str | None = None,
        error: str | None = None,
        evaluation: dict[str, Any] | None = None,
    ) -> None:
        """Update a pending record in place once execution has completed."""
        values: dict[str, Any] = {
            "status": status,
            "order_id": order_id,
            "error": error,
            "executed_at": datetime.now(UTC),
        }
        if evaluation is not None:
            values["evaluation_json"] = json.dumps(evaluation)
        await self.session.execute(
            update(CopiedTradeModel).where(CopiedTradeModel.id == record_id).values(**values)
        )
        await self.session.flush()

    async def list_recent(
        self,
        *,
        source_wallet: str | None = None,
        status: str | None = None,
        limit: int = 50,
    ) -> list[CopiedTradeDTO]:
        query = select(CopiedTradeModel).order_by(CopiedTradeModel.created_at.desc()).limit(limit)
        if source_wallet is not None:
            query = query.where(CopiedTradeModel.source_wallet == source_wallet.lower())
        if status is not None:
            query = query.where(CopiedTradeModel.status == status)
        result = await self.session.execute(query)
        return [CopiedTradeDTO.from_model(m) for m in result.scalars().all()]

    async def summary(self) -> dict[str, Any]:
        """Aggregate counts and spend across all copied trade records."""
        counts_result = await self.session.execute(
            select(CopiedTradeModel.status, func.count(CopiedTradeModel.id)).group_by(CopiedTradeModel.status)
        )
        counts = {status: int(n) for status, n in counts_result.all()}

        cost_result = await self.session.execute(
            select(CopiedTradeModel.copy_cost).where(
                CopiedTradeModel.status.in_(("placed", "filled")),
                CopiedTradeModel.side == "BUY",
            )
        )
        total_cost = sum((_to_decimal(c) for c in cost_result.scalars().all()), ZERO)

        successful = counts.get("placed", 0) + counts.get("filled", 0)
        failed = counts.get("failed", 0)
        attempted = successful + failed
        return {
            "total_records": sum(counts.values()),
            "successful": successful,
            "skipped": counts.get("skipped", 0),
            "failed": failed,
            "pending": counts.get("pending", 0),
            "total_cost": total_cost,
            "success_rate": (successful / attempted) if attempted else 0.0,
        }


class PositionRepository:
    """Repository for internally tracked positions."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, position_id: str) -> PositionDTO | None:
        model = await self.session.get(PositionModel, position_id)
        return PositionDTO.from_model(model) if model else None

    async def get_open(self, source_wallet: str, token_id: str) -> PositionDTO | None:
        result = await self.session.execute(
            select(PositionModel).where(
                PositionModel.source_wallet == source_wallet.lower(),
                PositionModel.token_id == token_id,
                PositionModel.status == "open",
            )
        )
        model = result.scalar_one_or_none()
        return PositionDTO.from_model(model) if model else None

    async def insert_open(self, dto: PositionDTO) -> PositionDTO:
        model = PositionModel(
            source_wallet=dto.source_wallet.lower(),
            token_id=dto.token_id,
            condition_id=dto.condition_id,
            shares=dto.shares,
            avg_entry_price=dto.avg_entry_price,
            total_cost=dto.total_cost,
            status="open",
        )
        self.session.add(model)
        await self.session.flush()
        return PositionDTO.from_model(model)

    async def update_holding(
        self,
        position_id: str,
        *,
        shares: Decimal,
        avg_entry_price: Decimal,
        total_cost: Decimal,
    ) -> None:
        await self.session.execute(
            update(PositionModel)
            .where(PositionModel.id == position_id, PositionModel.status == "open")
            .values(shares=shares, avg_entry_price=avg_entry_price, total_cost=total_cost)
        )
        await self.session.flush()

    async def close(
        self,
        position_id: str,
        *,
        exit_price: Decimal,
        exit_proceeds: Decimal,
        realized_pnl: Decimal,
        close_reason: str,
    ) -> bool:
        """Close an open position. Returns False if it was not open."""
        result = await self.session.execute(
            update(PositionModel)
            .where(PositionModel.id == position_id, PositionModel.status == "open")
            .values(
                status="closed",
                exit_price=exit_price,
                exit_proceeds=exit_proceeds,
                realized_pnl=realized_pnl,
                close_reason=close_reason,
                closed_at=datetime.now(UTC),
            )
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def list_open(self, source_wallet: str | None = None) -> list[PositionDTO]:
        query = select(PositionModel).where(PositionModel.status == "open").order_by(PositionModel.opened_at)
        if source_wallet is not None:
            query = query.where(PositionModel.source_wallet == source_wallet.lower())
        result = await self.session.execute(query)
        return [PositionDTO.from_model(m) for m in result.scalars().all()]

    async def list_closed(self, *, source_wallet: str | None = None, limit: int = 50) -> list[PositionDTO]:
        query = (
            select(PositionModel)
            .where(PositionModel.status == "closed")
            .order_by(PositionModel.closed_at.desc())
            .limit(limit)
        )
        if source_wallet is not None:
            query = query.where(PositionModel.source_wallet == source_wallet.lower())
        result = await self.session.execute(query)
        return [PositionDTO.from_model(m) for m in result.scalars().all()]

    async def aggregates(self, source_wallet: str | None = None) -> dict[str, Any]:
        """Open exposure, realized P&L and position counts."""
        query = select(PositionModel.status, PositionModel.total_cost, PositionModel.realized_pnl)
        if source_wallet is not None:
            query = query.where(PositionModel.source_wallet == source_wallet.lower())

        exposure = realized_pnl = ZERO
        open_count = closed_count = winning_count = 0
        for status, total_cost, pnl in (await self.session.execute(query)).all():
            if status == "open":
                exposure += _to_decimal(total_cost)
                open_count += 1
                continue
            pnl = _to_decimal(pnl)
            realized_pnl += pnl
            closed_count += 1
            if pnl > 0:
                winning_count += 1
        return {
            "exposure": exposure,
            "realized_pnl": realized_pnl,
            "open_count": open_count,
            "closed_count": closed_count,
            "winning_count": winning_count,
        }


class PollRunRepository:
    """Repository for poll run audit rows."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, dto: PollRunDTO) -> PollRunDTO:
        model = PollRunModel(
            source_wallet=dto.source_wallet.lower(),
            dry_run=dto.dry_run,
            trades_found=dto.trades_found,
            trades_new=dto.trades_new,
            trades_copied=dto.trades_copied,
            trades_skipped=dto.trades_skipped,
            trades_failed=dto.trades_failed,
            errors=dto.errors,
            total_cost=dto.total_cost,
            note=dto.note,
            last_error=dto.last_error,
            started_at=dto.started_at,
            completed_at=dto.completed_at or datetime.now(UTC),
        )
        self.session.add(model)
        await self.session.flush()
        return PollRunDTO.from_model(model)

    async def list_recent(self, *, source_wallet: str | None = None, limit: int = 20) -> list[PollRunDTO]:
        query = select(PollRunModel).order_by(PollRunModel.started_at.desc()).limit(limit)
        if source_wallet is not None:
            query = query.where(PollRunModel.source_wallet == source_wallet.lower())
        result = await self.session.execute(query)
        return [PollRunDTO.from_model(m) for m in result.scalars().all()]


class CopyCursorRepository:
    """Repository for per-wallet copy cursors."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, wallet_address: str) -> CopyCursorDTO | None:
        model = await self.session.get(CopyCursorModel, wallet_address.lower())
        return CopyCursorDTO.from_model(model) if model else None

    async def upsert(self, wallet_address: str, *, last_trade_timestamp: int, last_trade_id: str) -> None:
        now = datetime.now(UTC)
        stmt = _dialect_insert(self.session, CopyCursorModel).values(
            wallet_address=wallet_address.lower(),
            last_trade_timestamp=last_trade_timestamp,
            last_trade_id=last_trade_id,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet_address"],
            set_={
                "last_trade_timestamp": stmt.excluded.last_trade_timestamp,
                "last_trade_id": stmt.excluded.last_trade_id,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
