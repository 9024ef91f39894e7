"""Tests for storage repositories."""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from polymarket_copytrader.storage.repos import (
    CopiedTradeDTO,
    CopiedTradeRepository,
    CopyCursorRepository,
    OperatingAccountRepository,
    PollRunDTO,
    PollRunRepository,
    PositionDTO,
    PositionRepository,
    SubledgerTransactionDTO,
    SubledgerTransactionRepository,
    WalletRepository,
)

# ============================================================================
# Fixtures
# ============================================================================


def _trade_dto(wallet: str, tx: str, *, status: str = "skipped", side: str = "BUY", cost: str | None = None):
    return CopiedTradeDTO(
        source_wallet=wallet,
        original_trade_id=tx,
        token_id="token-1",
        condition_id="0xcondition1",
        side=side,
        original_price=Decimal("0.5"),
        original_size=Decimal("10"),
        original_timestamp=1_760_000_000,
        status=status,
        copy_cost=Decimal(cost) if cost is not None else None,
        evaluation={"side": side, "rules": []},
    )


def _position_dto(wallet: str, token: str = "token-1", cost: str = "3") -> PositionDTO:
    return PositionDTO(
        source_wallet=wallet,
        token_id=token,
        condition_id="0xcondition1",
        shares=Decimal("10"),
        avg_entry_price=Decimal(cost) / Decimal("10"),
        total_cost=Decimal(cost),
    )


# ============================================================================
# WalletRepository Tests
# ============================================================================


class TestWalletRepository:
    """Tests for WalletRepository."""

    @pytest.mark.asyncio
    async def test_get_not_found(self, async_session: AsyncSession) -> None:
        assert await WalletRepository(async_session).get("0xnonexistent") is None

    @pytest.mark.asyncio
    async def test_register_normalizes_address(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = WalletRepository(async_session)
        wallet = await repo.register(wallet_address.upper().replace("0X", "0x"), alias="whale")

        assert wallet.address == wallet_address
        assert wallet.alias == "whale"
        assert wallet.enabled is True
        assert wallet.total_deposited == Decimal("0")

    @pytest.mark.asyncio
    async def test_register_re_enables_and_keeps_history(
        self, async_session: AsyncSession, wallet_address: str
    ) -> None:
        repo = WalletRepository(async_session)
        await repo.register(wallet_address, alias="whale")
        await repo.add_to_totals(wallet_address, deposited=Decimal("25"))
        assert await repo.set_enabled(wallet_address, False) is True
        await async_session.commit()

        wallet = await repo.register(wallet_address)
        await async_session.commit()

        assert wallet.enabled is True
        assert wallet.alias == "whale"
        assert wallet.total_deposited == Decimal("25")

    @pytest.mark.asyncio
    async def test_set_enabled_unknown_wallet(self, async_session: AsyncSession) -> None:
        assert await WalletRepository(async_session).set_enabled("0xnobody", False) is False

    @pytest.mark.asyncio
    async def test_update_overrides(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = WalletRepository(async_session)
        await repo.register(wallet_address)
        updated = await repo.update_overrides(
            wallet_address,
            max_exposure=Decimal("20"),
            sizing_mode="fixed_dollar",
        )
        await async_session.commit()

        assert updated is True
        wallet = await repo.get(wallet_address)
        assert wallet is not None
        assert wallet.max_exposure == Decimal("20")
        assert wallet.sizing_mode == "fixed_dollar"
        assert wallet.max_cost_per_trade is None

    @pytest.mark.asyncio
    async def test_update_overrides_rejects_unknown_field(
        self, async_session: AsyncSession, wallet_address: str
    ) -> None:
        repo = WalletRepository(async_session)
        await repo.register(wallet_address)
        with pytest.raises(ValueError, match="copy_side"):
            await repo.update_overrides(wallet_address, copy_side="SELL")

    @pytest.mark.asyncio
    async def test_list_enabled_only(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = WalletRepository(async_session)
        await repo.register(wallet_address)
        await repo.register("0xBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB")
        await repo.set_enabled("0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb", False)
        await async_session.commit()

        assert len(await repo.list_wallets()) == 2
        enabled = await repo.list_wallets(enabled_only=True)
        assert [w.address for w in enabled] == [wallet_address]


# ============================================================================
# Subledger and operating account Tests
# ============================================================================


class TestSubledgerTransactionRepository:
    """Tests for SubledgerTransactionRepository."""

    @pytest.mark.asyncio
    async def test_totals_per_wallet_and_overall(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = SubledgerTransactionRepository(async_session)
        await repo.insert(SubledgerTransactionDTO(wallet_address, "deposit", Decimal("100.10")))
        await repo.insert(SubledgerTransactionDTO(wallet_address, "deposit", Decimal("0.20")))
        await repo.insert(SubledgerTransactionDTO(wallet_address, "withdrawal", Decimal("30")))
        await repo.insert(SubledgerTransactionDTO("0xother", "deposit", Decimal("5")))
        await async_session.commit()

        assert await repo.totals(wallet_address) == (Decimal("100.30"), Decimal("30"))
        assert await repo.totals() == (Decimal("105.30"), Decimal("30"))
        assert len(await repo.list_for_wallet(wallet_address)) == 3

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = SubledgerTransactionRepository(async_session)
        with pytest.raises(IntegrityError):
            await repo.insert(SubledgerTransactionDTO(wallet_address, "deposit", Decimal("0")))


class TestOperatingAccountRepository:
    """Tests for OperatingAccountRepository."""

    @pytest.mark.asyncio
    async def test_totals_start_at_zero(self, async_session: AsyncSession) -> None:
        assert await OperatingAccountRepository(async_session).get_totals() == (Decimal("0"), Decimal("0"))

    @pytest.mark.asyncio
    async def test_add_accumulates(self, async_session: AsyncSession) -> None:
        repo = OperatingAccountRepository(async_session)
        await repo.add(deposited=Decimal("500"))
        await repo.add(deposited=Decimal("250"), withdrawn=Decimal("100"))
        await async_session.commit()

        assert await repo.get_totals() == (Decimal("750"), Decimal("100"))


# ============================================================================
# CopiedTradeRepository Tests
# ============================================================================


class TestCopiedTradeRepository:
    """Tests for CopiedTradeRepository."""

    @pytest.mark.asyncio
    async def test_insert_and_lookup(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopiedTradeRepository(async_session)
        record = await repo.insert(_trade_dto(wallet_address, "0xtx1"))
        await async_session.commit()

        assert record.id is not None
        found = await repo.get_by_original(wallet_address, "0xtx1")
        assert found is not None
        assert found.evaluation == {"side": "BUY", "rules": []}

    @pytest.mark.asyncio
    async def test_duplicate_source_trade_rejected(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopiedTradeRepository(async_session)
        await repo.insert(_trade_dto(wallet_address, "0xtx1"))
        with pytest.raises(IntegrityError):
            await repo.insert(_trade_dto(wallet_address, "0xtx1"))

    @pytest.mark.asyncio
    async def test_same_trade_id_allowed_for_other_wallet(
        self, async_session: AsyncSession, wallet_address: str
    ) -> None:
        repo = CopiedTradeRepository(async_session)
        await repo.insert(_trade_dto(wallet_address, "0xtx1"))
        await repo.insert(_trade_dto("0xother", "0xtx1"))
        await async_session.commit()

        assert await repo.existing_trade_ids(wallet_address, ["0xtx1", "0xtx2"]) == {"0xtx1"}
        assert await repo.existing_trade_ids(wallet_address, []) == set()

    @pytest.mark.asyncio
    async def test_mark_result_updates_in_place(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopiedTradeRepository(async_session)
        record = await repo.insert(_trade_dto(wallet_address, "0xtx1", status="pending"))
        await repo.mark_result(record.id or "", status="placed", order_id="order-1")
        await async_session.commit()

        updated = await repo.get(record.id or "")
        assert updated is not None
        assert updated.status == "placed"
        assert updated.order_id == "order-1"
        assert updated.executed_at is not None

    @pytest.mark.asyncio
    async def test_summary(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopiedTradeRepository(async_session)
        await repo.insert(_trade_dto(wallet_address, "0x1", status="placed", cost="3.00"))
        await repo.insert(_trade_dto(wallet_address, "0x2", status="placed", cost="2.50"))
        await repo.insert(_trade_dto(wallet_address, "0x3", status="placed", side="SELL", cost="4.00"))
        await repo.insert(_trade_dto(wallet_address, "0x4", status="failed"))
        await repo.insert(_trade_dto(wallet_address, "0x5", status="skipped"))
        await async_session.commit()

        summary = await repo.summary()
        assert summary["total_records"] == 5
        assert summary["successful"] == 3
        assert summary["failed"] == 1
        assert summary["skipped"] == 1
        assert summary["total_cost"] == Decimal("5.50")
        assert summary["success_rate"] == pytest.approx(0.75)

    @pytest.mark.asyncio
    async def test_list_recent_filters(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopiedTradeRepository(async_session)
        await repo.insert(_trade_dto(wallet_address, "0x1", status="skipped"))
        await repo.insert(_trade_dto(wallet_address, "0x2", status="failed"))
        await repo.insert(_trade_dto("0xother", "0x3", status="failed"))
        await async_session.commit()

        failed = await repo.list_recent(source_wallet=wallet_address, status="failed")
        assert [r.original_trade_id for r in failed] == ["0x2"]


# ============================================================================
# PositionRepository Tests
# ============================================================================


class TestPositionRepository:
    """Tests for PositionRepository."""

    @pytest.mark.asyncio
    async def test_one_open_position_per_wallet_token(
        self, async_session: AsyncSession, wallet_address: str
    ) -> None:
        repo = PositionRepository(async_session)
        await repo.insert_open(_position_dto(wallet_address))
        with pytest.raises(IntegrityError):
            await repo.insert_open(_position_dto(wallet_address))

    @pytest.mark.asyncio
    async def test_closed_position_allows_reopen(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = PositionRepository(async_session)
        first = await repo.insert_open(_position_dto(wallet_address))
        closed = await repo.close(
            first.id or "",
            exit_price=Decimal("0.6"),
            exit_proceeds=Decimal("6"),
            realized_pnl=Decimal("3"),
            close_reason="sell",
        )
        second = await repo.insert_open(_position_dto(wallet_address))
        await async_session.commit()

        assert closed is True
        assert second.id != first.id
        reopened = await repo.get_open(wallet_address, "token-1")
        assert reopened is not None and reopened.id == second.id

    @pytest.mark.asyncio
    async def test_close_is_terminal(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = PositionRepository(async_session)
        position = await repo.insert_open(_position_dto(wallet_address))
        kwargs = {
            "exit_price": Decimal("0"),
            "exit_proceeds": Decimal("0"),
            "realized_pnl": Decimal("-3"),
            "close_reason": "settled",
        }
        assert await repo.close(position.id or "", **kwargs) is True
        assert await repo.close(position.id or "", **kwargs) is False

    @pytest.mark.asyncio
    async def test_aggregates(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = PositionRepository(async_session)
        await repo.insert_open(_position_dto(wallet_address, "token-1", cost="3.30"))
        winner = await repo.insert_open(_position_dto(wallet_address, "token-2", cost="2"))
        loser = await repo.insert_open(_position_dto(wallet_address, "token-3", cost="4"))
        await repo.close(
            winner.id or "",
            exit_price=Decimal("1"),
            exit_proceeds=Decimal("10"),
            realized_pnl=Decimal("8"),
            close_reason="settled",
        )
        await repo.close(
            loser.id or "",
            exit_price=Decimal("0"),
            exit_proceeds=Decimal("0"),
            realized_pnl=Decimal("-4"),
            close_reason="settled",
        )
        await async_session.commit()

        agg = await repo.aggregates(wallet_address)
        assert agg["exposure"] == Decimal("3.30")
        assert agg["realized_pnl"] == Decimal("4")
        assert (agg["open_count"], agg["closed_count"], agg["winning_count"]) == (1, 2, 1)
        assert len(await repo.list_closed(source_wallet=wallet_address)) == 2


# ============================================================================
# PollRunRepository / CopyCursorRepository Tests
# ============================================================================


class TestPollRunRepository:
    """Tests for PollRunRepository."""

    @pytest.mark.asyncio
    async def test_insert_sets_completed_at(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = PollRunRepository(async_session)
        run = await repo.insert(PollRunDTO(source_wallet=wallet_address, trades_found=3, note="wallet not funded"))
        await async_session.commit()

        assert run.id is not None
        assert run.completed_at is not None
        recent = await repo.list_recent(source_wallet=wallet_address)
        assert [r.note for r in recent] == ["wallet not funded"]


class TestCopyCursorRepository:
    """Tests for CopyCursorRepository."""

    @pytest.mark.asyncio
    async def test_upsert_moves_cursor(self, async_session: AsyncSession, wallet_address: str) -> None:
        repo = CopyCursorRepository(async_session)
        await repo.upsert(wallet_address, last_trade_timestamp=100, last_trade_id="0xa")
        await repo.upsert(wallet_address, last_trade_timestamp=200, last_trade_id="0xb")
        await async_session.commit()

        cursor = await repo.get(wallet_address)
        assert cursor is not None
        assert (cursor.last_trade_timestamp, cursor.last_trade_id) == (200, "0xb")
