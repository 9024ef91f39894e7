"""Tests for venue reconciliation."""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from polymarket_copytrader.copier.reconciliation import ReconciliationEngine
from polymarket_copytrader.ingestor.data_api import RetryError
from polymarket_copytrader.ingestor.models import VenuePosition
from polymarket_copytrader.ledger import SubledgerAccountant
from polymarket_copytrader.storage.database import transactional_session
from polymarket_copytrader.storage.repos import PositionRepository

OTHER = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"


class FakePositionSource:
    """Venue position list keyed by token id."""

    def __init__(self, held: dict[str, str] | None = None, error: Exception | None = None) -> None:
        self.held = held or {}
        self.error = error
        self.calls: list[str] = []

    async def get_positions(self, wallet_address: str) -> list[VenuePosition]:
        self.calls.append(wallet_address)
        if self.error is not None:
            raise self.error
        return [
            VenuePosition(token_id=token, condition_id=None, size=Decimal(size)) for token, size in self.held.items()
        ]


async def _open_positions(session_factory: async_sessionmaker[AsyncSession], wallet: str, *tokens: str) -> None:
    async with transactional_session(session_factory) as session:
        acct = SubledgerAccountant(session)
        await acct.wallets.register(wallet)
        for token in tokens:
            await acct.open_or_average(wallet, token, "0xc", Decimal("10"), Decimal("0.3"), Decimal("3"))


async def _open_tokens(session_factory: async_sessionmaker[AsyncSession], wallet: str | None = None) -> set[str]:
    async with transactional_session(session_factory) as session:
        return {p.token_id for p in await PositionRepository(session).list_open(wallet)}


class TestReconciliationEngine:
    """Tests for ReconciliationEngine."""

    @pytest.mark.asyncio
    async def test_settles_positions_no_longer_held(
        self, session_factory, wallet_address, funder_address
    ) -> None:
        await _open_positions(session_factory, wallet_address, "held", "resolved", "dust")
        source = FakePositionSource({"held": "10", "dust": "0"})
        engine = ReconciliationEngine(session_factory, source, funder_address.upper().replace("0X", "0x"))

        settled = await engine.reconcile_all()

        assert settled == 2
        assert source.calls == [funder_address]
        assert await _open_tokens(session_factory) == {"held"}
        async with transactional_session(session_factory) as session:
            closed = await PositionRepository(session).list_closed(source_wallet=wallet_address)
            stats = await SubledgerAccountant(session).stats(wallet_address)
        assert {p.close_reason for p in closed} == {"settled"}
        assert all(p.realized_pnl == Decimal("-3") for p in closed)
        assert stats.realized_pnl == Decimal("-6")

    @pytest.mark.asyncio
    async def test_settles_exactly_once(self, session_factory, wallet_address, funder_address) -> None:
        await _open_positions(session_factory, wallet_address, "resolved")
        engine = ReconciliationEngine(session_factory, FakePositionSource(), funder_address)

        assert await engine.reconcile_all() == 1
        assert await engine.reconcile_all() == 0

        async with transactional_session(session_factory) as session:
            closed = await PositionRepository(session).list_closed(source_wallet=wallet_address)
        assert len(closed) == 1

    @pytest.mark.asyncio
    async def test_fetch_error_settles_nothing(self, session_factory, wallet_address, funder_address) -> None:
        await _open_positions(session_factory, wallet_address, "a", "b")
        engine = ReconciliationEngine(
            session_factory, FakePositionSource(error=RetryError("positions unavailable")), funder_address
        )

        with pytest.raises(RetryError):
            await engine.reconcile_all()

        assert await _open_tokens(session_factory) == {"a", "b"}

    @pytest.mark.asyncio
    async def test_reconcile_single_wallet(self, session_factory, wallet_address, funder_address) -> None:
        await _open_positions(session_factory, wallet_address, "mine")
        await _open_positions(session_factory, OTHER, "theirs")
        engine = ReconciliationEngine(session_factory, FakePositionSource(), funder_address)

        assert await engine.reconcile(wallet_address) == 1
        assert await _open_tokens(session_factory) == {"theirs"}

    @pytest.mark.asyncio
    async def test_nothing_open(self, session_factory, funder_address) -> None:
        engine = ReconciliationEngine(session_factory, FakePositionSource(), funder_address)
        assert await engine.reconcile_all() == 0
