"""Pytest configuration and fixtures."""

from collections.abc import Callable
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from polymarket_copytrader.copier.models import CopySide, EffectivePolicy, SizingMode
from polymarket_copytrader.ingestor.models import CopySignal
from polymarket_copytrader.storage.models import Base

SOURCE_WALLET = "0x1234567890abcdef1234567890abcdef12345678"
OTHER_WALLET = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
FUNDER = "0xfffffffffffffffffffffffffffffffffffffff0"
BASE_TIMESTAMP = 1_760_000_000


@pytest.fixture
def wallet_address() -> str:
    """Sample tracked source wallet."""
    return SOURCE_WALLET


@pytest.fixture
def funder_address() -> str:
    """Sample funder (proxy) wallet holding our positions."""
    return FUNDER


@pytest.fixture
async def async_engine():
    """Create an async in-memory SQLite engine shared across sessions."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(bind=async_engine, expire_on_commit=False)


@pytest.fixture
async def async_session(session_factory) -> AsyncSession:
    """Create an async session for testing."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_signal() -> Callable[..., CopySignal]:
    """Factory for source-wallet trade signals.

    Each call gets a fresh transaction hash and a later timestamp unless
    given explicitly.
    """
    counter = {"n": 0}

    def _make(
        side: str = "BUY",
        *,
        price: str = "0.50",
        size: str = "10",
        token_id: str = "token-1",
        condition_id: str = "0xcondition1",
        transaction_hash: str | None = None,
        timestamp: int | None = None,
        source_wallet: str = SOURCE_WALLET,
    ) -> CopySignal:
        counter["n"] += 1
        n = counter["n"]
        return CopySignal(
            source_wallet=source_wallet,
            side=side,  # type: ignore[arg-type]
            token_id=token_id,
            condition_id=condition_id,
            price=Decimal(price),
            size=Decimal(size),
            transaction_hash=transaction_hash or f"0x{n:064x}",
            timestamp=timestamp if timestamp is not None else BASE_TIMESTAMP + n,
            market_title=f"Market {token_id}",
            outcome="Yes",
        )

    return _make


@pytest.fixture
def make_policy() -> Callable[..., EffectivePolicy]:
    """Factory for guardrail policies with the global defaults."""

    def _make(**overrides: object) -> EffectivePolicy:
        values: dict[str, object] = {
            "max_cost_per_trade": Decimal("10.00"),
            "max_exposure": Decimal("50.00"),
            "max_cost_per_run": Decimal("50.00"),
            "max_trades_per_run": 10,
            "min_trade_size": Decimal("1"),
            "sizing_mode": SizingMode.CONVICTION,
            "fixed_dollar_amount": Decimal("5.00"),
            "fixed_shares": Decimal("5"),
            "proportional_ratio": Decimal("0.1"),
            "conviction_ratio": Decimal("0.10"),
            "copy_side": CopySide.BOTH,
            "copy_exits": True,
            "min_price": Decimal("0.01"),
            "max_price": Decimal("0.99"),
            "allow_overdraft": False,
        }
        values.update(overrides)
        return EffectivePolicy(**values)  # type: ignore[arg-type]

    return _make
