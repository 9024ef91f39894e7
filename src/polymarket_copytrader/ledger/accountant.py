"""Subledger accounting for tracked wallets.

Each tracked wallet owns a virtual account: deposits and withdrawals are
recorded as transactions, copied BUYs open or average into positions, and
exits close them with a realized P&L. Balances are never stored; they are
derived on demand from transactions and positions:

    exposure  = sum(total_cost of open positions)
    available = deposited - withdrawn + realized_pnl - exposure

The accountant works inside the caller's session, so a caller that wraps
several calls in one ``transactional_session`` gets them atomically.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Literal

from polymarket_copytrader.storage.repos import (
    OperatingAccountRepository,
    PositionDTO,
    PositionRepository,
    SubledgerTransactionDTO,
    SubledgerTransactionRepository,
    WalletRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from polymarket_copytrader.storage.repos import TrackedWalletDTO

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

CloseReason = Literal["sell", "settled", "manual_settle", "manual_sale"]


class LedgerError(Exception):
    """Base exception for ledger errors."""


class InvalidAmountError(LedgerError, ValueError):
    """Raised for non-positive amounts or out-of-range prices."""


class WalletNotFoundError(LedgerError):
    """Raised when a wallet is not registered."""


class PositionNotFoundError(LedgerError):
    """Raised when no open position matches the request."""


def _as_amount(value: Decimal | int | str, what: str) -> Decimal:
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidAmountError(f"{what} is not a number: {value!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise InvalidAmountError(f"{what} must be positive, got {value}")
    return amount


def _as_price(value: Decimal | int | str) -> Decimal:
    try:
        price = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as e:
        raise InvalidAmountError(f"price is not a number: {value!r}") from e
    if not price.is_finite() or not (ZERO <= price <= ONE):
        raise InvalidAmountError(f"price must be between 0 and 1, got {value}")
    return price


@dataclass(frozen=True)
class WalletStats:
    """Derived subledger figures for one wallet."""

    address: str
    deposited: Decimal
    withdrawn: Decimal
    exposure: Decimal
    realized_pnl: Decimal
    available: Decimal
    return_percent: Decimal
    open_positions: int
    closed_positions: int

    @property
    def net_deposited(self) -> Decimal:
        return self.deposited - self.withdrawn


@dataclass(frozen=True)
class OperatingAccountView:
    """Pooled operating account with the share allocated to wallets."""

    deposited: Decimal
    withdrawn: Decimal
    allocated: Decimal
    available: Decimal


@dataclass(frozen=True)
class PositionSummary:
    """Aggregate position outcomes, across all wallets or one wallet."""

    open_positions: int
    closed_positions: int
    winning_positions: int
    exposure: Decimal
    realized_pnl: Decimal

    @property
    def win_rate(self) -> float:
        if not self.closed_positions:
            return 0.0
        return self.winning_positions / self.closed_positions


class SubledgerAccountant:
    """Balance, exposure and P&L arithmetic over the ledger store."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.wallets = WalletRepository(session)
        self.transactions = SubledgerTransactionRepository(session)
        self.positions = PositionRepository(session)
        self.operating = OperatingAccountRepository(session)

    async def _require_wallet(self, address: str) -> TrackedWalletDTO:
        wallet = await self.wallets.get(address)
        if wallet is None:
            raise WalletNotFoundError(f"wallet {address} is not tracked")
        return wallet

    # -- funding ---------------------------------------------------------

    async def deposit(
        self, address: str, amount: Decimal | int | str, note: str | None = None
    ) -> SubledgerTransactionDTO:
        """Credit a wallet's subledger.

        Raises:
            InvalidAmountError: If ``amount`` is not positive.
            WalletNotFoundError: If the wallet is not registered.
        """
        value = _as_amount(amount, "deposit amount")
        wallet = await self._require_wallet(address)
        tx = await self.transactions.insert(
            SubledgerTransactionDTO(wallet_address=wallet.address, type="deposit", amount=value, note=note)
        )
        await self.wallets.add_to_totals(wallet.address, deposited=value)
        logger.info("Deposited %s into %s", value, wallet.address)
        return tx

    async def withdraw(
        self, address: str, amount: Decimal | int | str, note: str | None = None
    ) -> SubledgerTransactionDTO:
        """Debit a wallet's subledger.

        Raises:
            InvalidAmountError: If ``amount`` is not positive.
            WalletNotFoundError: If the wallet is not registered.
        """
        value = _as_amount(amount, "withdrawal amount")
        wallet = await self._require_wallet(address)
        stats = await self.stats(wallet.address)
        if value > stats.available:
            logger.warning(
                "Withdrawal of %s from %s exceeds available balance %s",
                value,
                wallet.address,
                stats.available,
            )
        tx = await self.transactions.insert(
            SubledgerTransactionDTO(wallet_address=wallet.address, type="withdrawal", amount=value, note=note)
        )
        await self.wallets.add_to_totals(wallet.address, withdrawn=value)
        logger.info("Withdrew %s from %s", value, wallet.address)
        return tx

    # -- positions -------------------------------------------------------

    async def open_or_average(
        self,
        address: str,
        token_id: str,
        condition_id: str,
        shares: Decimal,
        price: Decimal,
        cost: Decimal,
    ) -> PositionDTO:
        """Open a position, or fold a fill into the existing open one.

        The average entry price is always total_cost / shares.
        """
        shares = _as_amount(shares, "shares")
        cost = _as_amount(cost, "cost")
        wallet = address.lower()

        existing = await self.positions.get_open(wallet, token_id)
        if existing is None:
            position = await self.positions.insert_open(
                PositionDTO(
                    source_wallet=wallet,
                    token_id=token_id,
                    condition_id=condition_id,
                    shares=shares,
                    avg_entry_price=cost / shares,
                    total_cost=cost,
                )
            )
            logger.info("Opened position %s/%s: %s @ %s", wallet, token_id, shares, price)
            return position

        total_shares = existing.shares + shares
        total_cost = existing.total_cost + cost
        avg_price = total_cost / total_shares
        await self.positions.update_holding(
            existing.id or "",
            shares=total_shares,
            avg_entry_price=avg_price,
            total_cost=total_cost,
        )
        logger.info(
            "Averaged into %s/%s: +%s @ %s -> %s shares, avg %s",
            wallet,
            token_id,
            shares,
            price,
            total_shares,
            avg_price,
        )
        existing.shares = total_shares
        existing.total_cost = total_cost
        existing.avg_entry_price = avg_price
        return existing

    async def _close_position(
        self,
        position: PositionDTO,
        *,
        exit_price: Decimal,
        exit_proceeds: Decimal,
        reason: CloseReason,
    ) -> PositionDTO:
        pnl = exit_proceeds - position.total_cost
        closed = await self.positions.close(
            position.id or "",
            exit_price=exit_price,
            exit_proceeds=exit_proceeds,
            realized_pnl=pnl,
            close_reason=reason,
        )
        if not closed:
            raise PositionNotFoundError(f"position {position.id} is no longer open")
        logger.info(
            "Closed position %s/%s (%s): proceeds %s, pnl %s",
            position.source_wallet,
            position.token_id,
            reason,
            exit_proceeds,
            pnl,
        )
        refreshed = await self.positions.get(position.id or "")
        return refreshed or position

    async def close(
        self,
        address: str,
        token_id: str,
        exit_price: Decimal,
        exit_proceeds: Decimal,
        *,
        reason: CloseReason = "sell",
    ) -> PositionDTO:
        """Close the open position for (wallet, token).

        Raises:
            PositionNotFoundError: If there is no open position.
        """
        position = await self.positions.get_open(address, token_id)
        if position is None:
            raise PositionNotFoundError(f"no open position for {address.lower()}/{token_id}")
        return await self._close_position(
            position, exit_price=exit_price, exit_proceeds=exit_proceeds, reason=reason
        )

    async def close_as_settled(
        self, address: str, token_id: str, settlement_price: Decimal | int | str
    ) -> PositionDTO:
        """Close a position at a settlement price (1 for a win, 0 for a loss)."""
        price = _as_price(settlement_price)
        position = await self.positions.get_open(address, token_id)
        if position is None:
            raise PositionNotFoundError(f"no open position for {address.lower()}/{token_id}")
        return await self._close_position(
            position, exit_price=price, exit_proceeds=position.shares * price, reason="settled"
        )

    async def _require_open_position(self, position_id: str) -> PositionDTO:
        position = await self.positions.get(position_id)
        if position is None or not position.is_open:
            raise PositionNotFoundError(f"no open position with id {position_id}")
        return position

    async def settle_position(self, position_id: str, outcome: Literal["won", "lost"]) -> PositionDTO:
        """Manually settle a position as won (price 1) or lost (price 0)."""
        if outcome not in ("won", "lost"):
            raise ValueError(f"outcome must be 'won' or 'lost', got {outcome!r}")
        position = await self._require_open_position(position_id)
        price = ONE if outcome == "won" else ZERO
        return await self._close_position(
            position, exit_price=price, exit_proceeds=position.shares * price, reason="manual_settle"
        )

    async def record_manual_sale(self, position_id: str, exit_price: Decimal | int | str) -> PositionDTO:
        """Record a sale made outside the copier at ``exit_price``."""
        price = _as_price(exit_price)
        position = await self._require_open_position(position_id)
        return await self._close_position(
            position, exit_price=price, exit_proceeds=position.shares * price, reason="manual_sale"
        )

    # -- derived figures -------------------------------------------------

    async def stats(self, address: str) -> WalletStats:
        """Derive a wallet's balances from its transactions and positions."""
        wallet = address.lower()
        deposited, withdrawn = await self.transactions.totals(wallet)
        agg = await self.positions.aggregates(wallet)
        exposure: Decimal = agg["exposure"]
        realized_pnl: Decimal = agg["realized_pnl"]

        net = deposited - withdrawn
        available = net + realized_pnl - exposure
        return_percent = ((available + exposure - net) / net * HUNDRED) if net > 0 else ZERO

        return WalletStats(
            address=wallet,
            deposited=deposited,
            withdrawn=withdrawn,
            exposure=exposure,
            realized_pnl=realized_pnl,
            available=available,
            return_percent=return_percent,
            open_positions=agg["open_count"],
            closed_positions=agg["closed_count"],
        )

    async def position_summary(self, address: str | None = None) -> PositionSummary:
        agg = await self.positions.aggregates(address)
        return PositionSummary(
            open_positions=agg["open_count"],
            closed_positions=agg["closed_count"],
            winning_positions=agg["winning_count"],
            exposure=agg["exposure"],
            realized_pnl=agg["realized_pnl"],
        )

    # -- operating account -----------------------------------------------

    async def operating_account(self) -> OperatingAccountView:
        """Pooled account figures; ``allocated`` is the sum of wallet net deposits."""
        deposited, withdrawn = await self.operating.get_totals()
        wallet_deposits, wallet_withdrawals = await self.transactions.totals()
        allocated = wallet_deposits - wallet_withdrawals
        return OperatingAccountView(
            deposited=deposited,
            withdrawn=withdrawn,
            allocated=allocated,
            available=deposited - withdrawn - allocated,
        )

    async def deposit_operating(self, amount: Decimal | int | str) -> OperatingAccountView:
        value = _as_amount(amount, "deposit amount")
        await self.operating.add(deposited=value)
        logger.info("Deposited %s into the operating account", value)
        return await self.operating_account()

    async def withdraw_operating(self, amount: Decimal | int | str) -> OperatingAccountView:
        value = _as_amount(amount, "withdrawal amount")
        await self.operating.add(withdrawn=value)
        logger.info("Withdrew %s from the operating account", value)
        return await self.operating_account()
