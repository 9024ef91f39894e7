"""Ledger layer - per-wallet subledgers and the operating account."""

from polymarket_copytrader.ledger.accountant import (
    InvalidAmountError,
    LedgerError,
    OperatingAccountView,
    PositionNotFoundError,
    PositionSummary,
    SubledgerAccountant,
    WalletNotFoundError,
    WalletStats,
)

__all__ = [
    "InvalidAmountError",
    "LedgerError",
    "OperatingAccountView",
    "PositionNotFoundError",
    "PositionSummary",
    "SubledgerAccountant",
    "WalletNotFoundError",
    "WalletStats",
]
