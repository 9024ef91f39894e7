"""Storage layer - Ledger schema, sessions and repositories."""

from polymarket_copytrader.storage.database import (
    DatabaseManager,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
    transactional_session,
)
from polymarket_copytrader.storage.models import (
    Base,
    CopiedTradeModel,
    CopyCursorModel,
    OperatingAccountModel,
    PollRunModel,
    PositionModel,
    SubledgerTransactionModel,
    TrackedWalletModel,
)
from polymarket_copytrader.storage.repos import (
    CopiedTradeDTO,
    CopiedTradeRepository,
    CopyCursorDTO,
    CopyCursorRepository,
    OperatingAccountRepository,
    PollRunDTO,
    PollRunRepository,
    PositionDTO,
    PositionRepository,
    SubledgerTransactionDTO,
    SubledgerTransactionRepository,
    TrackedWalletDTO,
    WalletRepository,
)

__all__ = [
    "Base",
    "CopiedTradeDTO",
    "CopiedTradeModel",
    "CopiedTradeRepository",
    "CopyCursorDTO",
    "CopyCursorModel",
    "CopyCursorRepository",
    "DatabaseManager",
    "OperatingAccountModel",
    "OperatingAccountRepository",
    "PollRunDTO",
    "PollRunModel",
    "PollRunRepository",
    "PositionDTO",
    "PositionModel",
    "PositionRepository",
    "SubledgerTransactionDTO",
    "SubledgerTransactionModel",
    "SubledgerTransactionRepository",
    "TrackedWalletDTO",
    "TrackedWalletModel",
    "WalletRepository",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
    "transactional_session",
]
