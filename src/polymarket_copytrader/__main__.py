"""Command-line entry point.

Usage:
    python -m polymarket_copytrader run [--dry-run] [--once]
    python -m polymarket_copytrader reconcile [--wallet ADDRESS]
    python -m polymarket_copytrader init-db
    python -m polymarket_copytrader add-wallet ADDRESS [--alias NAME] [overrides...]
    python -m polymarket_copytrader disable-wallet ADDRESS
    python -m polymarket_copytrader deposit AMOUNT [--wallet ADDRESS] [--note TEXT]
    python -m polymarket_copytrader withdraw AMOUNT [--wallet ADDRESS] [--note TEXT]
    python -m polymarket_copytrader stats [--wallet ADDRESS]
    python -m polymarket_copytrader history [--wallet ADDRESS] [--status STATUS] [--limit N]
    python -m polymarket_copytrader settle POSITION_ID {won,lost}
    python -m polymarket_copytrader record-sale POSITION_ID PRICE
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from typing import Any

from polymarket_copytrader.config import Settings, get_settings
from polymarket_copytrader.copier.orchestrator import CopyOrchestrator
from polymarket_copytrader.copier.reconciliation import ReconciliationEngine
from polymarket_copytrader.daemon import CopyDaemon
from polymarket_copytrader.execution.venue import ClobVenueAdapter
from polymarket_copytrader.ingestor.data_api import DataApiClient
from polymarket_copytrader.ledger.accountant import LedgerError, SubledgerAccountant
from polymarket_copytrader.storage.database import DatabaseManager
from polymarket_copytrader.storage.repos import (
    CopiedTradeRepository,
    PollRunRepository,
    PositionRepository,
    WalletRepository,
)

logger = logging.getLogger("polymarket_copytrader")


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {k: _jsonable(v) for k, v in dataclasses.asdict(value).items()}
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [_jsonable(v) for v in value]
    return value


def _print(payload: Any) -> None:
    print(json.dumps(_jsonable(payload), indent=2, default=str))


def _data_api(settings: Settings) -> DataApiClient:
    return DataApiClient(
        base_url=settings.polymarket.data_api_url,
        timeout_seconds=settings.polymarket.request_timeout_seconds,
        max_retries=settings.polymarket.max_retries,
    )


# ============================================================================
# Commands
# ============================================================================


async def _cmd_run(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    dry_run = True if args.dry_run else settings.daemon.dry_run
    try:
        settings.validate_requirements(command="run", dry_run=dry_run)
    except ValueError as e:
        logger.error("Refusing to start: %s", e)
        return 2

    async with _data_api(settings) as data_api:
        venue = None if dry_run else ClobVenueAdapter.from_settings(settings.polymarket, data_api)
        orchestrator = CopyOrchestrator.from_settings(
            settings, db.session_factory, feed=data_api, venue=venue, dry_run=dry_run
        )
        reconciler = None
        if settings.polymarket.clob_funder:
            reconciler = ReconciliationEngine(db.session_factory, data_api, settings.polymarket.clob_funder)
        else:
            logger.warning("POLYMARKET_CLOB_FUNDER not set; reconciliation disabled")

        daemon = CopyDaemon.from_settings(settings, orchestrator, reconciler)
        daemon.install_signal_handlers()
        stats = await daemon.run(max_cycles=1 if args.once else None)
    return 1 if args.once and stats.errors else 0


async def _cmd_reconcile(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    try:
        settings.validate_requirements(command="reconcile")
    except ValueError as e:
        logger.error("%s", e)
        return 2
    funder = settings.polymarket.clob_funder or ""
    async with _data_api(settings) as data_api:
        engine = ReconciliationEngine(db.session_factory, data_api, funder)
        settled = await (engine.reconcile(args.wallet) if args.wallet else engine.reconcile_all())
    _print({"settled": settled})
    return 0


async def _cmd_init_db(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    await db.init_schema_async()
    return 0


async def _cmd_add_wallet(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    overrides = {
        name: getattr(args, name)
        for name in (
            "max_cost_per_trade",
            "max_exposure",
            "sizing_mode",
            "fixed_dollar_amount",
            "conviction_ratio",
            "min_price",
            "max_price",
        )
        if getattr(args, name) is not None
    }
    if args.allow_overdraft:
        overrides["allow_overdraft"] = True

    async with db.get_async_session() as session:
        repo = WalletRepository(session)
        await repo.register(args.address, alias=args.alias)
        if overrides:
            await repo.update_overrides(args.address, **overrides)
        wallet = await repo.get(args.address)
    _print(wallet)
    return 0


async def _cmd_disable_wallet(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        found = await WalletRepository(session).set_enabled(args.address, False)
    if not found:
        logger.error("Wallet %s is not tracked", args.address)
        return 1
    return 0


async def _cmd_deposit(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        accountant = SubledgerAccountant(session)
        if args.wallet:
            await accountant.deposit(args.wallet, args.amount, note=args.note)
            result: Any = await accountant.stats(args.wallet)
        else:
            result = await accountant.deposit_operating(args.amount)
    _print(result)
    return 0


async def _cmd_withdraw(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        accountant = SubledgerAccountant(session)
        if args.wallet:
            await accountant.withdraw(args.wallet, args.amount, note=args.note)
            result: Any = await accountant.stats(args.wallet)
        else:
            result = await accountant.withdraw_operating(args.amount)
    _print(result)
    return 0


async def _cmd_stats(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        accountant = SubledgerAccountant(session)
        if args.wallet:
            _print(await accountant.stats(args.wallet))
            return 0

        wallets = await WalletRepository(session).list_wallets()
        summary = await accountant.position_summary()
        _print(
            {
                "operating_account": await accountant.operating_account(),
                "wallets": [await accountant.stats(w.address) for w in wallets],
                "copied_trades": await CopiedTradeRepository(session).summary(),
                "positions": {**dataclasses.asdict(summary), "win_rate": summary.win_rate},
            }
        )
    return 0


async def _cmd_history(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        _print(
            {
                "trades": await CopiedTradeRepository(session).list_recent(
                    source_wallet=args.wallet, status=args.status, limit=args.limit
                ),
                "runs": await PollRunRepository(session).list_recent(source_wallet=args.wallet, limit=args.limit),
                "open_positions": await PositionRepository(session).list_open(args.wallet),
                "closed_positions": await PositionRepository(session).list_closed(
                    source_wallet=args.wallet, limit=args.limit
                ),
            }
        )
    return 0


async def _cmd_settle(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        position = await SubledgerAccountant(session).settle_position(args.position_id, args.outcome)
    _print(position)
    return 0


async def _cmd_record_sale(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> int:
    async with db.get_async_session() as session:
        position = await SubledgerAccountant(session).record_manual_sale(args.position_id, args.price)
    _print(position)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="polymarket_copytrader",
        description="Copy trades from tracked Polymarket wallets under per-wallet subledgers.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("run", help="Run the copy daemon")
    p.add_argument("--dry-run", action="store_true", help="Evaluate and record without submitting orders")
    p.add_argument("--once", action="store_true", help="Run a single copy cycle and exit")
    p.set_defaults(handler=_cmd_run)

    p = sub.add_parser("reconcile", help="Settle positions the venue account no longer holds")
    p.add_argument("--wallet", help="Only reconcile this tracked wallet")
    p.set_defaults(handler=_cmd_reconcile)

    p = sub.add_parser("init-db", help="Create the ledger schema")
    p.set_defaults(handler=_cmd_init_db)

    p = sub.add_parser("add-wallet", help="Track a wallet (re-enables a disabled one)")
    p.add_argument("address")
    p.add_argument("--alias")
    p.add_argument("--max-cost-per-trade", type=_decimal)
    p.add_argument("--max-exposure", type=_decimal)
    p.add_argument(
        "--sizing-mode",
        choices=["conviction", "fixed_dollar", "fixed_shares", "proportional", "match"],
    )
    p.add_argument("--fixed-dollar-amount", type=_decimal)
    p.add_argument("--conviction-ratio", type=_decimal)
    p.add_argument("--min-price", type=_decimal)
    p.add_argument("--max-price", type=_decimal)
    p.add_argument("--allow-overdraft", action="store_true")
    p.set_defaults(handler=_cmd_add_wallet)

    p = sub.add_parser("disable-wallet", help="Stop copying a wallet (history is kept)")
    p.add_argument("address")
    p.set_defaults(handler=_cmd_disable_wallet)

    for name, handler, verb in (("deposit", _cmd_deposit, "Credit"), ("withdraw", _cmd_withdraw, "Debit")):
        p = sub.add_parser(name, help=f"{verb} a wallet subledger, or the operating account")
        p.add_argument("amount", type=_decimal)
        p.add_argument("--wallet", help="Tracked wallet; omit for the operating account")
        p.add_argument("--note")
        p.set_defaults(handler=handler)

    p = sub.add_parser("stats", help="Show balances, exposure and P&L")
    p.add_argument("--wallet")
    p.set_defaults(handler=_cmd_stats)

    p = sub.add_parser("history", help="Show recent copied trades, runs and positions")
    p.add_argument("--wallet")
    p.add_argument("--status", choices=["pending", "placed", "filled", "failed", "skipped"])
    p.add_argument("--limit", type=int, default=20)
    p.set_defaults(handler=_cmd_history)

    p = sub.add_parser("settle", help="Manually settle a position as won or lost")
    p.add_argument("position_id")
    p.add_argument("outcome", choices=["won", "lost"])
    p.set_defaults(handler=_cmd_settle)

    p = sub.add_parser("record-sale", help="Record a manual sale of a position")
    p.add_argument("position_id")
    p.add_argument("price", type=_decimal)
    p.set_defaults(handler=_cmd_record_sale)

    return parser


async def _dispatch(settings: Settings, args: argparse.Namespace) -> int:
    db = DatabaseManager(settings.database.url)
    try:
        return await args.handler(settings, db, args)
    except (LedgerError, ValueError) as e:
        logger.error("%s", e)
        return 1
    finally:
        await db.dispose_async()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Settings: %s", settings.redacted_summary())
    return asyncio.run(_dispatch(settings, args))


if __name__ == "__main__":
    sys.exit(main())
