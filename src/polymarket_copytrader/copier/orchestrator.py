"""Copy orchestrator.

Runs one copy pass per tracked wallet:

    fetch -> dedupe -> evaluate -> size -> execute -> advance cursor

Every pass persists a PollRun audit row, whatever the outcome. Each
observed source trade yields exactly one CopiedTrade record (skipped,
failed, placed or, if accounting broke after submission, pending), except
BUYs deferred by a run halt, which are left for a later run.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Protocol

from sqlalchemy.exc import IntegrityError

from polymarket_copytrader.copier.guardrails import GuardrailEvaluator
from polymarket_copytrader.copier.models import RunTotals, SizingCalculation, TradeStatus
from polymarket_copytrader.copier.policy import resolve_policy
from polymarket_copytrader.copier.sizing import PositionSizer
from polymarket_copytrader.execution.venue import ERROR_MAX_LENGTH
from polymarket_copytrader.ingestor.data_api import DataApiError
from polymarket_copytrader.ledger.accountant import SubledgerAccountant, WalletNotFoundError
from polymarket_copytrader.storage.database import transactional_session
from polymarket_copytrader.storage.repos import (
    CopiedTradeDTO,
    CopiedTradeRepository,
    CopyCursorRepository,
    PollRunDTO,
    PollRunRepository,
    PositionRepository,
    WalletRepository,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from polymarket_copytrader.config import GuardrailSettings, Settings
    from polymarket_copytrader.copier.models import EffectivePolicy, GuardrailEvaluation
    from polymarket_copytrader.execution.venue import OrderResult, OrderVenue
    from polymarket_copytrader.ingestor.models import CopySignal

logger = logging.getLogger(__name__)

NOTE_NOT_FUNDED = "wallet not funded"
NOTE_NO_BALANCE = "no available balance"
REASON_DRY_RUN = "dry run"


class TradeFeed(Protocol):
    """Source of recent trades for a wallet, most recent first."""

    async def fetch_recent_signals(
        self,
        wallet_address: str,
        *,
        max_age: timedelta,
        max_trades: int = ...,
    ) -> list[CopySignal]: ...


@dataclass
class RunResult:
    """Outcome of one wallet's copy pass."""

    run: PollRunDTO
    records: list[CopiedTradeDTO] = field(default_factory=list)
    halt_reason: str | None = None

    @property
    def wallet_address(self) -> str:
        return self.run.source_wallet

    @property
    def halted(self) -> bool:
        return self.halt_reason is not None


@dataclass
class _WalletPass:
    wallet: str
    policy: EffectivePolicy
    totals: RunTotals
    result: RunResult


def _error_text(exc: BaseException) -> str:
    return f"{type(exc).__name__}: {exc}"[:ERROR_MAX_LENGTH]


class CopyOrchestrator:
    """Drives copy passes for tracked wallets.

    Example:
        ```python
        orchestrator = CopyOrchestrator(
            session_factory,
            feed=data_api,
            venue=venue,
            guardrails=settings.guardrails,
            dry_run=True,
        )
        result = await orchestrator.run_for_wallet("0xabc...")
        ```
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        feed: TradeFeed,
        venue: OrderVenue | None,
        guardrails: GuardrailSettings,
        dry_run: bool = True,
        max_trade_age: timedelta = timedelta(minutes=60),
        max_trades_per_fetch: int = 100,
        order_delay_seconds: float = 0.5,
        evaluator: GuardrailEvaluator | None = None,
        sizer: PositionSizer | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            session_factory: Factory for ledger sessions.
            feed: Trade feed used to fetch source signals.
            venue: Order venue. Required unless ``dry_run`` is set.
            guardrails: Global guardrail defaults.
            dry_run: Run the full pipeline without submitting orders.
            max_trade_age: Source trades older than this are ignored.
            max_trades_per_fetch: Upper bound on signals fetched per pass.
            order_delay_seconds: Pause between live order submissions.
            evaluator: Optional guardrail evaluator override.
            sizer: Optional position sizer override.
            sleep: Awaitable sleep, replaceable in tests.

        Raises:
            ValueError: If no venue is given for a live orchestrator.
        """
        if venue is None and not dry_run:
            raise ValueError("A venue is required unless running in dry-run mode")
        self._session_factory = session_factory
        self._feed = feed
        self._venue = venue
        self._guardrails = guardrails
        self._dry_run = dry_run
        self._max_trade_age = max_trade_age
        self._max_trades_per_fetch = max_trades_per_fetch
        self._order_delay_seconds = order_delay_seconds
        self._evaluator = evaluator or GuardrailEvaluator()
        self._sizer = sizer or PositionSizer()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        feed: TradeFeed,
        venue: OrderVenue | None,
        dry_run: bool | None = None,
    ) -> CopyOrchestrator:
        daemon = settings.daemon
        return cls(
            session_factory,
            feed=feed,
            venue=venue,
            guardrails=settings.guardrails,
            dry_run=daemon.dry_run if dry_run is None else dry_run,
            max_trade_age=timedelta(minutes=daemon.max_trade_age_minutes),
            max_trades_per_fetch=daemon.max_trades_per_fetch,
            order_delay_seconds=daemon.order_delay_seconds,
        )

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def run_all(self, should_stop: Callable[[], bool] | None = None) -> list[RunResult]:
        """Run a copy pass for every enabled wallet, one after another.

        Args:
            should_stop: Checked between wallets; when it returns True the
                remaining wallets are left for the next cycle.
        """
        async with transactional_session(self._session_factory) as session:
            wallets = await WalletRepository(session).list_wallets(enabled_only=True)

        results: list[RunResult] = []
        for wallet in wallets:
            if should_stop is not None and should_stop():
                logger.info("Stop requested; leaving %d wallet(s) for later", len(wallets) - len(results))
                break
            results.append(await self.run_for_wallet(wallet.address))
        return results

    async def run_for_wallet(self, address: str) -> RunResult:
        """Run one copy pass for a wallet and persist its PollRun.

        Any error raised mid-pass ends it early and is recorded on the PollRun
        instead of propagating, so one bad wallet never stops the others.

        Raises:
            WalletNotFoundError: If the wallet is not registered.
        """
        wallet = address.lower()
        async with transactional_session(self._session_factory) as session:
            tracked = await WalletRepository(session).get(wallet)
            if tracked is None:
                raise WalletNotFoundError(f"wallet {wallet} is not tracked")
            stats = await SubledgerAccountant(session).stats(wallet)

        policy = resolve_policy(tracked, self._guardrails)
        result = RunResult(run=PollRunDTO(source_wallet=wallet, dry_run=self._dry_run))
        state = _WalletPass(
            wallet=wallet,
            policy=policy,
            totals=RunTotals(existing_exposure=stats.exposure, available_balance=stats.available),
            result=result,
        )
        logger.info(
            "Copy pass for %s (%s): available=%s exposure=%s",
            wallet,
            "dry run" if self._dry_run else "live",
            stats.available,
            stats.exposure,
        )

        try:
            if stats.deposited <= 0:
                result.run.note = NOTE_NOT_FUNDED
                logger.info("Skipping %s: %s", wallet, NOTE_NOT_FUNDED)
            elif stats.available <= 0 and not policy.allow_overdraft:
                result.run.note = NOTE_NO_BALANCE
                logger.info("Skipping %s: %s (%s)", wallet, NOTE_NO_BALANCE, stats.available)
            else:
                await self._copy_signals(state)
        except Exception as e:
            logger.exception("Copy pass for %s aborted", wallet)
            result.run.errors += 1
            result.run.last_error = _error_text(e)

        result.run.completed_at = datetime.now(UTC)
        async with transactional_session(self._session_factory) as session:
            result.run = await PollRunRepository(session).insert(result.run)

        run = result.run
        logger.info(
            "Copy pass for %s done: found=%d new=%d copied=%d skipped=%d failed=%d cost=%s errors=%d",
            wallet,
            run.trades_found,
            run.trades_new,
            run.trades_copied,
            run.trades_skipped,
            run.trades_failed,
            run.total_cost,
            run.errors,
        )
        return result

    # -- pass stages -------------------------------------------------------

    async def _copy_signals(self, state: _WalletPass) -> None:
        run = state.result.run
        try:
            signals = await self._feed.fetch_recent_signals(
                state.wallet,
                max_age=self._max_trade_age,
                max_trades=self._max_trades_per_fetch,
            )
        except DataApiError as e:
            logger.warning("Trade feed failed for %s: %s", state.wallet, e)
            run.errors += 1
            run.last_error = _error_text(e)
            return

        run.trades_found = len(signals)
        if not signals:
            return

        async with transactional_session(self._session_factory) as session:
            seen = await CopiedTradeRepository(session).existing_trade_ids(
                state.wallet, (s.transaction_hash for s in signals)
            )

        new_signals: list[CopySignal] = []
        for signal in signals:
            if signal.transaction_hash in seen:
                continue
            seen.add(signal.transaction_hash)
            new_signals.append(signal)
        run.trades_new = len(new_signals)
        logger.info(
            "%s: %d trade(s) found, %d new", state.wallet, len(signals), len(new_signals)
        )

        try:
            # Feed order: the most recent trades get first claim on capacity.
            for signal in new_signals:
                if signal.side == "SELL":
                    await self._process_exit(state, signal)
                else:
                    await self._process_entry(state, signal)
        finally:
            newest = signals[0]
            async with transactional_session(self._session_factory) as session:
                await CopyCursorRepository(session).upsert(
                    state.wallet,
                    last_trade_timestamp=newest.timestamp,
                    last_trade_id=newest.transaction_hash,
                )

    async def _process_exit(self, state: _WalletPass, signal: CopySignal) -> None:
        evaluation = self._evaluator.evaluate(signal, state.policy)
        if not evaluation.passed:
            await self._record_skipped(state, signal, evaluation)
            return

        async with transactional_session(self._session_factory) as session:
            position = await PositionRepository(session).get_open(state.wallet, signal.token_id)
        self._evaluator.check_exit(evaluation, position)
        if position is None:
            await self._record_skipped(state, signal, evaluation)
            return

        shares = self._sizer.size_exit(position)
        proceeds = shares * signal.price
        evaluation.sizing = SizingCalculation(
            mode="exit",
            input_value=position.shares,
            calculated_shares=shares,
            final_cost=proceeds,
        )

        if self._dry_run:
            evaluation.mark(TradeStatus.SKIPPED, REASON_DRY_RUN)
            await self._record_skipped(state, signal, evaluation, shares=shares, cost=proceeds)
            return

        record = await self._record_pending(state, signal, evaluation, shares=shares, cost=proceeds)
        order = await self._submit(signal, shares)
        if not order.success:
            await self._record_failure(state, record, evaluation, order.error)
            return

        async with transactional_session(self._session_factory) as session:
            await SubledgerAccountant(session).close(
                state.wallet, signal.token_id, signal.price, proceeds, reason="sell"
            )
            evaluation.mark(TradeStatus.PLACED)
            record = await self._mark(session, record, TradeStatus.PLACED, evaluation, order_id=order.order_id)
        self._replace_record(state, record)

        state.totals.record_exit()
        state.result.run.trades_copied += 1
        await self._pause()

    async def _process_entry(self, state: _WalletPass, signal: CopySignal) -> None:
        if state.result.halted:
            logger.debug(
                "Deferring BUY %s for %s: run halted (%s)",
                signal.transaction_hash,
                state.wallet,
                state.result.halt_reason,
            )
            return

        evaluation = self._evaluator.evaluate(signal, state.policy)
        if not evaluation.passed:
            await self._record_skipped(state, signal, evaluation)
            return

        size = self._sizer.size(signal, state.policy)
        if self._evaluator.check_sizing(evaluation, state.policy, size) is not None:
            await self._record_skipped(state, signal, evaluation)
            return

        if self._evaluator.check_capacity(evaluation, state.policy, state.totals, size.cost) is not None:
            state.result.halt_reason = evaluation.skip_reason
            logger.info("Halting BUYs for %s: %s", state.wallet, evaluation.skip_reason)
            await self._record_skipped(state, signal, evaluation)
            return

        if self._dry_run:
            evaluation.mark(TradeStatus.SKIPPED, REASON_DRY_RUN)
            await self._record_skipped(state, signal, evaluation, shares=size.shares, cost=size.cost)
            return

        record = await self._record_pending(state, signal, evaluation, shares=size.shares, cost=size.cost)
        order = await self._submit(signal, size.shares)
        if not order.success:
            await self._record_failure(state, record, evaluation, order.error)
            return

        async with transactional_session(self._session_factory) as session:
            await SubledgerAccountant(session).open_or_average(
                state.wallet,
                signal.token_id,
                signal.condition_id,
                shares=size.shares,
                price=signal.price,
                cost=size.cost,
            )
            evaluation.mark(TradeStatus.PLACED)
            record = await self._mark(session, record, TradeStatus.PLACED, evaluation, order_id=order.order_id)
        self._replace_record(state, record)

        state.totals.record_buy(size.cost)
        state.result.run.trades_copied += 1
        state.result.run.total_cost += size.cost
        await self._pause()

    # -- execution ---------------------------------------------------------

    async def _submit(self, signal: CopySignal, shares: Decimal) -> OrderResult:
        if self._venue is None:
            raise RuntimeError("No venue configured for live order submission")
        return await self._venue.submit_order(
            side=signal.side,
            token_id=signal.token_id,
            price=signal.price,
            size=shares,
        )

    async def _pause(self) -> None:
        if self._order_delay_seconds > 0:
            await self._sleep(self._order_delay_seconds)

    # -- records -----------------------------------------------------------

    def _build_record(
        self,
        wallet: str,
        signal: CopySignal,
        evaluation: GuardrailEvaluation,
        status: TradeStatus,
        *,
        shares: Decimal | None = None,
        cost: Decimal | None = None,
    ) -> CopiedTradeDTO:
        return CopiedTradeDTO(
            source_wallet=wallet,
            original_trade_id=signal.transaction_hash,
            token_id=signal.token_id,
            condition_id=signal.condition_id,
            side=signal.side,
            original_price=signal.price,
            original_size=signal.size,
            original_timestamp=signal.timestamp,
            status=status.value,
            copy_price=signal.price if shares is not None else None,
            copy_size=shares,
            copy_cost=cost,
            skip_reason=evaluation.skip_reason if status is TradeStatus.SKIPPED else None,
            market_title=signal.market_title,
            market_slug=signal.market_slug,
            event_slug=signal.event_slug,
            outcome=signal.outcome,
            evaluation=evaluation.to_dict(),
        )

    async def _record_skipped(
        self,
        state: _WalletPass,
        signal: CopySignal,
        evaluation: GuardrailEvaluation,
        *,
        shares: Decimal | None = None,
        cost: Decimal | None = None,
    ) -> None:
        evaluation.mark(TradeStatus.SKIPPED)
        dto = self._build_record(state.wallet, signal, evaluation, TradeStatus.SKIPPED, shares=shares, cost=cost)
        try:
            async with transactional_session(self._session_factory) as session:
                record = await CopiedTradeRepository(session).insert(dto)
        except IntegrityError:
            logger.info("Trade %s for %s already recorded", signal.transaction_hash, state.wallet)
            return
        logger.info(
            "SKIP %s %s (%s): %s",
            signal.side,
            signal.market_title or signal.token_id,
            signal.transaction_hash,
            evaluation.skip_reason,
        )
        state.result.records.append(record)
        state.result.run.trades_skipped += 1

    async def _record_pending(
        self,
        state: _WalletPass,
        signal: CopySignal,
        evaluation: GuardrailEvaluation,
        *,
        shares: Decimal,
        cost: Decimal,
    ) -> CopiedTradeDTO:
        evaluation.mark(TradeStatus.PENDING)
        dto = self._build_record(state.wallet, signal, evaluation, TradeStatus.PENDING, shares=shares, cost=cost)
        async with transactional_session(self._session_factory) as session:
            record = await CopiedTradeRepository(session).insert(dto)
        state.result.records.append(record)
        logger.info(
            "COPY %s %s shares of %s @ %s (cost %s)",
            signal.side,
            shares,
            signal.market_title or signal.token_id,
            signal.price,
            cost,
        )
        return record

    async def _record_failure(
        self,
        state: _WalletPass,
        record: CopiedTradeDTO,
        evaluation: GuardrailEvaluation,
        error: str | None,
    ) -> None:
        evaluation.mark(TradeStatus.FAILED)
        async with transactional_session(self._session_factory) as session:
            updated = await self._mark(session, record, TradeStatus.FAILED, evaluation, error=error)
        self._replace_record(state, updated)
        state.result.run.trades_failed += 1
        logger.warning("Copy of %s for %s failed: %s", record.original_trade_id, state.wallet, error)
        await self._pause()

    async def _mark(
        self,
        session: AsyncSession,
        record: CopiedTradeDTO,
        status: TradeStatus,
        evaluation: GuardrailEvaluation,
        *,
        order_id: str | None = None,
        error: str | None = None,
    ) -> CopiedTradeDTO:
        repo = CopiedTradeRepository(session)
        record_id = record.id or ""
        await repo.mark_result(
            record_id,
            status=status.value,
            order_id=order_id,
            error=error,
            evaluation=evaluation.to_dict(),
        )
        return await repo.get(record_id) or record

    @staticmethod
    def _replace_record(state: _WalletPass, record: CopiedTradeDTO) -> None:
        records = state.result.records
        for i, existing in enumerate(records):
            if existing.id == record.id:
                records[i] = record
                return
        records.append(record)
