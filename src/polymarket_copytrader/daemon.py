"""Copy-trading daemon.

A single asyncio task drives two cadences from elapsed monotonic time:

    every poll interval       -> copy pass over all enabled wallets
    every reconcile interval  -> reconcile positions against the venue

Wallets are processed one at a time. A stop request is honoured between
wallets and between one-second sleep slices; a wallet pass in flight is
allowed to finish.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from polymarket_copytrader.config import Settings
    from polymarket_copytrader.copier.orchestrator import CopyOrchestrator, RunResult
    from polymarket_copytrader.copier.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)

SLEEP_SLICE_SECONDS = 1.0
STATS_LOG_EVERY_CYCLES = 30


class DaemonState(str, Enum):
    """Daemon lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class DaemonStats:
    """Statistics for the daemon."""

    started_at: datetime | None = None
    cycles: int = 0
    wallet_runs: int = 0
    trades_found: int = 0
    trades_copied: int = 0
    trades_skipped: int = 0
    trades_failed: int = 0
    total_cost: Decimal = Decimal("0")
    errors: int = 0
    reconciles: int = 0
    positions_settled: int = 0
    last_cycle_at: datetime | None = None
    last_error: str | None = None

    def record_run(self, result: RunResult) -> None:
        run = result.run
        self.wallet_runs += 1
        self.trades_found += run.trades_found
        self.trades_copied += run.trades_copied
        self.trades_skipped += run.trades_skipped
        self.trades_failed += run.trades_failed
        self.total_cost += run.total_cost
        self.errors += run.errors
        if run.last_error:
            self.last_error = run.last_error


class CopyDaemon:
    """Long-running scheduler for copy passes and reconciliation.

    Example:
        ```python
        daemon = CopyDaemon.from_settings(settings, orchestrator, reconciler)
        daemon.install_signal_handlers()
        await daemon.run()
        ```
    """

    def __init__(
        self,
        orchestrator: CopyOrchestrator,
        reconciler: ReconciliationEngine | None = None,
        *,
        poll_interval_seconds: float = 10,
        reconcile_interval_seconds: float = 300,
        live_confirmed: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize the daemon.

        Args:
            orchestrator: Runs copy passes.
            reconciler: Optional reconciliation engine; without one only the
                copy cadence runs.
            poll_interval_seconds: Pause between copy cycles.
            reconcile_interval_seconds: Minimum time between reconciliations.
            live_confirmed: Whether the operator confirmed live trading.
            clock: Monotonic clock, replaceable in tests.
            sleep: Awaitable sleep, replaceable in tests.
        """
        self._orchestrator = orchestrator
        self._reconciler = reconciler
        self._poll_interval = poll_interval_seconds
        self._reconcile_interval = reconcile_interval_seconds
        self._live_confirmed = live_confirmed
        self._clock = clock
        self._sleep = sleep

        self._state = DaemonState.STOPPED
        self._stats = DaemonStats()
        self._stop_requested = False
        self._last_reconcile: float | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        orchestrator: CopyOrchestrator,
        reconciler: ReconciliationEngine | None,
    ) -> CopyDaemon:
        return cls(
            orchestrator,
            reconciler,
            poll_interval_seconds=settings.daemon.poll_interval_seconds,
            reconcile_interval_seconds=settings.daemon.reconcile_interval_seconds,
            live_confirmed=settings.daemon.live_confirmed,
        )

    @property
    def state(self) -> DaemonState:
        """Current daemon state."""
        return self._state

    @property
    def stats(self) -> DaemonStats:
        """Current daemon statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        return self._state == DaemonState.RUNNING

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def request_stop(self) -> None:
        """Ask the daemon to stop after the current wallet pass."""
        if not self._stop_requested:
            logger.info("Stop requested; finishing current work...")
        self._stop_requested = True
        if self._state == DaemonState.RUNNING:
            self._state = DaemonState.STOPPING

    def install_signal_handlers(self) -> None:
        """Route SIGINT and SIGTERM to a graceful stop."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            # Not supported on every platform's event loop.
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, self.request_stop)

    async def run(self, max_cycles: int | None = None) -> DaemonStats:
        """Run copy cycles until a stop is requested.

        Args:
            max_cycles: Stop after this many copy cycles (``--once`` uses 1).

        Returns:
            Final daemon statistics.

        Raises:
            RuntimeError: If already running, or if live trading was not
                confirmed.
        """
        if self._state not in (DaemonState.STOPPED, DaemonState.ERROR):
            raise RuntimeError(f"Cannot start daemon in state {self._state}")

        self._state = DaemonState.STARTING
        if not self._orchestrator.dry_run and not self._live_confirmed:
            self._state = DaemonState.ERROR
            self._stats.last_error = "live trading not confirmed"
            raise RuntimeError("Refusing to start live copy trading without explicit confirmation")

        self._stats.started_at = datetime.now(UTC)
        self._state = DaemonState.RUNNING
        logger.info(
            "Copy daemon started (%s): poll every %ss, reconcile every %ss",
            "dry run" if self._orchestrator.dry_run else "LIVE",
            self._poll_interval,
            self._reconcile_interval if self._reconciler else "-",
        )

        try:
            while not self._stop_requested:
                await self.run_cycle()

                if self._reconcile_due() and not self._stop_requested:
                    await self.reconcile_once()

                if self._stats.cycles % STATS_LOG_EVERY_CYCLES == 0:
                    self.log_stats()
                if max_cycles is not None and self._stats.cycles >= max_cycles:
                    break
                await self._sleep_interruptibly(self._poll_interval)
        finally:
            self._state = DaemonState.STOPPED
            logger.info("Copy daemon stopped")
            self.log_stats()
        return self._stats

    async def run_cycle(self) -> list[RunResult]:
        """Run one copy pass over all enabled wallets."""
        results: list[RunResult] = []
        try:
            results = await self._orchestrator.run_all(should_stop=lambda: self._stop_requested)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.exception("Copy cycle failed")

        for result in results:
            self._stats.record_run(result)
        self._stats.cycles += 1
        self._stats.last_cycle_at = datetime.now(UTC)
        return results

    async def reconcile_once(self) -> int:
        """Run one reconciliation pass; failures are logged, not raised."""
        if self._reconciler is None:
            return 0
        self._last_reconcile = self._clock()
        try:
            settled = await self._reconciler.reconcile_all()
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.exception("Reconciliation failed; no positions settled")
            return 0
        self._stats.reconciles += 1
        self._stats.positions_settled += settled
        return settled

    def _reconcile_due(self) -> bool:
        if self._reconciler is None:
            return False
        if self._last_reconcile is None:
            return True
        return self._clock() - self._last_reconcile >= self._reconcile_interval

    async def _sleep_interruptibly(self, seconds: float) -> None:
        remaining = float(seconds)
        while remaining > 0 and not self._stop_requested:
            step = min(SLEEP_SLICE_SECONDS, remaining)
            await self._sleep(step)
            remaining -= step

    def log_stats(self) -> None:
        s = self._stats
        logger.info(
            "Daemon stats: cycles=%d runs=%d found=%d copied=%d skipped=%d failed=%d "
            "cost=%s errors=%d reconciles=%d settled=%d",
            s.cycles,
            s.wallet_runs,
            s.trades_found,
            s.trades_copied,
            s.trades_skipped,
            s.trades_failed,
            s.total_cost,
            s.errors,
            s.reconciles,
            s.positions_settled,
        )
