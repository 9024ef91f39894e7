"""Reconciliation of internal positions against the venue.

A market that resolves removes its tokens from the venue account's
position list. Any open internal position whose token is no longer held
by the funder account is therefore treated as settled. The venue list does
not say which side won, so such positions are closed at a settlement price
of 0 (assumed loss); a position that actually won can be corrected by
manual settlement.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from polymarket_copytrader.ledger.accountant import PositionNotFoundError, SubledgerAccountant
from polymarket_copytrader.storage.database import transactional_session
from polymarket_copytrader.storage.repos import PositionRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from polymarket_copytrader.execution.venue import PositionSource
    from polymarket_copytrader.storage.repos import PositionDTO

logger = logging.getLogger(__name__)

ASSUMED_SETTLEMENT_PRICE = Decimal("0")


class ReconciliationEngine:
    """Closes internal positions the venue account no longer holds."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        positions: PositionSource,
        funder_address: str,
    ) -> None:
        """Initialize the reconciliation engine.

        Args:
            session_factory: Factory for ledger sessions.
            positions: Source of the venue account's positions.
            funder_address: The account that actually holds copied positions.
        """
        self._session_factory = session_factory
        self._positions = positions
        self._funder_address = funder_address.lower()

    async def _held_tokens(self) -> set[str]:
        venue_positions = await self._positions.get_positions(self._funder_address)
        return {p.token_id for p in venue_positions if p.size > 0}

    async def reconcile_all(self) -> int:
        """Reconcile every open position against one venue snapshot.

        Returns:
            Number of positions settled.

        Raises:
            Whatever the position source raises; nothing is settled then.
        """
        held = await self._held_tokens()
        async with transactional_session(self._session_factory) as session:
            open_positions = await PositionRepository(session).list_open()
        return await self._settle_missing(open_positions, held)

    async def reconcile(self, wallet_address: str) -> int:
        """Reconcile one wallet's open positions.

        Returns:
            Number of positions settled.
        """
        held = await self._held_tokens()
        async with transactional_session(self._session_factory) as session:
            open_positions = await PositionRepository(session).list_open(wallet_address)
        return await self._settle_missing(open_positions, held)

    async def _settle_missing(self, open_positions: list[PositionDTO], held: set[str]) -> int:
        settled = 0
        for position in open_positions:
            if position.token_id in held:
                continue
            try:
                async with transactional_session(self._session_factory) as session:
                    await SubledgerAccountant(session).close_as_settled(
                        position.source_wallet, position.token_id, ASSUMED_SETTLEMENT_PRICE
                    )
            except PositionNotFoundError:
                # Closed by a concurrent exit since the snapshot was taken.
                logger.debug("Position %s already closed", position.id)
                continue
            settled += 1
            logger.info(
                "Settled %s/%s: no longer held by venue account, assumed loss of %s",
                position.source_wallet,
                position.token_id,
                position.total_cost,
            )

        logger.info(
            "Reconciliation: %d open position(s) checked, %d settled", len(open_positions), settled
        )
        return settled
