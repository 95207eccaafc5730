"""FIFO consumption engine. Disposes lots oldest-first and records realized PnL.

One disposal walks the holder's open lots for the asset in acquisition order,
takes ``min(lot.remaining, outstanding)`` from each, and writes one
RealizedEvent per lot touched with profit ``(sale - cost) * consumed``.

At most one consumption per (holder, asset) runs at a time: callers take a
process-wide per-pair lock, the open lots are selected ``FOR UPDATE`` (row
locks on PostgreSQL), and the session is committed before the lock is
released. This is the one service that commits on its own.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy.orm import Session

from models import Disposal, Lot, RealizedEvent
from services.asset_service import AssetService
from services.lot_ledger_service import (
    LotLedgerService,
    require_identity,
    require_non_negative,
    require_positive,
    require_timestamp,
)
from utils.numbers import ZERO, quantize

logger = logging.getLogger(__name__)


@dataclass
class ConsumptionResult:
    """What a disposal did to the ledger.

    ``unmatched_amount > 0`` means the open lots ran out before the disposal
    was covered (a disposal without recorded acquisition history). The
    matched part is still committed.
    """

    holder: str
    asset_id: str
    disposal_tx_id: str
    requested_amount: Decimal
    matched_amount: Decimal
    unmatched_amount: Decimal
    total_realized_profit: Decimal
    events: list[RealizedEvent] = field(default_factory=list)
    duplicate: bool = False

    @property
    def insufficient_lots(self) -> bool:
        return self.unmatched_amount > ZERO


@dataclass
class _PairLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class PairLockRegistry:
    """One lock per (holder, asset) pair.

    An entry exists only while some caller holds or waits on it, so the
    registry stays as small as the number of pairs in flight.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, str], _PairLock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, holder: str, asset_id: str) -> Iterator[None]:
        key = (holder, asset_id)
        with self._guard:
            entry = self._locks.setdefault(key, _PairLock())
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]


class LotConsumptionService:
    """Applies disposals to the lot ledger in FIFO order."""

    # Shared across instances; single-process guarantee. Multi-process
    # deployments rely on the FOR UPDATE row locks.
    _pair_locks = PairLockRegistry()

    @classmethod
    def consume(
        cls,
        db: Session,
        holder: str,
        asset_id: str,
        disposal_tx_id: str,
        disposed_at: datetime,
        amount,
        sale_price_per_unit,
        symbol: Optional[str] = None,
    ) -> ConsumptionResult:
        """Dispose ``amount`` units against the oldest open lots.

        Args:
            db: Database session (committed by this call)
            holder: Wallet address owning the lots
            asset_id: Asset being disposed
            disposal_tx_id: Feed transaction id of the disposal
            disposed_at: Disposal timestamp
            amount: Units disposed, > 0
            sale_price_per_unit: USD proceeds per unit, >= 0
            symbol: Optional display symbol for the asset

        Returns:
            ConsumptionResult. Replaying an already recorded disposal returns
            the stored outcome with ``duplicate=True`` and changes nothing.

        Raises:
            InvalidLedgerInputError: before any mutation, for bad input.
        """
        ids = require_identity(
            holder=holder, asset_id=asset_id, disposal_tx_id=disposal_tx_id
        )
        disposed_at = require_timestamp("disposed_at", disposed_at)
        amount = require_positive("amount", amount)
        sale_price = require_non_negative("sale_price_per_unit", sale_price_per_unit)
        holder, asset_id, disposal_tx_id = (
            ids["holder"], ids["asset_id"], ids["disposal_tx_id"]
        )

        with cls._pair_locks.hold(holder, asset_id):
            try:
                result = cls._consume_locked(
                    db, holder, asset_id, disposal_tx_id, disposed_at,
                    amount, sale_price, symbol,
                )
                db.commit()
            except Exception:
                db.rollback()
                raise

        if result.duplicate:
            logger.info(
                "Duplicate disposal ignored: %s %s tx %s",
                holder, asset_id, disposal_tx_id,
            )
        elif result.insufficient_lots:
            logger.warning(
                "Insufficient lots for disposal %s: %s of %s %s unmatched for %s",
                disposal_tx_id, result.unmatched_amount, amount, asset_id, holder,
            )
        return result

    @classmethod
    def _consume_locked(
        cls,
        db: Session,
        holder: str,
        asset_id: str,
        disposal_tx_id: str,
        disposed_at: datetime,
        amount: Decimal,
        sale_price: Decimal,
        symbol: Optional[str],
    ) -> ConsumptionResult:
        recorded = (
            db.query(Disposal)
            .filter_by(holder=holder, asset_id=asset_id, tx_id=disposal_tx_id)
            .first()
        )
        if recorded is not None:
            return _result_from_record(db, recorded)

        AssetService.ensure_exists(db, asset_id, symbol)

        open_lots = (
            LotLedgerService.fifo_query(db, holder, asset_id)
            .filter(Lot.is_closed.is_(False))
            .with_for_update()
            .all()
        )

        outstanding = amount
        total_profit = ZERO
        events: list[RealizedEvent] = []

        for lot in open_lots:
            if outstanding <= ZERO:
                break

            consumed = min(lot.remaining_amount, outstanding)
            if consumed <= ZERO:
                continue

            already = (
                db.query(RealizedEvent)
                .filter_by(
                    disposal_tx_id=disposal_tx_id,
                    acquisition_tx_id=lot.source_tx_id,
                    holder=holder,
                    asset_id=asset_id,
                )
                .first()
            )
            if already is not None:
                # Event written by an earlier run whose Disposal row is missing
                events.append(already)
                total_profit += already.profit
                outstanding -= already.amount
                continue

            profit = quantize((sale_price - lot.cost_basis_per_unit) * consumed)
            event = RealizedEvent(
                holder=holder,
                asset_id=asset_id,
                lot_id=lot.id,
                disposal_tx_id=disposal_tx_id,
                acquisition_tx_id=lot.source_tx_id,
                disposed_at=disposed_at,
                amount=consumed,
                cost_basis_per_unit=lot.cost_basis_per_unit,
                sale_price_per_unit=sale_price,
                profit=profit,
            )
            db.add(event)
            events.append(event)

            lot.remaining_amount = lot.remaining_amount - consumed
            if lot.remaining_amount == ZERO:
                lot.is_closed = True

            outstanding -= consumed
            total_profit += profit

            logger.info(
                "FIFO disposal: %s %s from lot %s (remaining: %s, profit: %s)",
                consumed, asset_id, lot.source_tx_id, lot.remaining_amount, profit,
            )

        outstanding = max(outstanding, ZERO)
        matched = amount - outstanding

        db.add(
            Disposal(
                holder=holder,
                asset_id=asset_id,
                tx_id=disposal_tx_id,
                disposed_at=disposed_at,
                amount=amount,
                sale_price_per_unit=sale_price,
                matched_amount=matched,
                unmatched_amount=outstanding,
                realized_profit=total_profit,
            )
        )
        db.flush()

        return ConsumptionResult(
            holder=holder,
            asset_id=asset_id,
            disposal_tx_id=disposal_tx_id,
            requested_amount=amount,
            matched_amount=matched,
            unmatched_amount=outstanding,
            total_realized_profit=total_profit,
            events=events,
        )


def _result_from_record(db: Session, disposal: Disposal) -> ConsumptionResult:
    """Rebuild the outcome of an already applied disposal."""
    events = (
        db.query(RealizedEvent)
        .join(Lot, RealizedEvent.lot_id == Lot.id)
        .filter(
            RealizedEvent.holder == disposal.holder,
            RealizedEvent.asset_id == disposal.asset_id,
            RealizedEvent.disposal_tx_id == disposal.tx_id,
        )
        .order_by(Lot.acquired_at, Lot.source_tx_id)
        .all()
    )
    return ConsumptionResult(
        holder=disposal.holder,
        asset_id=disposal.asset_id,
        disposal_tx_id=disposal.tx_id,
        requested_amount=disposal.amount,
        matched_amount=disposal.matched_amount,
        unmatched_amount=disposal.unmatched_amount,
        total_realized_profit=disposal.realized_profit,
        events=events,
        duplicate=True,
    )
