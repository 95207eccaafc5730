"""Applies classified transaction-feed events to the lot ledger."""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from schemas.ledger import TransactionEvent
from services.lot_consumption_service import ConsumptionResult, LotConsumptionService
from services.lot_ledger_service import (
    LotLedgerService,
    require_identity,
    require_non_negative,
    require_positive,
    require_timestamp,
)
from utils.numbers import ZERO

logger = logging.getLogger(__name__)

# Within one timestamp, acquisitions are applied before disposals so a
# same-block buy can cover a same-block sell.
_DIRECTION_ORDER = {"in": 0, "out": 1}


@dataclass
class FeedResult:
    acquisitions_recorded: int = 0
    disposals_applied: int = 0
    duplicates_skipped: int = 0
    total_realized_profit: Decimal = ZERO
    insufficient_disposals: list[ConsumptionResult] = field(default_factory=list)


def feed_order_key(event: TransactionEvent) -> tuple:
    return (
        require_timestamp("timestamp", event.timestamp),
        _DIRECTION_ORDER[event.direction],
        event.tx_id,
        event.asset_id,
    )


class TransactionFeedService:
    """Routes feed events to the ledger (``in``) or FIFO consumption (``out``)."""

    @staticmethod
    def validate_events(holder: str, events: list[TransactionEvent]) -> None:
        """Reject the whole batch if any event is invalid.

        Raises:
            InvalidLedgerInputError: naming the offending event.
        """
        require_identity(holder=holder)
        for event in events:
            require_identity(tx_id=event.tx_id, asset_id=event.asset_id)
            require_timestamp("timestamp", event.timestamp)
            require_positive("amount", event.amount)
            require_non_negative("price_usd_per_unit", event.price_usd_per_unit)

    @staticmethod
    def apply_events(
        db: Session, holder: str, events: list[TransactionEvent]
    ) -> FeedResult:
        """Apply a batch of feed events in timestamp order.

        All events are validated before the first one is applied. Replayed
        events are counted as duplicates and change nothing, so delivering
        the same batch twice is safe.
        """
        TransactionFeedService.validate_events(holder, events)

        result = FeedResult()
        for event in sorted(events, key=feed_order_key):
            if event.direction == "in":
                outcome = LotLedgerService.record_acquisition(
                    db,
                    holder=holder,
                    asset_id=event.asset_id,
                    source_tx_id=event.tx_id,
                    acquired_at=event.timestamp,
                    amount=event.amount,
                    cost_basis_per_unit=event.price_usd_per_unit,
                    symbol=event.symbol,
                )
                if outcome.created:
                    result.acquisitions_recorded += 1
                else:
                    result.duplicates_skipped += 1
                continue

            consumption = LotConsumptionService.consume(
                db,
                holder=holder,
                asset_id=event.asset_id,
                disposal_tx_id=event.tx_id,
                disposed_at=event.timestamp,
                amount=event.amount,
                sale_price_per_unit=event.price_usd_per_unit,
                symbol=event.symbol,
            )
            if consumption.duplicate:
                result.duplicates_skipped += 1
                continue
            result.disposals_applied += 1
            result.total_realized_profit += consumption.total_realized_profit
            if consumption.insufficient_lots:
                result.insufficient_disposals.append(consumption)

        logger.info(
            "Feed applied for %s: %d acquisitions, %d disposals, %d duplicates, %d short",
            holder,
            result.acquisitions_recorded,
            result.disposals_applied,
            result.duplicates_skipped,
            len(result.insufficient_disposals),
        )
        return result
