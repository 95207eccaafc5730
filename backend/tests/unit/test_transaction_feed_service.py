"""Tests for TransactionFeedService."""

from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import Disposal, Lot, RealizedEvent
from schemas.ledger import TransactionEvent
from services.exceptions import InvalidLedgerInputError
from services.transaction_feed_service import TransactionFeedService, feed_order_key
from tests.fixtures import ALEX, HOLDER, day


def event(tx_id, direction, when, amount, price, asset_id="STX", symbol=None):
    return TransactionEvent(
        tx_id=tx_id,
        asset_id=asset_id,
        direction=direction,
        timestamp=when,
        amount=Decimal(amount),
        price_usd_per_unit=Decimal(price),
        symbol=symbol,
    )


class TestOrdering:
    def test_sorted_by_timestamp(self):
        late = event("b", "in", day(2), "1", "1")
        early = event("a", "in", day(1), "1", "1")

        assert sorted([late, early], key=feed_order_key) == [early, late]

    def test_acquisition_before_disposal_at_same_time(self):
        sell = event("0xaaa", "out", day(1), "1", "1")
        buy = event("0xbbb", "in", day(1), "1", "1")

        assert sorted([sell, buy], key=feed_order_key) == [buy, sell]


class TestApplyEvents:
    def test_routes_in_and_out(self, db: Session):
        events = [
            event("lotA", "in", day(1), "30", "1.00"),
            event("lotB", "in", day(2), "50", "2.00"),
            event("sell", "out", day(3), "60", "3.00"),
        ]

        result = TransactionFeedService.apply_events(db, HOLDER, events)

        assert result.acquisitions_recorded == 2
        assert result.disposals_applied == 1
        assert result.duplicates_skipped == 0
        assert result.total_realized_profit == Decimal("90")
        assert result.insufficient_disposals == []
        assert db.query(RealizedEvent).count() == 2

    def test_out_of_order_batch_applied_chronologically(self, db: Session):
        events = [
            event("sell", "out", day(3), "10", "2.00"),
            event("lotB", "in", day(2), "10", "5.00"),
            event("lotA", "in", day(1), "10", "1.00"),
        ]

        result = TransactionFeedService.apply_events(db, HOLDER, events)

        # Sold from lotA (oldest), not from lotB
        assert result.total_realized_profit == Decimal("10")
        remaining = {lot.source_tx_id: lot.remaining_amount for lot in db.query(Lot)}
        assert remaining == {"lotA": Decimal("0"), "lotB": Decimal("10")}

    def test_same_block_buy_covers_sell(self, db: Session):
        events = [
            event("0xsell", "out", day(1), "5", "2"),
            event("0xbuy", "in", day(1), "5", "1"),
        ]

        result = TransactionFeedService.apply_events(db, HOLDER, events)

        assert result.insufficient_disposals == []
        assert result.total_realized_profit == Decimal("5")

    def test_swap_in_one_tx(self, db: Session):
        """A swap is one tx that disposes one asset and acquires another."""
        TransactionFeedService.apply_events(
            db, HOLDER, [event("0xbuy", "in", day(1), "100", "1")]
        )

        result = TransactionFeedService.apply_events(
            db,
            HOLDER,
            [
                event("0xswap", "out", day(2), "100", "1.2"),
                event("0xswap", "in", day(2), "1000", "0.12", asset_id=ALEX, symbol="ALEX"),
            ],
        )

        assert result.acquisitions_recorded == 1
        assert result.disposals_applied == 1
        assert result.total_realized_profit == Decimal("20")
        assert db.query(Lot).filter_by(asset_id=ALEX).one().cost_basis_per_unit == Decimal("0.12")

    def test_replayed_batch_is_noop(self, db: Session):
        events = [
            event("lotA", "in", day(1), "30", "1.00"),
            event("sell", "out", day(3), "10", "3.00"),
        ]
        TransactionFeedService.apply_events(db, HOLDER, events)

        replay = TransactionFeedService.apply_events(db, HOLDER, events)

        assert replay.acquisitions_recorded == 0
        assert replay.disposals_applied == 0
        assert replay.duplicates_skipped == 2
        assert replay.total_realized_profit == Decimal("0")
        assert db.query(Lot).one().remaining_amount == Decimal("20")
        assert db.query(Disposal).count() == 1

    def test_shortfall_reported(self, db: Session):
        events = [
            event("lotA", "in", day(1), "10", "1"),
            event("sell", "out", day(2), "25", "2"),
        ]

        result = TransactionFeedService.apply_events(db, HOLDER, events)

        (short,) = result.insufficient_disposals
        assert short.disposal_tx_id == "sell"
        assert short.unmatched_amount == Decimal("15")
        assert result.total_realized_profit == Decimal("10")

    def test_empty_batch(self, db: Session):
        result = TransactionFeedService.apply_events(db, HOLDER, [])

        assert result.acquisitions_recorded == 0
        assert result.disposals_applied == 0


class TestValidation:
    def test_invalid_event_rejects_whole_batch(self, db: Session):
        good = event("lotA", "in", day(1), "10", "1")
        bad = TransactionEvent.model_construct(
            tx_id="lotB",
            asset_id="STX",
            direction="in",
            timestamp=day(2),
            amount=Decimal("0"),
            price_usd_per_unit=Decimal("1"),
            symbol=None,
        )

        with pytest.raises(InvalidLedgerInputError, match="amount"):
            TransactionFeedService.apply_events(db, HOLDER, [good, bad])

        assert db.query(Lot).count() == 0

    def test_blank_holder_rejected(self, db: Session):
        with pytest.raises(InvalidLedgerInputError, match="holder"):
            TransactionFeedService.apply_events(db, "  ", [])

    def test_schema_rejects_unknown_direction(self):
        with pytest.raises(ValueError):
            event("tx", "sideways", day(1), "1", "1")

    def test_schema_rejects_negative_price(self):
        with pytest.raises(ValueError):
            event("tx", "in", day(1), "1", "-1")
