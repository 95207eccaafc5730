"""Service for the FIFO lot ledger.

Data layer for acquisition lots, realized events and disposal records. Lots
are only ever appended here; decrementing them is the job of
``LotConsumptionService``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import asc, select, union
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import Disposal, Lot, RealizedEvent
from services.asset_service import AssetService
from services.exceptions import InvalidLedgerInputError
from utils.numbers import ZERO, quantize
from utils.timestamps import to_storage

logger = logging.getLogger(__name__)


@dataclass
class AcquisitionResult:
    """Outcome of ``record_acquisition``; ``created`` is False for a replay."""

    lot: Lot
    created: bool


def require_identity(**fields: Optional[str]) -> dict[str, str]:
    """Strip identity strings and reject blank or missing ones."""
    cleaned = {}
    for name, value in fields.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidLedgerInputError(f"{name} must be a non-empty string")
        cleaned[name] = value.strip()
    return cleaned


def require_positive(name: str, value) -> Decimal:
    """Quantize a quantity and reject it unless it is > 0."""
    try:
        amount = quantize(value)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidLedgerInputError(f"{name} is not a number: {value!r}")
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidLedgerInputError(f"{name} must be > 0, got {value}")
    return amount


def require_non_negative(name: str, value) -> Decimal:
    """Quantize a price and reject it if it is negative."""
    try:
        price = quantize(value)
    except (ArithmeticError, TypeError, ValueError):
        raise InvalidLedgerInputError(f"{name} is not a number: {value!r}")
    if not price.is_finite() or price < ZERO:
        raise InvalidLedgerInputError(f"{name} must be >= 0, got {value}")
    return price


def require_timestamp(name: str, value) -> datetime:
    if not isinstance(value, datetime):
        raise InvalidLedgerInputError(f"{name} must be a datetime, got {value!r}")
    return to_storage(value)


class LotLedgerService:
    """Appends acquisition lots and answers ledger queries."""

    # --- Acquisition ---

    @staticmethod
    def record_acquisition(
        db: Session,
        holder: str,
        asset_id: str,
        source_tx_id: str,
        acquired_at: datetime,
        amount,
        cost_basis_per_unit,
        symbol: Optional[str] = None,
    ) -> AcquisitionResult:
        """Record one acquisition as a new lot.

        Exactly-once on (holder, asset_id, source_tx_id): a replayed event
        returns the existing lot untouched with ``created=False``.

        Raises:
            InvalidLedgerInputError: amount <= 0, cost basis < 0 or a blank
                identity field. Nothing is written in that case.
        """
        ids = require_identity(holder=holder, asset_id=asset_id, source_tx_id=source_tx_id)
        acquired_at = require_timestamp("acquired_at", acquired_at)
        amount = require_positive("amount", amount)
        cost_basis_per_unit = require_non_negative("cost_basis_per_unit", cost_basis_per_unit)

        existing = LotLedgerService.get_lot_by_identity(
            db, ids["holder"], ids["asset_id"], ids["source_tx_id"]
        )
        if existing is not None:
            logger.info(
                "Duplicate acquisition ignored: %s %s tx %s",
                ids["holder"], ids["asset_id"], ids["source_tx_id"],
            )
            return AcquisitionResult(lot=existing, created=False)

        AssetService.ensure_exists(db, ids["asset_id"], symbol)

        lot = Lot(
            holder=ids["holder"],
            asset_id=ids["asset_id"],
            source_tx_id=ids["source_tx_id"],
            acquired_at=acquired_at,
            amount=amount,
            cost_basis_per_unit=cost_basis_per_unit,
            remaining_amount=amount,
            is_closed=False,
        )
        try:
            with db.begin_nested():
                db.add(lot)
        except IntegrityError:
            # Same event inserted concurrently; the stored lot wins
            existing = LotLedgerService.get_lot_by_identity(
                db, ids["holder"], ids["asset_id"], ids["source_tx_id"]
            )
            if existing is None:
                raise
            return AcquisitionResult(lot=existing, created=False)

        logger.info(
            "Recorded lot: %s of %s at %s for %s (tx %s)",
            amount, ids["asset_id"], cost_basis_per_unit, ids["holder"], ids["source_tx_id"],
        )
        return AcquisitionResult(lot=lot, created=True)

    # --- Queries ---

    @staticmethod
    def get_lot_by_identity(
        db: Session, holder: str, asset_id: str, source_tx_id: str
    ) -> Lot | None:
        return (
            db.query(Lot)
            .filter_by(holder=holder, asset_id=asset_id, source_tx_id=source_tx_id)
            .first()
        )

    @staticmethod
    def fifo_query(db: Session, holder: str, asset_id: str):
        """Query for a holder's lots of one asset in FIFO consumption order.

        Oldest ``acquired_at`` first; ``source_tx_id`` breaks ties so the
        order never depends on insertion order.
        """
        return (
            db.query(Lot)
            .filter_by(holder=holder, asset_id=asset_id)
            .order_by(asc(Lot.acquired_at), asc(Lot.source_tx_id))
        )

    @staticmethod
    def get_open_lots(db: Session, holder: str, asset_id: str) -> list[Lot]:
        """Lots not yet closed (remaining > 0), in FIFO order."""
        return (
            LotLedgerService.fifo_query(db, holder, asset_id)
            .filter(Lot.is_closed.is_(False))
            .all()
        )

    @staticmethod
    def get_lots(
        db: Session,
        holder: str,
        asset_id: str | None = None,
        include_closed: bool = False,
    ) -> list[Lot]:
        """Get a holder's lots, optionally for one asset, ordered by acquisition."""
        query = db.query(Lot).filter_by(holder=holder)
        if asset_id is not None:
            query = query.filter_by(asset_id=asset_id)
        if not include_closed:
            query = query.filter(Lot.is_closed.is_(False))
        return query.order_by(
            asc(Lot.asset_id), asc(Lot.acquired_at), asc(Lot.source_tx_id)
        ).all()

    @staticmethod
    def get_realized_events(
        db: Session, holder: str, asset_id: str | None = None
    ) -> list[RealizedEvent]:
        """Get realized events, oldest disposal first."""
        query = db.query(RealizedEvent).filter_by(holder=holder)
        if asset_id is not None:
            query = query.filter_by(asset_id=asset_id)
        return query.order_by(
            asc(RealizedEvent.disposed_at),
            asc(RealizedEvent.disposal_tx_id),
            asc(RealizedEvent.acquisition_tx_id),
        ).all()

    @staticmethod
    def get_disposals(
        db: Session, holder: str, asset_id: str | None = None
    ) -> list[Disposal]:
        query = db.query(Disposal).filter_by(holder=holder)
        if asset_id is not None:
            query = query.filter_by(asset_id=asset_id)
        return query.order_by(asc(Disposal.disposed_at), asc(Disposal.tx_id)).all()

    @staticmethod
    def get_assets_for_holder(db: Session, holder: str) -> list[str]:
        """Every asset the holder ever acquired or disposed, sorted by id."""
        stmt = union(
            select(Lot.asset_id).where(Lot.holder == holder),
            select(Disposal.asset_id).where(Disposal.holder == holder),
        )
        return sorted(row[0] for row in db.execute(stmt))
