"""Lot ledger API endpoints: acquisitions, disposals, feed ingestion, queries."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from api.helpers import validate_holder
from database import get_db
from schemas.ledger import (
    AcquisitionCreate,
    AcquisitionResponse,
    DisposalCreate,
    DisposalResponse,
    FeedResultResponse,
    LotResponse,
    RealizedEventResponse,
    TransactionBatch,
)
from services.lot_consumption_service import LotConsumptionService
from services.lot_ledger_service import LotLedgerService
from services.transaction_feed_service import TransactionFeedService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallets", tags=["ledger"])


@router.post("/{holder}/acquisitions", response_model=AcquisitionResponse, status_code=201)
def record_acquisition(
    holder: str,
    data: AcquisitionCreate,
    response: Response,
    db: Session = Depends(get_db),
):
    """Record an acquisition lot. Replays return 200 with the existing lot."""
    validate_holder(holder)
    try:
        result = LotLedgerService.record_acquisition(
            db,
            holder=holder,
            asset_id=data.asset_id,
            source_tx_id=data.tx_id,
            acquired_at=data.acquired_at,
            amount=data.amount,
            cost_basis_per_unit=data.cost_basis_per_unit,
            symbol=data.symbol,
        )
        db.commit()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not result.created:
        response.status_code = 200
    db.refresh(result.lot)
    return AcquisitionResponse.model_validate(result)


@router.post("/{holder}/disposals", response_model=DisposalResponse)
def apply_disposal(
    holder: str,
    data: DisposalCreate,
    db: Session = Depends(get_db),
):
    """Consume lots FIFO for a disposal.

    A disposal larger than the open lots is applied as far as it goes and
    reported with ``insufficient_lots``.
    """
    validate_holder(holder)
    try:
        result = LotConsumptionService.consume(
            db,
            holder=holder,
            asset_id=data.asset_id,
            disposal_tx_id=data.tx_id,
            disposed_at=data.disposed_at,
            amount=data.amount,
            sale_price_per_unit=data.sale_price_per_unit,
            symbol=data.symbol,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return DisposalResponse.model_validate(result)


@router.post("/{holder}/transactions", response_model=FeedResultResponse)
def ingest_transactions(
    holder: str,
    batch: TransactionBatch,
    db: Session = Depends(get_db),
):
    """Apply a batch of classified feed events in timestamp order."""
    validate_holder(holder)
    try:
        result = TransactionFeedService.apply_events(db, holder, batch.events)
        db.commit()
    except ValueError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))
    return FeedResultResponse.model_validate(result)


@router.get("/{holder}/lots", response_model=list[LotResponse])
def get_lots(
    holder: str,
    asset_id: str | None = Query(default=None),
    include_closed: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    """Get a holder's lots, optionally filtered to one asset."""
    validate_holder(holder)
    lots = LotLedgerService.get_lots(db, holder, asset_id, include_closed)
    return [LotResponse.model_validate(lot) for lot in lots]


@router.get("/{holder}/realized", response_model=list[RealizedEventResponse])
def get_realized_events(
    holder: str,
    asset_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    """Get realized PnL events, oldest disposal first."""
    validate_holder(holder)
    events = LotLedgerService.get_realized_events(db, holder, asset_id)
    return [RealizedEventResponse.model_validate(e) for e in events]
