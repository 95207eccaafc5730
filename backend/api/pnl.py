"""PnL API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.helpers import get_pnl_service, validate_holder
from database import get_db
from schemas.pnl import AssetPnLResponse, PortfolioPnLResponse
from services.lot_ledger_service import LotLedgerService
from services.pnl_service import PnLService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/wallets", tags=["pnl"])


@router.get("/{holder}/pnl", response_model=PortfolioPnLResponse)
def get_portfolio_pnl(
    holder: str,
    db: Session = Depends(get_db),
    pnl_service: PnLService = Depends(get_pnl_service),
):
    """Realized/unrealized PnL across every asset the holder transacted in."""
    validate_holder(holder)
    portfolio = pnl_service.compute_portfolio_pnl(db, holder)
    return PortfolioPnLResponse.model_validate(portfolio)


@router.get("/{holder}/pnl/{asset_id}", response_model=AssetPnLResponse)
def get_asset_pnl(
    holder: str,
    asset_id: str,
    db: Session = Depends(get_db),
    pnl_service: PnLService = Depends(get_pnl_service),
):
    """PnL for one asset, including its open lots."""
    validate_holder(holder)
    if asset_id not in LotLedgerService.get_assets_for_holder(db, holder):
        raise HTTPException(status_code=404, detail="No ledger entries for this asset")
    asset_pnl = pnl_service.compute_asset_pnl(db, holder, asset_id)
    return AssetPnLResponse.model_validate(asset_pnl)
