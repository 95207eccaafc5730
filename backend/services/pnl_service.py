"""PnL aggregation over the FIFO lot ledger.

Views are recomputed on every call from the ledger plus a live price and are
never stored. Realized profit is the sum of RealizedEvents; unrealized profit
is ``sum((price - cost) * remaining)`` over open lots.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from models import Asset, Disposal, Lot, RealizedEvent
from services.exceptions import PriceUnavailableError
from services.lot_ledger_service import LotLedgerService
from services.price_service import PriceLookup, PriceService
from utils.numbers import HUNDRED, ZERO, quantize
from utils.timestamps import utc_now

logger = logging.getLogger(__name__)

PRICE_FRESH = "fresh"
PRICE_STALE = "stale"
PRICE_UNAVAILABLE = "unavailable"


@dataclass
class AssetPnL:
    """Per-asset PnL summary.

    When the price is unavailable, ``current_price``, ``current_value``,
    ``unrealized_profit`` and ``unrealized_profit_percent`` are None and the
    asset is flagged degraded instead of reporting a made-up number.
    """

    holder: str
    asset_id: str
    symbol: str
    total_acquired: Decimal
    total_disposed: Decimal
    open_amount: Decimal
    cost_basis_total: Decimal
    average_cost_basis: Decimal
    realized_profit: Decimal
    unrealized_profit: Optional[Decimal]
    unrealized_profit_percent: Optional[Decimal]
    current_price: Optional[Decimal]
    current_value: Optional[Decimal]
    price_status: str
    price_as_of: Optional[datetime]
    unmatched_disposed_amount: Decimal
    lots: list[Lot] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_degraded(self) -> bool:
        return self.price_status != PRICE_FRESH

    @property
    def total_profit(self) -> Decimal:
        return self.realized_profit + (self.unrealized_profit or ZERO)


@dataclass
class PortfolioPnL:
    """Holder-wide totals; degraded assets add no unrealized profit or value."""

    holder: str
    total_realized_profit: Decimal
    total_unrealized_profit: Decimal
    total_profit: Decimal
    total_current_value: Decimal
    assets: list[AssetPnL]
    calculated_at: datetime

    @property
    def degraded_assets(self) -> list[str]:
        return [a.asset_id for a in self.assets if a.is_degraded]

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_assets)


def summarize_lots(lots: list[Lot]) -> tuple[Decimal, Decimal, Decimal]:
    """Return (open amount, cost basis total, average cost basis) for open lots.

    Average cost basis is weighted by remaining amount and is 0 when nothing
    is open.
    """
    open_amount = sum((lot.remaining_amount for lot in lots), ZERO)
    cost_total = sum(
        (lot.cost_basis_per_unit * lot.remaining_amount for lot in lots), ZERO
    )
    if open_amount == ZERO:
        return ZERO, quantize(cost_total), ZERO
    return open_amount, quantize(cost_total), quantize(cost_total / open_amount)


def unrealized_profit(lots: list[Lot], price: Decimal) -> Decimal:
    return quantize(
        sum(((price - lot.cost_basis_per_unit) * lot.remaining_amount for lot in lots), ZERO)
    )


def unrealized_percent(unrealized: Decimal, cost_total: Decimal) -> Decimal:
    """Unrealized profit as a percentage of open cost; 0 when cost is 0."""
    if cost_total == ZERO:
        return ZERO
    return quantize(unrealized / cost_total * HUNDRED)


class PnLService:
    """Computes asset and portfolio PnL views."""

    def __init__(self, price_service: Optional[PriceService] = None):
        self._price_service = price_service

    @property
    def price_service(self) -> PriceService:
        if self._price_service is None:
            self._price_service = PriceService()
        return self._price_service

    def compute_asset_pnl(
        self,
        db: Session,
        holder: str,
        asset_id: str,
        refresh_price: bool = True,
        price_failure: str = "",
    ) -> AssetPnL:
        """Compute the PnL view for one (holder, asset).

        Args:
            db: Database session
            holder: Wallet address
            asset_id: Asset identifier
            refresh_price: Passed to ``PriceService.get_price``
            price_failure: Reason recorded by an earlier prefetch, used in
                the warning if the price is still unavailable
        """
        open_lots = LotLedgerService.get_open_lots(db, holder, asset_id)
        open_amount, cost_total, avg_cost = summarize_lots(open_lots)

        realized = _sum_column(db, RealizedEvent.profit, RealizedEvent, holder, asset_id)
        total_acquired = _sum_column(db, Lot.amount, Lot, holder, asset_id)
        total_disposed = _sum_column(db, Disposal.amount, Disposal, holder, asset_id)
        unmatched = _sum_column(db, Disposal.unmatched_amount, Disposal, holder, asset_id)

        asset = db.get(Asset, asset_id)
        symbol = (asset.symbol if asset and asset.symbol else None) or asset_id

        warnings: list[str] = []
        if unmatched > ZERO:
            warnings.append(
                f"{unmatched} {symbol} disposed without matching acquisition lots"
            )

        lookup: Optional[PriceLookup] = None
        try:
            lookup = self.price_service.get_price(asset_id, refresh=refresh_price)
        except PriceUnavailableError as e:
            reason = price_failure or e.reason
            logger.warning("PnL for %s/%s computed without price: %s", holder, asset_id, reason)
            warnings.append(f"Price unavailable for {symbol}: {reason}")

        if lookup is None:
            return AssetPnL(
                holder=holder,
                asset_id=asset_id,
                symbol=symbol,
                total_acquired=total_acquired,
                total_disposed=total_disposed,
                open_amount=open_amount,
                cost_basis_total=cost_total,
                average_cost_basis=avg_cost,
                realized_profit=realized,
                unrealized_profit=None,
                unrealized_profit_percent=None,
                current_price=None,
                current_value=None,
                price_status=PRICE_UNAVAILABLE,
                price_as_of=None,
                unmatched_disposed_amount=unmatched,
                lots=open_lots,
                warnings=warnings,
            )

        if lookup.is_stale:
            warnings.append(
                f"Price for {symbol} is stale (as of {lookup.as_of.isoformat()})"
            )

        unrealized = unrealized_profit(open_lots, lookup.price)
        return AssetPnL(
            holder=holder,
            asset_id=asset_id,
            symbol=symbol,
            total_acquired=total_acquired,
            total_disposed=total_disposed,
            open_amount=open_amount,
            cost_basis_total=cost_total,
            average_cost_basis=avg_cost,
            realized_profit=realized,
            unrealized_profit=unrealized,
            unrealized_profit_percent=unrealized_percent(unrealized, cost_total),
            current_price=lookup.price,
            current_value=quantize(open_amount * lookup.price),
            price_status=PRICE_STALE if lookup.is_stale else PRICE_FRESH,
            price_as_of=lookup.as_of,
            unmatched_disposed_amount=unmatched,
            lots=open_lots,
            warnings=warnings,
        )

    def compute_portfolio_pnl(self, db: Session, holder: str) -> PortfolioPnL:
        """Compute PnL for every asset the holder ever transacted in.

        Prices are prefetched in one batch; a missing price degrades only
        its own asset.
        """
        asset_ids = LotLedgerService.get_assets_for_holder(db, holder)
        failures = self.price_service.prefetch(asset_ids) if asset_ids else {}

        assets = [
            self.compute_asset_pnl(
                db,
                holder,
                asset_id,
                refresh_price=False,
                price_failure=failures.get(asset_id, ""),
            )
            for asset_id in asset_ids
        ]

        total_realized = sum((a.realized_profit for a in assets), ZERO)
        total_unrealized = sum(
            (a.unrealized_profit for a in assets if a.unrealized_profit is not None), ZERO
        )
        total_value = sum(
            (a.current_value for a in assets if a.current_value is not None), ZERO
        )

        result = PortfolioPnL(
            holder=holder,
            total_realized_profit=total_realized,
            total_unrealized_profit=total_unrealized,
            total_profit=total_realized + total_unrealized,
            total_current_value=total_value,
            assets=assets,
            calculated_at=utc_now(),
        )
        if result.is_degraded:
            logger.warning(
                "Portfolio PnL for %s is degraded: %s",
                holder, ", ".join(result.degraded_assets),
            )
        return result


def _sum_column(db: Session, column, model, holder: str, asset_id: str) -> Decimal:
    """Sum a Numeric column in Python so no float aggregation touches money."""
    rows = (
        db.query(column)
        .filter(model.holder == holder, model.asset_id == asset_id)
        .all()
    )
    return sum((value for (value,) in rows), ZERO)
