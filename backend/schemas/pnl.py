"""Pydantic schemas for PnL views."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict

from schemas.ledger import LotResponse, UtcDatetime
from utils.timestamps import ensure_utc


def _optional_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


OptionalUtcDatetime = Annotated[datetime | None, AfterValidator(_optional_utc)]


class AssetPnLResponse(BaseModel):
    """Per-asset realized/unrealized PnL.

    Price-derived fields are null when ``price_status`` is ``unavailable``.
    """

    asset_id: str
    symbol: str
    total_acquired: Decimal
    total_disposed: Decimal
    open_amount: Decimal
    cost_basis_total: Decimal
    average_cost_basis: Decimal
    realized_profit: Decimal
    unrealized_profit: Decimal | None = None
    unrealized_profit_percent: Decimal | None = None
    total_profit: Decimal
    current_price: Decimal | None = None
    current_value: Decimal | None = None
    price_status: Literal["fresh", "stale", "unavailable"]
    price_as_of: OptionalUtcDatetime = None
    unmatched_disposed_amount: Decimal
    is_degraded: bool
    warnings: list[str] = []
    lots: list[LotResponse] = []

    model_config = ConfigDict(from_attributes=True)


class PortfolioPnLResponse(BaseModel):
    """Holder-wide PnL totals; degraded assets contribute no unrealized profit."""

    holder: str
    total_realized_profit: Decimal
    total_unrealized_profit: Decimal
    total_profit: Decimal
    total_current_value: Decimal
    is_degraded: bool
    degraded_assets: list[str] = []
    assets: list[AssetPnLResponse] = []
    calculated_at: UtcDatetime

    model_config = ConfigDict(from_attributes=True)
