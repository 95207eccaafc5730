"""Pydantic schemas for the FIFO lot ledger.

Money and amount fields are ``Decimal`` and serialize as JSON strings;
timestamps serialize as UTC ISO-8601.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from utils.timestamps import ensure_utc

UtcDatetime = Annotated[datetime, AfterValidator(ensure_utc)]
Identifier = Annotated[str, Field(min_length=1, max_length=256)]


class AcquisitionCreate(BaseModel):
    """Schema for recording an acquisition (one new lot)."""

    asset_id: Identifier
    tx_id: Identifier
    acquired_at: UtcDatetime
    amount: Decimal = Field(gt=0)
    cost_basis_per_unit: Decimal = Field(ge=0)
    symbol: str | None = None


class DisposalCreate(BaseModel):
    """Schema for applying a disposal against the FIFO lots."""

    asset_id: Identifier
    tx_id: Identifier
    disposed_at: UtcDatetime
    amount: Decimal = Field(gt=0)
    sale_price_per_unit: Decimal = Field(ge=0)
    symbol: str | None = None


class TransactionEvent(BaseModel):
    """One classified asset movement from the transaction feed."""

    tx_id: Identifier
    asset_id: Identifier
    direction: Literal["in", "out"]
    timestamp: UtcDatetime
    amount: Decimal = Field(gt=0)
    price_usd_per_unit: Decimal = Field(ge=0)
    symbol: str | None = None


class TransactionBatch(BaseModel):
    """Schema for ingesting a batch of feed events."""

    events: list[TransactionEvent] = []


class LotResponse(BaseModel):
    """Schema for Lot API response."""

    id: str
    holder: str
    asset_id: str
    source_tx_id: str
    acquired_at: UtcDatetime
    amount: Decimal
    cost_basis_per_unit: Decimal
    remaining_amount: Decimal
    consumed_amount: Decimal
    is_closed: bool

    model_config = ConfigDict(from_attributes=True)


class RealizedEventResponse(BaseModel):
    """Schema for RealizedEvent API response."""

    id: str
    holder: str
    asset_id: str
    lot_id: str
    disposal_tx_id: str
    acquisition_tx_id: str
    disposed_at: UtcDatetime
    amount: Decimal
    cost_basis_per_unit: Decimal
    sale_price_per_unit: Decimal
    profit: Decimal

    model_config = ConfigDict(from_attributes=True)


class AcquisitionResponse(BaseModel):
    """Result of recording an acquisition; ``created`` is False for replays."""

    created: bool
    lot: LotResponse

    model_config = ConfigDict(from_attributes=True)


class DisposalResponse(BaseModel):
    """Result of a FIFO disposal.

    ``insufficient_lots`` is true when ``unmatched_amount`` could not be
    matched to any open lot; the matched part has still been applied.
    """

    holder: str
    asset_id: str
    disposal_tx_id: str
    requested_amount: Decimal
    matched_amount: Decimal
    unmatched_amount: Decimal
    total_realized_profit: Decimal
    insufficient_lots: bool
    duplicate: bool
    events: list[RealizedEventResponse] = []

    model_config = ConfigDict(from_attributes=True)


class FeedResultResponse(BaseModel):
    """Summary of a batch feed ingestion."""

    acquisitions_recorded: int
    disposals_applied: int
    duplicates_skipped: int
    total_realized_profit: Decimal
    insufficient_disposals: list[DisposalResponse] = []

    model_config = ConfigDict(from_attributes=True)
