"""Disposal model - one ingested disposal event and how much of it matched lots."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)

from database import Base
from models.types import LedgerDecimal, generate_uuid


class Disposal(Base):
    """A disposal as received from the transaction feed.

    ``unmatched_amount`` is the part of the disposal that found no open lot
    (missing acquisition history). It is kept here so the shortfall stays
    visible long after the consume call returned.
    """

    __tablename__ = "disposals"
    __table_args__ = (
        UniqueConstraint("holder", "asset_id", "tx_id", name="uq_disposal_identity"),
        CheckConstraint("CAST(amount AS NUMERIC) > 0", name="ck_disposal_amount_positive"),
        CheckConstraint("CAST(matched_amount AS NUMERIC) >= 0", name="ck_disposal_matched_non_negative"),
        CheckConstraint("CAST(unmatched_amount AS NUMERIC) >= 0", name="ck_disposal_unmatched_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    holder = Column(String, nullable=False, index=True)
    asset_id = Column(String, ForeignKey("assets.id"), nullable=False, index=True)
    tx_id = Column(String, nullable=False)
    disposed_at = Column(DateTime, nullable=False)  # naive UTC
    amount = Column(LedgerDecimal(), nullable=False)
    sale_price_per_unit = Column(LedgerDecimal(), nullable=False)
    matched_amount = Column(LedgerDecimal(), nullable=False, default=Decimal("0"))
    unmatched_amount = Column(LedgerDecimal(), nullable=False, default=Decimal("0"))
    realized_profit = Column(LedgerDecimal(), nullable=False, default=Decimal("0"))
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
