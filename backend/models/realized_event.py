"""RealizedEvent model - one lot (partially) consumed by one disposal."""

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
from sqlalchemy.orm import relationship

from database import Base
from models.types import LedgerDecimal, generate_uuid


class RealizedEvent(Base):
    """Immutable record of realized profit on one lot.

    A single disposal that spans several lots produces one event per lot.
    Cost basis is copied from the lot at consumption time.
    """

    __tablename__ = "realized_pnl_events"
    __table_args__ = (
        UniqueConstraint(
            "disposal_tx_id", "acquisition_tx_id", "holder", "asset_id",
            name="uq_realized_event_identity",
        ),
        CheckConstraint("CAST(amount AS NUMERIC) > 0", name="ck_realized_event_amount_positive"),
        CheckConstraint("CAST(sale_price_per_unit AS NUMERIC) >= 0", name="ck_realized_event_sale_price_non_negative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    holder = Column(String, nullable=False, index=True)
    asset_id = Column(String, ForeignKey("assets.id"), nullable=False, index=True)
    lot_id = Column(String(36), ForeignKey("fifo_lots.id"), nullable=False, index=True)
    disposal_tx_id = Column(String, nullable=False, index=True)
    acquisition_tx_id = Column(String, nullable=False)
    disposed_at = Column(DateTime, nullable=False)  # naive UTC
    amount = Column(LedgerDecimal(), nullable=False)
    cost_basis_per_unit = Column(LedgerDecimal(), nullable=False)
    sale_price_per_unit = Column(LedgerDecimal(), nullable=False, default=Decimal("0"))
    profit = Column(LedgerDecimal(), nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    lot = relationship("Lot", back_populates="realized_events")
