"""Lot model - persistent ledger record for each acquisition event."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base
from models.types import LedgerDecimal, generate_uuid


class Lot(Base):
    """One acquisition of an asset by a holder, tracked until fully disposed.

    ``amount`` and ``cost_basis_per_unit`` never change after insert;
    ``remaining_amount`` only goes down, and only through FIFO consumption.
    Fully consumed lots are kept (``is_closed``) for history.
    """

    __tablename__ = "fifo_lots"
    __table_args__ = (
        UniqueConstraint("holder", "asset_id", "source_tx_id", name="uq_fifo_lot_identity"),
        CheckConstraint("CAST(amount AS NUMERIC) > 0", name="ck_fifo_lot_amount_positive"),
        CheckConstraint("CAST(cost_basis_per_unit AS NUMERIC) >= 0", name="ck_fifo_lot_cost_basis_non_negative"),
        CheckConstraint("CAST(remaining_amount AS NUMERIC) >= 0", name="ck_fifo_lot_remaining_non_negative"),
        CheckConstraint("CAST(remaining_amount AS NUMERIC) <= CAST(amount AS NUMERIC)", name="ck_fifo_lot_remaining_within_amount"),
        CheckConstraint(
            "is_closed = (CAST(remaining_amount AS NUMERIC) = 0)",
            name="ck_fifo_lot_closed_iff_empty",
        ),
        Index("ix_fifo_lots_fifo_order", "holder", "asset_id", "acquired_at", "source_tx_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    holder = Column(String, nullable=False, index=True)
    asset_id = Column(String, ForeignKey("assets.id"), nullable=False, index=True)
    source_tx_id = Column(String, nullable=False)
    acquired_at = Column(DateTime, nullable=False)  # naive UTC
    amount = Column(LedgerDecimal(), nullable=False)
    cost_basis_per_unit = Column(LedgerDecimal(), nullable=False, default=Decimal("0"))
    remaining_amount = Column(LedgerDecimal(), nullable=False)
    is_closed = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    asset = relationship("Asset", back_populates="lots")
    realized_events = relationship("RealizedEvent", back_populates="lot")

    @property
    def consumed_amount(self) -> Decimal:
        return self.amount - self.remaining_amount
