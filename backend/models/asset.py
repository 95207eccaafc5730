"""Asset model - master list of tradable asset identifiers."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from database import Base


class Asset(Base):
    """An asset known to the ledger (native coin or token contract)."""

    __tablename__ = "assets"

    # Feed-supplied identifier, e.g. "STX" or "SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-alex"
    id = Column(String, primary_key=True)
    symbol = Column(String, nullable=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    lots = relationship("Lot", back_populates="asset")
