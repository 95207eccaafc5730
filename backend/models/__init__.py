"""SQLAlchemy ORM models."""

from .asset import Asset
from .disposal import Disposal
from .lot import Lot
from .realized_event import RealizedEvent
from .types import LedgerDecimal, generate_uuid

__all__ = ["Asset", "Disposal", "LedgerDecimal", "Lot", "RealizedEvent", "generate_uuid"]
