"""Test fixtures and sample data."""
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from models import Lot
from services.lot_ledger_service import LotLedgerService

HOLDER = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"
OTHER_HOLDER = "SP3K8BC0PPEVCV7NZ6QSRWPQ2JE9E5B6N3PA0KBR9"
ALEX = "SP102V8P0F7JX67ARQ77WEA3D3CFB5XW39REDT0AM.token-alex"

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def day(n: int, hours: int = 0) -> datetime:
    """UTC timestamp for day ``n`` of the test calendar (day 1 = 2024-01-01)."""
    return BASE_TIME + timedelta(days=n - 1, hours=hours)


def add_lot(
    db: Session,
    tx_id: str,
    acquired_at: datetime,
    amount: str,
    cost: str,
    asset_id: str = "STX",
    holder: str = HOLDER,
    symbol: str | None = None,
) -> Lot:
    """Record an acquisition through the ledger service and return the lot."""
    result = LotLedgerService.record_acquisition(
        db,
        holder=holder,
        asset_id=asset_id,
        source_tx_id=tx_id,
        acquired_at=acquired_at,
        amount=Decimal(amount),
        cost_basis_per_unit=Decimal(cost),
        symbol=symbol,
    )
    db.flush()
    return result.lot


@pytest.fixture
def holder() -> str:
    return HOLDER


@pytest.fixture
def other_holder() -> str:
    return OTHER_HOLDER
