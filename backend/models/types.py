"""Column types and key generation shared by the ORM models."""

import uuid
from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

from utils.numbers import quantize


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


class LedgerDecimal(TypeDecorator):
    """Exact 8-decimal amount column.

    PostgreSQL keeps it as ``NUMERIC(28, 8)``. SQLite has no decimal storage
    and pysqlite would round-trip ``Numeric`` through float, so there the
    value is persisted as its fixed-point string. Filter on ``Lot.is_closed``
    rather than comparing these columns in SQL; CHECK constraints cast to
    NUMERIC, which is exact enough for sign and ordering checks.
    """

    impl = Numeric(28, 8)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(40))
        return dialect.type_descriptor(Numeric(28, 8))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = quantize(value)
        if dialect.name == "sqlite":
            return format(value, "f")
        return value

    def process_result_value(self, value, dialect) -> Decimal | None:
        if value is None:
            return None
        return quantize(value)
