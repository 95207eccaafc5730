"""Shared API helpers and dependencies for route handlers."""

from functools import lru_cache

from fastapi import Depends, HTTPException

from services.pnl_service import PnLService
from services.price_service import PriceService

MAX_HOLDER_LENGTH = 128


def validate_holder(holder: str) -> str:
    """Validate a wallet address path parameter.

    Raises:
        HTTPException: 400 if the address is blank, too long or contains
            whitespace.
    """
    if not holder or holder != holder.strip() or any(c.isspace() for c in holder):
        raise HTTPException(status_code=400, detail=f"Invalid holder address: {holder!r}")
    if len(holder) > MAX_HOLDER_LENGTH:
        raise HTTPException(status_code=400, detail="Holder address too long")
    return holder


@lru_cache
def get_price_service() -> PriceService:
    """Process-wide PriceService so the price cache outlives a request."""
    return PriceService()


def get_pnl_service(
    price_service: PriceService = Depends(get_price_service),
) -> PnLService:
    return PnLService(price_service=price_service)
