"""Price provider protocol definitions.

Defines the interface the PnL aggregator uses to obtain current USD prices.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol


@dataclass(frozen=True)
class PriceQuote:
    """A current USD price for one asset."""

    asset_id: str
    price: Decimal
    as_of: datetime  # aware UTC
    source: str  # e.g., "coingecko"


class PriceProvider(Protocol):
    """Protocol for current-price providers."""

    @property
    def provider_name(self) -> str:
        """Return the provider name (e.g., 'coingecko')."""
        ...

    def get_current_prices(self, asset_ids: list[str]) -> dict[str, PriceQuote]:
        """Fetch current USD prices for the given assets.

        Args:
            asset_ids: Asset identifiers as they appear in the ledger.

        Returns:
            Dict mapping asset_id to its quote. Assets the provider cannot
            price are left out.

        Raises:
            ProviderError: the request itself failed.
        """
        ...
