"""External API integrations.

This package contains:
- Price provider protocol: interface for current USD price feeds
- CoinGecko client: price feed backed by the CoinGecko API
- Provider exceptions: typed errors shared by price feeds
"""

from integrations.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
)
from integrations.price_protocol import PriceProvider, PriceQuote

__all__ = [
    "PriceProvider",
    "PriceQuote",
    "ProviderAPIError",
    "ProviderConnectionError",
    "ProviderDataError",
    "ProviderError",
]
