"""Price service: cached current prices in front of a pluggable provider.

Staleness contract:

- a quote fetched less than ``ttl_seconds`` ago is served from cache;
- otherwise the provider is asked again;
- if that fails (error, missing asset, negative price) a cached quote no
  older than ``max_stale_seconds`` is served with ``is_stale=True``;
- otherwise ``PriceUnavailableError`` is raised.

The clock is injectable so the contract can be tested without sleeping.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from integrations.exceptions import ProviderError
from integrations.price_protocol import PriceProvider, PriceQuote
from services.exceptions import PriceUnavailableError
from utils.timestamps import ensure_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceLookup:
    """A price as handed to the aggregator."""

    asset_id: str
    price: Decimal
    as_of: datetime
    source: str
    is_stale: bool = False


@dataclass
class _CacheEntry:
    quote: PriceQuote
    fetched_at: datetime


class PriceService:
    """Serves current USD prices with a TTL cache and bounded staleness."""

    def __init__(
        self,
        provider: Optional[PriceProvider] = None,
        ttl_seconds: Optional[int] = None,
        max_stale_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize with optional collaborators for dependency injection.

        Args:
            provider: Price provider. If None, a CoinGeckoClient configured
                     from settings is created on first use.
            ttl_seconds: Freshness window; defaults to PRICE_CACHE_TTL_SECONDS.
            max_stale_seconds: How old a cached quote may be when the provider
                     fails; defaults to PRICE_MAX_STALE_SECONDS.
            clock: Returns the current aware UTC time.
        """
        from config import settings

        self._provider = provider
        self._ttl = timedelta(
            seconds=settings.PRICE_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds
        )
        self._max_stale = timedelta(
            seconds=settings.PRICE_MAX_STALE_SECONDS
            if max_stale_seconds is None
            else max_stale_seconds
        )
        self._clock = clock or utc_now
        self._cache: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    @property
    def provider(self) -> PriceProvider:
        """Get the price provider, creating if not provided."""
        if self._provider is None:
            from config import settings
            from integrations.coingecko_client import CoinGeckoClient

            self._provider = CoinGeckoClient(
                api_key=settings.COINGECKO_API_KEY or None,
                base_url=settings.COINGECKO_API_URL,
                timeout=settings.PRICE_TIMEOUT_SECONDS,
                coin_id_overrides=settings.COINGECKO_ID_OVERRIDES,
            )
        return self._provider

    def close(self) -> None:
        """Close the provider if it holds resources."""
        close = getattr(self._provider, "close", None)
        if close is not None:
            close()

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()

    def _cached(self, asset_id: str) -> Optional[_CacheEntry]:
        with self._lock:
            return self._cache.get(asset_id)

    def _is_fresh(self, entry: _CacheEntry, now: datetime) -> bool:
        return now - entry.fetched_at < self._ttl

    def _fetch(self, asset_ids: list[str]) -> tuple[dict[str, PriceQuote], str]:
        """Ask the provider; returns (valid quotes, failure reason or '')."""
        try:
            quotes = self.provider.get_current_prices(asset_ids)
        except ProviderError as e:
            logger.warning(
                "Price provider %s failed for %s: %s",
                e.provider_name or "unknown", ",".join(asset_ids), e,
            )
            return {}, str(e)

        valid: dict[str, PriceQuote] = {}
        for asset_id, quote in quotes.items():
            if quote.price is None or not quote.price.is_finite() or quote.price < 0:
                logger.warning(
                    "Rejected invalid price %s for %s from %s",
                    quote.price, asset_id, quote.source,
                )
                continue
            valid[asset_id] = quote

        now = self._clock()
        with self._lock:
            for asset_id, quote in valid.items():
                self._cache[asset_id] = _CacheEntry(quote=quote, fetched_at=now)
        return valid, ""

    def prefetch(self, asset_ids: list[str]) -> dict[str, str]:
        """Refresh every non-fresh asset in one provider call.

        Returns:
            asset_id -> failure reason for assets the refresh did not price.
            Callers resolve those with ``get_price(..., refresh=False)``.
        """
        now = self._clock()
        stale_ids = []
        for asset_id in asset_ids:
            entry = self._cached(asset_id)
            if entry is None or not self._is_fresh(entry, now):
                stale_ids.append(asset_id)
        if not stale_ids:
            return {}
        quotes, failure = self._fetch(stale_ids)
        reason = failure or "provider returned no price"
        return {asset_id: reason for asset_id in stale_ids if asset_id not in quotes}

    def get_price(self, asset_id: str, refresh: bool = True) -> PriceLookup:
        """Get the current USD price for an asset.

        Args:
            asset_id: Asset identifier.
            refresh: When False, never call the provider; used right after
                ``prefetch`` so a failing provider is only asked once.

        Raises:
            PriceUnavailableError: no fresh quote, provider failed, and no
                cached quote within the staleness window.
        """
        now = self._clock()
        entry = self._cached(asset_id)
        if entry is not None and self._is_fresh(entry, now):
            return _lookup(entry, is_stale=False)

        failure = ""
        if refresh:
            quotes, failure = self._fetch([asset_id])
            if asset_id in quotes:
                return _lookup(self._cached(asset_id), is_stale=False)

        reason = failure or "provider returned no price"
        if entry is not None and now - entry.fetched_at <= self._max_stale:
            logger.warning(
                "Serving stale price for %s from %s (%s)",
                asset_id, ensure_utc(entry.fetched_at).isoformat(), reason,
            )
            return _lookup(entry, is_stale=True)

        raise PriceUnavailableError(asset_id, reason)


def _lookup(entry: _CacheEntry, is_stale: bool) -> PriceLookup:
    quote = entry.quote
    return PriceLookup(
        asset_id=quote.asset_id,
        price=quote.price,
        as_of=ensure_utc(quote.as_of),
        source=quote.source,
        is_stale=is_stale,
    )
