"""CoinGecko price provider for native coins and pegged tokens."""

import logging
import time as time_module
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from integrations.exceptions import (
    ProviderAPIError,
    ProviderConnectionError,
    ProviderDataError,
)
from integrations.price_protocol import PriceQuote

logger = logging.getLogger(__name__)

PROVIDER_NAME = "coingecko"

# Asset ids the feed emits that CoinGecko can price directly.
# sBTC is pegged 1:1 to BTC.
_KNOWN_COIN_IDS: dict[str, str] = {
    "STX": "blockstack",
    "BTC": "bitcoin",
    "SBTC": "bitcoin",
}

# Max retries for rate-limited requests
_MAX_RETRIES = 3
_BASE_DELAY_SECONDS = 1.0


class CoinGeckoClient:
    """Price provider using the CoinGecko ``/simple/price`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = "https://api.coingecko.com/api/v3",
        timeout: float = 10.0,
        coin_id_overrides: Optional[dict[str, str]] = None,
    ):
        """Initialize the client.

        Args:
            api_key: CoinGecko demo API key. If provided, uses the
                     x-cg-demo-api-key header for higher rate limits.
                     If None, uses the keyless public API.
            base_url: API root, overridable for self-hosted proxies.
            timeout: Per-request timeout in seconds.
            coin_id_overrides: Extra asset_id -> coin id mappings, e.g.
                     SIP-010 contract ids of wrapped assets.
        """
        headers: dict[str, str] = {}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
        )
        self._coin_ids: dict[str, str] = dict(_KNOWN_COIN_IDS)
        for asset_id, coin_id in (coin_id_overrides or {}).items():
            self._coin_ids[asset_id.upper()] = coin_id

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def resolve_coin_id(self, asset_id: str) -> Optional[str]:
        """Map a ledger asset id to a CoinGecko coin id (case-insensitive)."""
        return self._coin_ids.get(asset_id.upper())

    def _request_with_retry(
        self, method: str, path: str, **kwargs
    ) -> httpx.Response:
        """Make an HTTP request, retrying 429 responses with backoff.

        Raises:
            ProviderConnectionError: timeout or any other httpx failure.
            ProviderAPIError: non-2xx response, or 429 after all retries.
        """
        for attempt in range(_MAX_RETRIES):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.TimeoutException as e:
                raise ProviderConnectionError(
                    f"CoinGecko request timed out: {e}", PROVIDER_NAME
                ) from e
            except httpx.HTTPError as e:
                # Transport, redirect and decoding failures alike
                raise ProviderConnectionError(
                    f"CoinGecko request failed: {e}", PROVIDER_NAME
                ) from e

            if response.status_code == 429:
                delay = _BASE_DELAY_SECONDS * (2 ** attempt)
                logger.warning(
                    "CoinGecko: rate limited, retrying in %.1fs (attempt %d/%d)",
                    delay, attempt + 1, _MAX_RETRIES,
                )
                time_module.sleep(delay)
                continue

            if response.status_code >= 400:
                raise ProviderAPIError(
                    f"CoinGecko returned HTTP {response.status_code}",
                    PROVIDER_NAME,
                    status_code=response.status_code,
                )
            return response

        raise ProviderAPIError(
            "CoinGecko: max retries exceeded", PROVIDER_NAME, status_code=429
        )

    def get_current_prices(self, asset_ids: list[str]) -> dict[str, PriceQuote]:
        """Fetch current USD prices for the given asset ids.

        Unmapped asset ids and coins missing from the response are left out
        of the result.

        Raises:
            ProviderConnectionError, ProviderAPIError: request failed.
            ProviderDataError: response body was not the expected JSON.
        """
        if not asset_ids:
            return {}

        coin_by_asset = {}
        for asset_id in asset_ids:
            coin_id = self.resolve_coin_id(asset_id)
            if coin_id is None:
                logger.debug("CoinGecko: no coin id for asset %s", asset_id)
                continue
            coin_by_asset[asset_id] = coin_id

        if not coin_by_asset:
            return {}

        coin_ids = sorted(set(coin_by_asset.values()))
        logger.info("CoinGecko: fetching prices for %s", ",".join(coin_ids))

        response = self._request_with_retry(
            "GET",
            "/simple/price",
            params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderDataError(
                "CoinGecko returned a non-JSON body", PROVIDER_NAME
            ) from e
        if not isinstance(data, dict):
            raise ProviderDataError(
                f"CoinGecko returned unexpected payload type {type(data).__name__}",
                PROVIDER_NAME,
            )

        as_of = datetime.now(timezone.utc)
        result: dict[str, PriceQuote] = {}
        for asset_id, coin_id in coin_by_asset.items():
            entry = data.get(coin_id)
            usd = entry.get("usd") if isinstance(entry, dict) else None
            if usd is None:
                logger.warning(
                    "CoinGecko: no USD price for %s (%s)", asset_id, coin_id
                )
                continue
            try:
                price = Decimal(str(usd))
            except InvalidOperation:
                logger.warning(
                    "CoinGecko: unparseable price %r for %s", usd, asset_id
                )
                continue
            result[asset_id] = PriceQuote(
                asset_id=asset_id,
                price=price,
                as_of=as_of,
                source=PROVIDER_NAME,
            )

        return result
