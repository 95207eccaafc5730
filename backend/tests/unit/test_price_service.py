"""Tests for PriceService caching and staleness."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from integrations.coingecko_client import CoinGeckoClient
from integrations.price_protocol import PriceQuote
from services.exceptions import PriceUnavailableError
from services.price_service import PriceService
from tests.fixtures.mocks import MockPriceProvider


class TestFreshCache:
    def test_first_lookup_hits_provider(self, price_service, mock_price_provider):
        lookup = price_service.get_price("STX")

        assert lookup.price == Decimal("1.50")
        assert lookup.is_stale is False
        assert lookup.source == "mock"
        assert mock_price_provider.calls == [["STX"]]

    def test_within_ttl_served_from_cache(self, price_service, mock_price_provider, clock):
        price_service.get_price("STX")
        clock.advance(59)
        mock_price_provider.prices["STX"] = Decimal("9.99")

        lookup = price_service.get_price("STX")

        assert lookup.price == Decimal("1.50")
        assert len(mock_price_provider.calls) == 1

    def test_after_ttl_refetched(self, price_service, mock_price_provider, clock):
        price_service.get_price("STX")
        clock.advance(60)
        mock_price_provider.prices["STX"] = Decimal("1.75")

        lookup = price_service.get_price("STX")

        assert lookup.price == Decimal("1.75")
        assert lookup.is_stale is False
        assert len(mock_price_provider.calls) == 2

    def test_clear_cache_forces_refetch(self, price_service, mock_price_provider):
        price_service.get_price("STX")
        price_service.clear_cache()
        price_service.get_price("STX")

        assert len(mock_price_provider.calls) == 2


class TestStaleness:
    def test_provider_failure_serves_stale_within_window(
        self, price_service, mock_price_provider, clock
    ):
        price_service.get_price("STX")
        clock.advance(600)
        mock_price_provider.should_fail = True

        lookup = price_service.get_price("STX")

        assert lookup.is_stale is True
        assert lookup.price == Decimal("1.50")

    def test_stale_window_boundary_inclusive(self, price_service, mock_price_provider, clock):
        price_service.get_price("STX")
        clock.advance(900)
        mock_price_provider.should_fail = True

        assert price_service.get_price("STX").is_stale is True

    def test_beyond_stale_window_unavailable(self, price_service, mock_price_provider, clock):
        price_service.get_price("STX")
        clock.advance(901)
        mock_price_provider.should_fail = True

        with pytest.raises(PriceUnavailableError) as exc_info:
            price_service.get_price("STX")

        assert exc_info.value.asset_id == "STX"
        assert "Mock price feed down" in exc_info.value.reason

    def test_asset_dropped_by_provider_serves_stale(
        self, price_service, mock_price_provider, clock
    ):
        price_service.get_price("STX")
        clock.advance(120)
        mock_price_provider.failing_assets.add("STX")

        assert price_service.get_price("STX").is_stale is True


class TestUnavailable:
    def test_never_priced_asset_raises(self, price_service):
        with pytest.raises(PriceUnavailableError, match="provider returned no price"):
            price_service.get_price("SP000.token-unknown")

    def test_provider_down_without_cache_raises(self, clock):
        service = PriceService(provider=MockPriceProvider(should_fail=True), clock=clock)

        with pytest.raises(PriceUnavailableError, match="Mock price feed down"):
            service.get_price("STX")

    def test_negative_price_rejected(self, clock):
        class NegativeProvider:
            provider_name = "negative"

            def get_current_prices(self, asset_ids):
                return {
                    a: PriceQuote(
                        asset_id=a,
                        price=Decimal("-1"),
                        as_of=datetime(2024, 6, 1, tzinfo=timezone.utc),
                        source="negative",
                    )
                    for a in asset_ids
                }

        service = PriceService(provider=NegativeProvider(), clock=clock)

        with pytest.raises(PriceUnavailableError):
            service.get_price("STX")

    def test_no_refresh_does_not_call_provider(self, price_service, mock_price_provider):
        with pytest.raises(PriceUnavailableError):
            price_service.get_price("STX", refresh=False)

        assert mock_price_provider.calls == []


class TestPrefetch:
    def test_fetches_all_in_one_call(self, price_service, mock_price_provider):
        failures = price_service.prefetch(["STX", "sBTC"])

        assert failures == {}
        assert mock_price_provider.calls == [["STX", "sBTC"]]
        assert price_service.get_price("sBTC", refresh=False).price == Decimal("65000")

    def test_skips_fresh_assets(self, price_service, mock_price_provider):
        price_service.get_price("STX")

        price_service.prefetch(["STX", "sBTC"])

        assert mock_price_provider.calls == [["STX"], ["sBTC"]]

    def test_nothing_to_fetch(self, price_service, mock_price_provider):
        price_service.get_price("STX")

        assert price_service.prefetch(["STX"]) == {}
        assert len(mock_price_provider.calls) == 1

    def test_reports_failures(self, price_service, mock_price_provider):
        failures = price_service.prefetch(["STX", "SP000.token-unknown"])

        assert failures == {"SP000.token-unknown": "provider returned no price"}

    def test_provider_error_reported_for_every_asset(self, clock):
        service = PriceService(provider=MockPriceProvider(should_fail=True), clock=clock)

        failures = service.prefetch(["STX", "sBTC"])

        assert failures == {
            "STX": "Mock price feed down",
            "sBTC": "Mock price feed down",
        }

    def test_coingecko_redirect_loop_reported_not_raised(self, clock):
        client = CoinGeckoClient()
        service = PriceService(provider=client, clock=clock)

        with patch.object(
            client._client, "request", side_effect=httpx.TooManyRedirects("loop")
        ):
            failures = service.prefetch(["STX"])

            with pytest.raises(PriceUnavailableError, match="failed"):
                service.get_price("STX")

        assert set(failures) == {"STX"}
        assert "failed" in failures["STX"]
        service.close()


class TestLifecycle:
    def test_close_delegates_to_provider(self):
        class ClosingProvider(MockPriceProvider):
            closed = False

            def close(self):
                self.closed = True

        provider = ClosingProvider()
        PriceService(provider=provider).close()

        assert provider.closed is True

    def test_close_tolerates_provider_without_close(self, mock_price_provider):
        PriceService(provider=mock_price_provider).close()

    def test_default_provider_is_coingecko(self):
        service = PriceService()
        try:
            assert isinstance(service.provider, CoinGeckoClient)
        finally:
            service.close()
