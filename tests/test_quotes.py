"""Tests for quote providers and the quote service."""
import threading
from decimal import Decimal

import httpx
import pytest
from trade_chat.agents.schemas import Quote
from trade_chat.core.error_codes import QuoteUnavailable, TradeErrorCode
from trade_chat.core.time import utcnow
from trade_chat.providers.finnhub_quotes import FinnhubQuoteProvider
from trade_chat.providers.quote_base import QuoteProvider, QuoteProviderError
from trade_chat.providers.static_quotes import StaticQuoteProvider
from trade_chat.services.quotes import QuoteService, build_quote_provider


def finnhub_transport(quote=None, profile=None, quote_status=200, profile_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["token"] == "test-key"
        if request.url.path.endswith("/quote"):
            return httpx.Response(quote_status, json=quote or {})
        if request.url.path.endswith("/stock/profile2"):
            return httpx.Response(profile_status, json=profile or {})
        return httpx.Response(404)
    return httpx.MockTransport(handler)


class TestFinnhubQuoteProvider:

    def test_quote_with_profile(self):
        provider = FinnhubQuoteProvider(
            api_key="test-key",
            transport=finnhub_transport(
                quote={"c": 150.0, "pc": 120.0, "v": 1200},
                profile={"name": "Apple Inc", "marketCapitalization": 2500000},
            ),
        )
        quote = provider.get_quote("aapl")

        assert quote.symbol == "AAPL"
        assert quote.price == Decimal("150.0")
        assert quote.percent_change == Decimal("25")
        assert quote.volume == 1200
        assert quote.company_name == "Apple Inc"
        assert quote.market_cap == Decimal("2500000000000")

    def test_day_range_fields(self):
        provider = FinnhubQuoteProvider(
            api_key="test-key",
            transport=finnhub_transport(quote={"c": 150.0, "h": 152.5, "l": 148.25, "o": 149.0, "pc": 147.0}),
        )
        quote = provider.get_quote("AAPL")

        assert quote.high == Decimal("152.5")
        assert quote.low == Decimal("148.25")
        assert quote.open == Decimal("149.0")
        assert quote.previous_close == Decimal("147.0")

    def test_missing_profile_does_not_fail(self):
        provider = FinnhubQuoteProvider(
            api_key="test-key",
            transport=finnhub_transport(quote={"c": 10, "pc": 10}, profile_status=500),
        )
        quote = provider.get_quote("XYZ")
        assert quote.price == Decimal("10")
        assert quote.company_name is None
        assert quote.high is None
        assert quote.previous_close == Decimal("10")

    def test_unknown_symbol_zero_price(self):
        provider = FinnhubQuoteProvider(
            api_key="test-key",
            transport=finnhub_transport(quote={"c": 0, "pc": 0}),
        )
        with pytest.raises(QuoteProviderError):
            provider.get_quote("NOPE")

    @pytest.mark.parametrize("status", [401, 429, 500])
    def test_http_errors(self, status):
        provider = FinnhubQuoteProvider(
            api_key="test-key",
            transport=finnhub_transport(quote_status=status),
        )
        with pytest.raises(QuoteProviderError):
            provider.get_quote("AAPL")

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = FinnhubQuoteProvider(api_key="test-key", transport=httpx.MockTransport(handler))
        with pytest.raises(QuoteProviderError):
            provider.get_quote("AAPL")

    def test_requires_api_key(self, test_db, monkeypatch):
        from trade_chat.core.config import reset_settings

        monkeypatch.delenv("FINNHUB_API_KEY", raising=False)
        reset_settings()
        with pytest.raises(ValueError):
            FinnhubQuoteProvider()


class HangingProvider(QuoteProvider):
    name = "hanging"

    def __init__(self):
        self.release = threading.Event()

    def get_quote(self, symbol):
        self.release.wait(timeout=5)
        return Quote(symbol=symbol, price=Decimal("1"), as_of=utcnow())


class TestQuoteService:

    def test_fresh_quote_every_call(self):
        provider = StaticQuoteProvider({"AAPL": "150"})
        service = QuoteService(provider, timeout_seconds=1)

        assert service.fetch_quote("AAPL").price == Decimal("150")
        provider.set_price("AAPL", "151")
        assert service.fetch_quote("AAPL").price == Decimal("151")
        assert provider.calls == 2

    def test_provider_error_becomes_quote_unavailable(self):
        service = QuoteService(StaticQuoteProvider({}), timeout_seconds=1)
        with pytest.raises(QuoteUnavailable) as exc_info:
            service.fetch_quote("AAPL")
        assert exc_info.value.error_code == TradeErrorCode.QUOTE_UNAVAILABLE
        assert exc_info.value.symbol == "AAPL"

    def test_timeout_becomes_quote_unavailable(self):
        provider = HangingProvider()
        service = QuoteService(provider, timeout_seconds=0.1)
        try:
            with pytest.raises(QuoteUnavailable) as exc_info:
                service.fetch_quote("AAPL")
            assert exc_info.value.details["reason"] == "timeout"
        finally:
            provider.release.set()

    def test_build_static_provider(self, test_db, monkeypatch):
        from trade_chat.core.config import reset_settings

        monkeypatch.setenv("QUOTE_PROVIDER", "static")
        monkeypatch.setenv("STATIC_QUOTES", "AAPL:150.25, tsla:200")
        reset_settings()

        provider = build_quote_provider()
        assert isinstance(provider, StaticQuoteProvider)
        assert provider.get_quote("TSLA").price == Decimal("200")
        assert provider.get_quote("AAPL").price == Decimal("150.25")

    def test_invalid_provider_rejected(self, test_db, monkeypatch):
        from trade_chat.core.config import reset_settings

        monkeypatch.setenv("QUOTE_PROVIDER", "bloomberg")
        reset_settings()
        with pytest.raises(ValueError):
            build_quote_provider()
