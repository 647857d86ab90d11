"""Finnhub quote provider for stocks.

Uses two endpoints per symbol:
- /quote: current price (c), previous close (pc), day high/low/open (h, l, o),
  volume (v)
- /stock/profile2: company name and market capitalization
"""
import httpx
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any
from trade_chat.agents.schemas import Quote
from trade_chat.providers.quote_base import QuoteProvider, QuoteProviderError
from trade_chat.core.config import get_settings
from trade_chat.core.logging import get_logger
from trade_chat.core.time import utcnow

logger = get_logger(__name__)

FINNHUB_BASE_URL = "https://finnhub.io/api/v1"


def _optional_price(data: Dict[str, Any], key: str) -> Optional[Decimal]:
    try:
        value = Decimal(str(data.get(key) or 0))
    except InvalidOperation:
        return None
    return value if value > 0 else None


class FinnhubQuoteProvider(QuoteProvider):
    """Finnhub market data provider."""

    name = "finnhub"

    def __init__(self, api_key: Optional[str] = None, timeout_seconds: Optional[float] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """Initialize Finnhub provider.

        Args:
            api_key: Finnhub API key. If not provided, uses FINNHUB_API_KEY from settings.
            timeout_seconds: Per-request timeout. Defaults to QUOTE_TIMEOUT_SECONDS.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        settings = get_settings()
        self.api_key = api_key or settings.finnhub_api_key
        if not self.api_key:
            raise ValueError("FINNHUB_API_KEY required for stock quotes")
        self.timeout_seconds = timeout_seconds or settings.quote_timeout_seconds
        self._transport = transport

    def _get_json(self, client: httpx.Client, path: str, symbol: str) -> Dict[str, Any]:
        try:
            response = client.get(
                f"{FINNHUB_BASE_URL}{path}",
                params={"symbol": symbol, "token": self.api_key},
            )
        except httpx.TimeoutException:
            raise QuoteProviderError(f"Finnhub timeout for {symbol}")
        except httpx.RequestError as e:
            raise QuoteProviderError(f"Finnhub request error for {symbol}: {e}")

        if response.status_code == 429:
            raise QuoteProviderError(f"Finnhub rate limited (429) for {symbol}")
        if response.status_code != 200:
            raise QuoteProviderError(f"Finnhub error {response.status_code} for {symbol}")

        try:
            return response.json() or {}
        except ValueError:
            raise QuoteProviderError(f"Finnhub returned invalid JSON for {symbol}")

    def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper().strip()

        with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
            quote_data = self._get_json(client, "/quote", symbol)
            try:
                price = Decimal(str(quote_data.get("c") or 0))
                previous_close = Decimal(str(quote_data.get("pc") or 0))
            except InvalidOperation:
                raise QuoteProviderError(f"Finnhub returned a malformed price for {symbol}")

            # Unknown symbols come back as all-zero quotes
            if price <= 0:
                raise QuoteProviderError(f"No price available for {symbol}")

            # Profile is best-effort; a missing profile does not block a trade
            try:
                profile = self._get_json(client, "/stock/profile2", symbol)
            except QuoteProviderError as e:
                logger.warning("Finnhub profile unavailable for %s: %s", symbol, e)
                profile = {}

        percent_change = Decimal("0")
        if previous_close > 0:
            percent_change = (price - previous_close) / previous_close * 100

        # Finnhub reports market capitalization in millions
        market_cap = Decimal(str(profile.get("marketCapitalization") or 0)) * 1_000_000

        return Quote(
            symbol=symbol,
            price=price,
            percent_change=percent_change,
            volume=int(quote_data.get("v") or 0),
            market_cap=market_cap,
            company_name=profile.get("name"),
            high=_optional_price(quote_data, "h"),
            low=_optional_price(quote_data, "l"),
            open=_optional_price(quote_data, "o"),
            previous_close=previous_close if previous_close > 0 else None,
            as_of=utcnow(),
        )
