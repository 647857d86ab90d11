"""In-memory quote provider for development, demos and tests."""
import threading
from decimal import Decimal
from typing import Dict, Optional
from trade_chat.agents.schemas import Quote
from trade_chat.providers.quote_base import QuoteProvider, QuoteProviderError
from trade_chat.core.time import utcnow


class StaticQuoteProvider(QuoteProvider):
    """Serves prices from a table that can be changed at runtime."""

    name = "static"

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {
            symbol.upper(): Decimal(str(price)) for symbol, price in (prices or {}).items()
        }
        self._changes: Dict[str, Decimal] = {}
        self._lock = threading.Lock()
        self.calls = 0

    def set_price(self, symbol: str, price, percent_change=None) -> None:
        with self._lock:
            self._prices[symbol.upper()] = Decimal(str(price))
            if percent_change is not None:
                self._changes[symbol.upper()] = Decimal(str(percent_change))

    def remove(self, symbol: str) -> None:
        with self._lock:
            self._prices.pop(symbol.upper(), None)

    def get_quote(self, symbol: str) -> Quote:
        symbol = symbol.upper()
        with self._lock:
            self.calls += 1
            price = self._prices.get(symbol)
            change = self._changes.get(symbol, Decimal("0"))
        if price is None:
            raise QuoteProviderError(f"No static price configured for {symbol}")
        return Quote(
            symbol=symbol,
            price=price,
            percent_change=change,
            volume=0,
            market_cap=Decimal("0"),
            company_name=None,
            as_of=utcnow(),
        )
