"""Quote service - provider selection plus a hard timeout per fetch.

Quotes are never cached: every call goes to the provider, so the price used
at execution is always fresher than the estimate shown at confirmation.
"""
import concurrent.futures
from typing import Optional
from trade_chat.agents.schemas import Quote
from trade_chat.providers.quote_base import QuoteProvider
from trade_chat.core.config import get_settings
from trade_chat.core.error_codes import QuoteUnavailable
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

# Shared pool so a hung provider call cannot block the caller past the timeout
_executor = concurrent.futures.ThreadPoolExecutor(max_workers=8, thread_name_prefix="quote")


def build_quote_provider() -> QuoteProvider:
    """Create the provider named by QUOTE_PROVIDER."""
    settings = get_settings()
    settings.validate_quote_provider()

    if settings.quote_provider == "static":
        from trade_chat.providers.static_quotes import StaticQuoteProvider
        logger.info("Using StaticQuoteProvider (%d symbols)", len(settings.static_quotes_map))
        return StaticQuoteProvider(settings.static_quotes_map)

    from trade_chat.providers.finnhub_quotes import FinnhubQuoteProvider
    logger.info("Using FinnhubQuoteProvider")
    return FinnhubQuoteProvider()


class QuoteService:
    """Fetches quotes through one provider, bounded by a timeout."""

    def __init__(self, provider: QuoteProvider, timeout_seconds: Optional[float] = None):
        self.provider = provider
        self.timeout_seconds = timeout_seconds or get_settings().quote_timeout_seconds

    def fetch_quote(self, symbol: str) -> Quote:
        """Return a fresh quote or raise QuoteUnavailable."""
        future = _executor.submit(self.provider.get_quote, symbol)
        try:
            quote = future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.warning("Quote fetch timed out for %s after %.1fs", symbol, self.timeout_seconds)
            raise QuoteUnavailable(symbol, reason="timeout")
        except Exception as e:
            logger.warning("Quote fetch failed for %s: %s", symbol, str(e)[:200])
            raise QuoteUnavailable(symbol, reason=str(e)[:200])

        if quote is None or quote.price is None or quote.price <= 0:
            raise QuoteUnavailable(symbol, reason="no price")
        return quote


_quote_service: Optional[QuoteService] = None


def get_quote_service() -> QuoteService:
    """Get quote service singleton."""
    global _quote_service
    if _quote_service is None:
        _quote_service = QuoteService(build_quote_provider())
    return _quote_service


def set_quote_service(service: Optional[QuoteService]) -> None:
    """Replace (or with None, reset) the singleton. Used by tests and startup wiring."""
    global _quote_service
    _quote_service = service
