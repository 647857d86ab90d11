"""Base quote provider interface."""
from abc import ABC, abstractmethod
from trade_chat.agents.schemas import Quote


class QuoteProviderError(Exception):
    """Raised by providers when a quote cannot be produced."""
    pass


class QuoteProvider(ABC):
    """Abstract base class for quote providers.

    Providers are called once per symbol; no batching is assumed.
    """

    name: str = "base"

    @abstractmethod
    def get_quote(self, symbol: str) -> Quote:
        """Get the current quote for ``symbol``.

        Raises:
            QuoteProviderError: provider failure or no usable price
        """
        pass
