"""Deterministic natural-language trade parser.

Grammar: ``(buy|sell) <quantity> [shares [of] | of] <ticker-or-company>``

Examples:
    "buy 5 shares of AAPL"  -> TradeIntent(BUY, AAPL, 5)
    "Sell 2 tesla"          -> TradeIntent(SELL, TSLA, 2)
    "buy shares of Apple"   -> None (no quantity)

Price questions ("price of AAPL", "tesla quote") are recognised separately by
parse_quote_query.

Parsing is pure: anything that does not match the grammar returns None and
the caller treats the message as ordinary conversation.
"""
import re
from typing import Optional

from trade_chat.agents.schemas import Direction, MAX_TRADE_QUANTITY, TradeIntent


# Company names (and a few common nicknames) -> ticker
COMPANY_ALIASES = {
    # Tech giants
    'apple': 'AAPL',
    'microsoft': 'MSFT',
    'google': 'GOOG', 'alphabet': 'GOOG',
    'amazon': 'AMZN',
    'meta': 'META', 'facebook': 'META',
    'nvidia': 'NVDA',
    'tesla': 'TSLA',
    'netflix': 'NFLX',
    # Other tech
    'intel': 'INTC',
    'salesforce': 'CRM',
    'oracle': 'ORCL',
    'cisco': 'CSCO',
    'paypal': 'PYPL',
    'adobe': 'ADBE',
    # Finance
    'jpmorgan': 'JPM',
    'bank of america': 'BAC',
    'goldman': 'GS', 'goldman sachs': 'GS',
    'visa': 'V',
    'mastercard': 'MA',
    # Healthcare
    'pfizer': 'PFE',
    'moderna': 'MRNA',
    # Consumer
    'walmart': 'WMT',
    'coca-cola': 'KO', 'coke': 'KO',
    'pepsi': 'PEP',
    'mcdonalds': 'MCD',
    'starbucks': 'SBUX',
    'disney': 'DIS',
    # Energy
    'exxon': 'XOM',
    'chevron': 'CVX',
}

# Words that can follow the quantity but are never a symbol
_NON_SYMBOL_WORDS = {'share', 'shares', 'of', 'stock', 'stocks', 'units', 'unit'}

_TRADE_PATTERN = re.compile(
    r'\b(?P<direction>buy|sell)\s+(?P<quantity>\S+)\s+'
    r'(?:(?:shares?|units?)\s+(?:of\s+)?|of\s+)?'
    r'(?P<rest>.+)$',
    re.IGNORECASE,
)

_TICKER_PATTERN = re.compile(r'^[a-z]{1,5}$')

_QUANTITY_PATTERN = re.compile(r'[0-9]+')

# "price of AAPL", "quote for tesla", "how much is MSFT", "NVDA stock price"
_QUOTE_PATTERNS = (
    re.compile(r'\b(?:price|quote)\s+(?:of|for|on)\s+(?P<rest>.+)$', re.IGNORECASE),
    re.compile(r'^(?:quote|how much is)\s+(?P<rest>.+)$', re.IGNORECASE),
    re.compile(r'^(?P<rest>\S+)\s+(?:stock\s+|share\s+)?(?:price|quote)\b', re.IGNORECASE),
)

# Longest alias first so "goldman sachs" wins over "goldman"
_ALIASES_BY_LENGTH = sorted(COMPANY_ALIASES.items(), key=lambda kv: -len(kv[0]))


def _parse_quantity(token: str) -> Optional[int]:
    # ASCII digits only: str.isdigit() also accepts superscripts int() rejects
    if not _QUANTITY_PATTERN.fullmatch(token):
        return None
    quantity = int(token)
    return quantity if 0 < quantity <= MAX_TRADE_QUANTITY else None


def _match_alias(rest: str) -> Optional[str]:
    for alias, symbol in _ALIASES_BY_LENGTH:
        if rest == alias or re.match(rf'{re.escape(alias)}\b', rest):
            return symbol
    return None


def _first_word(text: str) -> str:
    return re.split(r'[\s,.!?;:]+', text.strip(), maxsplit=1)[0]


def resolve_symbol(text: str) -> Optional[str]:
    """Resolve the start of ``text`` to a ticker.

    Company names go through COMPANY_ALIASES; otherwise the first word must
    be a 1-5 letter ticker. Returns None when nothing resolves.
    """
    rest = text.strip().lower()
    symbol = _match_alias(rest)
    if symbol is not None:
        return symbol

    first = _first_word(rest)
    if first in _NON_SYMBOL_WORDS:
        return None
    if _TICKER_PATTERN.match(first):
        return first.upper()
    return None


def parse_trade_intent(text: str) -> Optional[TradeIntent]:
    """Parse a chat message into a TradeIntent, or None if it is not a trade."""
    if not text:
        return None

    match = _TRADE_PATTERN.search(text.strip())
    if not match:
        return None

    quantity = _parse_quantity(match.group('quantity'))
    if quantity is None:
        return None

    symbol = resolve_symbol(match.group('rest'))
    if symbol is None:
        return None

    return TradeIntent(
        direction=Direction(match.group('direction').upper()),
        symbol=symbol,
        quantity=quantity,
    )


def parse_quote_query(text: str) -> Optional[str]:
    """Ticker asked about in a price question, or None.

    Bare tickers must be written in capitals here ("price of AAPL"), so that
    ordinary words after "price of" are not read as symbols.
    """
    if not text:
        return None

    text = text.strip().rstrip('?.!')
    for pattern in _QUOTE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue
        rest = match.group('rest').strip()
        symbol = _match_alias(rest.lower())
        if symbol is not None:
            return symbol
        first = _first_word(rest)
        if first.isupper() and _TICKER_PATTERN.match(first.lower()):
            return first
    return None


def render_intent(intent: TradeIntent) -> str:
    """Canonical text form; parse_trade_intent(render_intent(i)) == i."""
    noun = "share" if intent.quantity == 1 else "shares"
    return f"{intent.direction.value.lower()} {intent.quantity} {noun} of {intent.symbol}"
