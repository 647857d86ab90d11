"""Reply text for the trade chat conversation."""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from trade_chat.agents.schemas import Direction, Holding, PortfolioAggregate, Quote, TradeIntent, TradeResult

TRADE_SYNTAX_HINT = 'You can trade by typing "buy 5 shares of AAPL" or "sell 2 tesla".'

_CENT = Decimal("0.01")


def format_currency(amount) -> str:
    """$1,234.50 style, two decimals, half-up rounding."""
    value = Decimal(str(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_percent(value) -> str:
    """+1.25% / -0.40%."""
    pct = Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "+" if pct > 0 else ""
    return f"{sign}{pct}%"


def format_number(num) -> str:
    return f"{int(num):,}"


def format_market_cap(amount) -> str:
    """$2.95T / $410.20B / $12.00M."""
    value = Decimal(str(amount))
    for threshold, suffix in ((Decimal("1e12"), "T"), (Decimal("1e9"), "B"), (Decimal("1e6"), "M")):
        if abs(value) >= threshold:
            return f"{format_currency(value / threshold)}{suffix}"
    return format_currency(value)


def _shares(quantity: int) -> str:
    return "1 share" if quantity == 1 else f"{format_number(quantity)} shares"


def trade_challenge(intent: TradeIntent, price: Decimal, company_name: Optional[str] = None) -> str:
    action = "buy" if intent.direction == Direction.BUY else "sell"
    name = f" ({company_name})" if company_name else ""
    total = price * intent.quantity
    return (
        f"I'll help you {action} {_shares(intent.quantity)} of {intent.symbol}{name}. "
        f"The current market price is {format_currency(price)} per share, which means your "
        f"total would be about {format_currency(total)}. The price is re-checked when you confirm. "
        f"If you'd like to proceed with this trade, please enter your PIN."
    )


def pin_mismatch(attempts_left: int) -> str:
    tries = "1 attempt" if attempts_left == 1 else f"{attempts_left} attempts"
    return (
        f"That PIN is incorrect. Please enter your PIN again ({tries} left), "
        f"or send any other message to cancel."
    )


def pin_attempts_exhausted() -> str:
    return "Too many incorrect PIN attempts. The pending trade has been cancelled."


def pin_not_set() -> str:
    return (
        "You need to set a trading PIN before you can confirm trades. "
        "The pending trade has been cancelled."
    )


def no_pending_trade() -> str:
    return (
        "There is no pending trade to confirm. If you had one, it may have expired "
        "because prices move. Please restate the trade. " + TRADE_SYNTAX_HINT
    )


def trade_cancelled() -> str:
    return "Okay, I've cancelled the pending trade."


def trade_executed(result: TradeResult) -> str:
    verb = "bought" if result.direction == Direction.BUY else "sold"
    return (
        f"Successfully {verb} {_shares(result.quantity)} of {result.symbol} at "
        f"{format_currency(result.price)} per share. Total: {format_currency(result.total_amount)}. "
        f"You now hold {_shares(result.remaining_quantity)} of {result.symbol}."
    )


def trade_failed(message: str) -> str:
    return f"{message} Your pending trade has been cleared; you can restate it to try again."


def quote_unavailable(symbol: str) -> str:
    return (
        f"I couldn't get a current price for {symbol} right now. "
        f"Please check the symbol and try again in a moment."
    )


def quote_reply(quote: Quote) -> str:
    name = f" ({quote.company_name})" if quote.company_name else ""
    text = (
        f"{quote.symbol}{name} is trading at {format_currency(quote.price)} "
        f"({format_percent(quote.percent_change)} today)."
    )
    details = []
    if quote.open is not None:
        details.append(f"open {format_currency(quote.open)}")
    if quote.low is not None and quote.high is not None:
        details.append(f"day range {format_currency(quote.low)} to {format_currency(quote.high)}")
    if quote.previous_close is not None:
        details.append(f"previous close {format_currency(quote.previous_close)}")
    if quote.volume:
        details.append(f"volume {format_number(quote.volume)}")
    if quote.market_cap > 0:
        details.append(f"market cap {format_market_cap(quote.market_cap)}")
    if details:
        summary = ", ".join(details)
        text += f" {summary[0].upper()}{summary[1:]}."
    return text


def portfolio_summary(aggregate: PortfolioAggregate, holdings: List[Holding]) -> str:
    """Portfolio-aware help reply for messages that are not trades."""
    lines = [
        f"Portfolio: {format_currency(aggregate.total_holding_value)} total value, "
        f"{aggregate.active_holding_count} "
        f"{'stock' if aggregate.active_holding_count == 1 else 'stocks'}."
    ]
    if holdings:
        parts = [
            f"{h.symbol} ({format_number(h.quantity)} @ {format_currency(h.last_price)}, "
            f"{format_percent(h.last_price_change)})"
            for h in holdings
        ]
        lines.append("Holdings: " + ", ".join(parts))
    lines.append(TRADE_SYNTAX_HINT)
    return "\n".join(lines)
