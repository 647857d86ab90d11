"""Tests for the deterministic trade intent parser."""
import pytest
from trade_chat.agents.schemas import Direction, MAX_TRADE_QUANTITY, TradeIntent
from trade_chat.agents.trade_parser import parse_quote_query, parse_trade_intent, render_intent, resolve_symbol


class TestTickerTrades:

    @pytest.mark.parametrize("text,direction,quantity,symbol", [
        ("buy 5 shares of AAPL", Direction.BUY, 5, "AAPL"),
        ("sell 2 shares of TSLA", Direction.SELL, 2, "TSLA"),
        ("Buy 10 msft", Direction.BUY, 10, "MSFT"),
        ("SELL 1 share of nflx", Direction.SELL, 1, "NFLX"),
        ("please buy 3 shares AMZN now", Direction.BUY, 3, "AMZN"),
        ("buy 7 of GOOG", Direction.BUY, 7, "GOOG"),
    ])
    def test_valid_trades(self, text, direction, quantity, symbol):
        intent = parse_trade_intent(text)
        assert intent == TradeIntent(direction=direction, quantity=quantity, symbol=symbol)

    def test_symbol_is_uppercased(self):
        assert parse_trade_intent("buy 5 shares of aapl").symbol == "AAPL"


class TestAliases:

    def test_buy_3_apple(self):
        intent = parse_trade_intent("buy 3 apple")
        assert intent.symbol == "AAPL"
        assert intent.quantity == 3
        assert intent.direction == Direction.BUY

    @pytest.mark.parametrize("name,symbol", [
        ("tesla", "TSLA"),
        ("Microsoft", "MSFT"),
        ("google", "GOOG"),
        ("amazon", "AMZN"),
        ("meta", "META"),
        ("netflix", "NFLX"),
        ("bank of america", "BAC"),
        ("goldman sachs", "GS"),
    ])
    def test_company_names(self, name, symbol):
        assert parse_trade_intent(f"sell 2 shares of {name}").symbol == symbol

    def test_longest_alias_wins(self):
        assert resolve_symbol("goldman sachs stock") == "GS"

    def test_unknown_long_name_is_not_a_trade(self):
        assert parse_trade_intent("buy 3 shares of unobtainium") is None


class TestNotATrade:

    @pytest.mark.parametrize("text", [
        "buy shares of Apple",
        "buy AAPL",
        "sell 0 shares of AAPL",
        "sell -2 shares of AAPL",
        "buy five shares of AAPL",
        "buy 2.5 shares of AAPL",
        "what is my portfolio worth?",
        "hello",
        "",
        "buy 5 shares",
        "buy 5 shares of",
        "buy ² AAPL",
        "sell ٣ shares of AAPL",
        "buy 99999999999999999999 shares of AAPL",
        "buy 1000000001 shares of AAPL",
    ])
    def test_returns_none(self, text):
        assert parse_trade_intent(text) is None

    def test_none_input(self):
        assert parse_trade_intent(None) is None

    def test_largest_quantity_accepted(self):
        intent = parse_trade_intent(f"buy {MAX_TRADE_QUANTITY} shares of AAPL")
        assert intent.quantity == MAX_TRADE_QUANTITY


class TestCanonicalRendering:

    @pytest.mark.parametrize("text", [
        "buy 5 shares of AAPL",
        "sell 1 tesla",
        "Buy 12 of msft",
    ])
    def test_reparse_of_rendering_is_stable(self, text):
        intent = parse_trade_intent(text)
        assert parse_trade_intent(render_intent(intent)) == intent

    def test_singular_share(self):
        intent = TradeIntent(direction=Direction.SELL, symbol="AAPL", quantity=1)
        assert render_intent(intent) == "sell 1 share of AAPL"

    def test_parsing_is_deterministic(self):
        assert parse_trade_intent("buy 4 nvidia") == parse_trade_intent("buy 4 nvidia")


class TestQuoteQueries:

    @pytest.mark.parametrize("text,symbol", [
        ("price of AAPL", "AAPL"),
        ("What is the price of TSLA?", "TSLA"),
        ("quote for tesla", "TSLA"),
        ("quote MSFT", "MSFT"),
        ("how much is apple", "AAPL"),
        ("NVDA stock price", "NVDA"),
        ("netflix quote", "NFLX"),
    ])
    def test_price_questions(self, text, symbol):
        assert parse_quote_query(text) == symbol

    @pytest.mark.parametrize("text", [
        "what is the price of the thing",
        "portfolio price",
        "how am I doing?",
        "buy 5 shares of AAPL",
        "",
    ])
    def test_not_a_price_question(self, text):
        assert parse_quote_query(text) is None

