"""Shared pytest fixtures for the test suite.

Provides:
- An isolated SQLite database per test
- A StaticQuoteProvider wired into the quote service
- A recording notifier
- A seeded user with a trading PIN and a portfolio with holdings
"""
import os
import shutil
import tempfile
import threading
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import pytest

# Set test mode environment variables early (BEFORE trade_chat imports)
_IMPORT_DIR = tempfile.mkdtemp(prefix="trade_chat_import_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_IMPORT_DIR, 'import.db')}"
os.environ["TEST_AUTH_BYPASS"] = "true"
os.environ["QUOTE_PROVIDER"] = "static"
os.environ.pop("NOTIFIER_WEBHOOK_URL", None)

TEST_OWNER = "test-user"
TEST_PIN = "4321"


class RecordingNotifier:
    """ChangeNotifier that keeps every published event."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []
        self._lock = threading.Lock()

    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        with self._lock:
            self.events.append((portfolio_id, event))

    def types(self) -> List[str]:
        return [e["type"] for _, e in self.events]


def _reset_singletons():
    from trade_chat.core.config import reset_settings
    from trade_chat.services.quotes import set_quote_service
    from trade_chat.services.notifications.notifier import set_notifier
    from trade_chat.services.trade_chat import reset_trade_chat_service

    reset_settings()
    set_quote_service(None)
    set_notifier(None)
    reset_trade_chat_service()


@pytest.fixture(autouse=True, scope="session")
def _cleanup_import_db():
    yield
    shutil.rmtree(_IMPORT_DIR, ignore_errors=True)


# === DATABASE FIXTURES ===

@pytest.fixture(scope="function")
def test_db():
    """Create an isolated test database for each test function.

    Creates a fresh SQLite database, runs migrations, and cleans up after.
    """
    temp_dir = tempfile.mkdtemp()
    db_path = os.path.join(temp_dir, "test_trade_chat.db")

    old_db_url = os.environ.get("DATABASE_URL")
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"
    _reset_singletons()

    try:
        from trade_chat.db.connect import init_db
        init_db()
        yield db_path
    finally:
        _reset_singletons()
        if old_db_url:
            os.environ["DATABASE_URL"] = old_db_url
        else:
            os.environ.pop("DATABASE_URL", None)
        shutil.rmtree(temp_dir, ignore_errors=True)


# === QUOTES / NOTIFIER ===

@pytest.fixture
def quotes(test_db):
    """StaticQuoteProvider installed as the quote service."""
    from trade_chat.providers.static_quotes import StaticQuoteProvider
    from trade_chat.services.quotes import QuoteService, set_quote_service

    provider = StaticQuoteProvider({"AAPL": "150.00", "TSLA": "200.00", "MSFT": "410.00"})
    set_quote_service(QuoteService(provider, timeout_seconds=2))
    return provider


@pytest.fixture
def notifier(test_db):
    """RecordingNotifier installed as the change notifier."""
    from trade_chat.services.notifications.notifier import set_notifier

    recording = RecordingNotifier()
    set_notifier(recording)
    return recording


# === SEED DATA ===

def seed_holding(portfolio_id: str, symbol: str, quantity: int, price: str) -> None:
    """Insert a holding directly and bring the aggregate in line."""
    from trade_chat.db.connect import get_conn
    from trade_chat.db.repo.holdings_repo import HoldingsRepo
    from trade_chat.services.portfolio_aggregate import PortfolioAggregateStore

    repo = HoldingsRepo()
    with get_conn() as conn:
        holding = repo.get(portfolio_id, symbol, conn=conn) or repo.create_empty(
            portfolio_id, symbol, symbol, price, conn=conn
        )
        repo.update_position(
            holding_id=holding["holding_id"],
            expected_version=holding["version"],
            quantity=quantity,
            last_price=price,
            last_price_change="0",
            market_cap="0",
            volume=0,
            conn=conn,
        )
        PortfolioAggregateStore().recompute(portfolio_id, conn=conn)


@pytest.fixture
def owner(test_db):
    """User with a trading PIN set. Returns the user id."""
    from trade_chat.core.security import hash_pin
    from trade_chat.db.repo.users_repo import UsersRepo

    UsersRepo().set_pin_hash(TEST_OWNER, hash_pin(TEST_PIN))
    return TEST_OWNER


@pytest.fixture
def portfolio(owner):
    """Owner's portfolio holding 10 AAPL @ 150 and 4 TSLA @ 200. Returns portfolio_id."""
    from trade_chat.db.repo.portfolios_repo import PortfoliosRepo

    portfolio_id = PortfoliosRepo().get_or_create(owner)["portfolio_id"]
    seed_holding(portfolio_id, "AAPL", 10, "150.00")
    seed_holding(portfolio_id, "TSLA", 4, "200.00")
    return portfolio_id


# === STATE HELPERS ===

def db_snapshot(portfolio_id: str) -> Dict[str, Any]:
    """Holdings, ledger and aggregate as plain data, for before/after comparison."""
    from trade_chat.db.repo.holdings_repo import HoldingsRepo
    from trade_chat.db.repo.portfolios_repo import PortfoliosRepo
    from trade_chat.db.repo.transactions_repo import TransactionsRepo

    portfolio_row = PortfoliosRepo().get_by_id(portfolio_id)
    return {
        "holdings": [
            (h["symbol"], h["quantity"], h["last_price"], h["version"])
            for h in HoldingsRepo().list_for_portfolio(portfolio_id)
        ],
        "transactions": len(TransactionsRepo().list_for_portfolio(portfolio_id, limit=500)),
        "total_holding_value": portfolio_row["total_holding_value"],
        "active_holding_count": portfolio_row["active_holding_count"],
    }


def holdings_value(portfolio_id: str) -> Decimal:
    from trade_chat.db.repo.holdings_repo import HoldingsRepo

    return sum(
        (Decimal(h["last_price"]) * h["quantity"] for h in HoldingsRepo().list_for_portfolio(portfolio_id)),
        Decimal("0"),
    )
