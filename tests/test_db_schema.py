"""Tests for migrations, schema validation and repository constraints."""
import sqlite3

import pytest
from trade_chat.db.connect import get_conn, get_schema_status, init_db, validate_schema, _split_statements
from trade_chat.db.repo.holdings_repo import HoldingsRepo
from trade_chat.db.repo.portfolios_repo import PortfoliosRepo
from trade_chat.db.repo.trade_confirmations_repo import TradeConfirmationsRepo
from trade_chat.db.repo.transactions_repo import TransactionsRepo
from trade_chat.db.repo.users_repo import UsersRepo
from trade_chat.core.error_codes import ConcurrentModification


class TestMigrations:

    def test_schema_valid_after_init(self, test_db):
        ok, missing = validate_schema()
        assert ok is True
        assert missing == {}

    def test_init_is_idempotent(self, test_db):
        init_db()
        status = get_schema_status()
        assert status["applied_migrations"] == ["001_initial_schema.sql", "002_trade_confirmations.sql"]
        assert status["pending_migrations"] == []

    def test_split_statements_strips_comments(self):
        sql = "-- header\nCREATE TABLE a (x INT); -- trailing\nCREATE INDEX i ON a(x);\n"
        assert _split_statements(sql) == ["CREATE TABLE a (x INT)", "CREATE INDEX i ON a(x)"]


class TestConstraints:

    def test_negative_quantity_rejected(self, portfolio):
        holding = HoldingsRepo().get(portfolio, "AAPL")
        with pytest.raises(sqlite3.IntegrityError):
            HoldingsRepo().update_position(
                holding["holding_id"], holding["version"], -1, "150", "0", "0", 0
            )

    def test_one_holding_per_symbol(self, portfolio):
        with pytest.raises(sqlite3.IntegrityError):
            HoldingsRepo().create_empty(portfolio, "AAPL", "Apple", "150")

    def test_transaction_quantity_positive(self, portfolio):
        with pytest.raises(sqlite3.IntegrityError):
            TransactionsRepo().append(portfolio, "hld_x", "AAPL", "BUY", 0, "150", "0", "2026-01-01T00:00:00Z")

    def test_transaction_direction_checked(self, portfolio):
        with pytest.raises(sqlite3.IntegrityError):
            TransactionsRepo().append(portfolio, "hld_x", "AAPL", "HOLD", 1, "150", "150", "2026-01-01T00:00:00Z")

    def test_portfolio_per_owner_is_unique(self, owner):
        first = PortfoliosRepo().get_or_create(owner)
        second = PortfoliosRepo().get_or_create(owner)
        assert first["portfolio_id"] == second["portfolio_id"]


class TestHoldingVersioning:

    def test_stale_version_update_rejected(self, portfolio):
        repo = HoldingsRepo()
        holding = repo.get(portfolio, "AAPL")
        repo.update_position(holding["holding_id"], holding["version"], 11, "150", "0", "0", 0)

        with pytest.raises(ConcurrentModification):
            repo.update_position(holding["holding_id"], holding["version"], 12, "150", "0", "0", 0)
        assert repo.get(portfolio, "AAPL")["quantity"] == 11

    def test_stale_version_delete_rejected(self, portfolio):
        repo = HoldingsRepo()
        holding = repo.get(portfolio, "TSLA")
        with pytest.raises(ConcurrentModification):
            repo.delete(holding["holding_id"], holding["version"] + 1)
        assert repo.get(portfolio, "TSLA") is not None

    def test_shared_connection_rolls_back_together(self, portfolio):
        with pytest.raises(RuntimeError):
            with get_conn() as conn:
                TransactionsRepo().append(portfolio, "hld_x", "AAPL", "BUY", 1, "150", "150",
                                          "2026-01-01T00:00:00Z", conn=conn)
                raise RuntimeError("abort")
        assert TransactionsRepo().count_for_portfolio(portfolio) == 0


class TestUsersRepo:

    def test_pin_hash_upsert(self, test_db):
        repo = UsersRepo()
        assert repo.get_pin_hash("bob") is None
        repo.ensure_user("bob")
        assert repo.get_pin_hash("bob") is None
        repo.set_pin_hash("bob", "hash-1")
        repo.set_pin_hash("bob", "hash-2")
        assert repo.get_pin_hash("bob") == "hash-2"


def _confirmation(repo, confirmation_id="cnf_1"):
    repo.create_pending(confirmation_id, "bob", "s1", "BUY", "AAPL", 5, "150.00", "2026-01-01T00:00:00Z")


class TestTradeConfirmationsRepo:

    def test_create_and_get(self, test_db):
        repo = TradeConfirmationsRepo()
        _confirmation(repo)
        row = repo.get("cnf_1")
        assert row["status"] == "PENDING"
        assert row["pin_attempts"] == 0
        assert row["quantity"] == 5
        assert row["closed_at"] is None
        assert repo.get("cnf_missing") is None

    def test_record_attempt_counts(self, test_db):
        repo = TradeConfirmationsRepo()
        _confirmation(repo)
        assert repo.record_attempt("cnf_1") == 1
        assert repo.record_attempt("cnf_1") == 2
        assert repo.get("cnf_1")["pin_attempts"] == 2

    def test_close_is_single_use(self, test_db):
        repo = TradeConfirmationsRepo()
        _confirmation(repo)
        assert repo.close("cnf_1", "CONFIRMED") is True
        assert repo.close("cnf_1", "CONFIRMED") is False
        assert repo.close("cnf_1", "CANCELLED") is False

        row = repo.get("cnf_1")
        assert row["status"] == "CONFIRMED"
        assert row["closed_at"] is not None

    def test_no_attempts_after_close(self, test_db):
        repo = TradeConfirmationsRepo()
        _confirmation(repo)
        repo.close("cnf_1", "CANCELLED")
        assert repo.record_attempt("cnf_1") is None
        assert repo.get("cnf_1")["pin_attempts"] == 0

    def test_status_checked(self, test_db):
        repo = TradeConfirmationsRepo()
        _confirmation(repo)
        with pytest.raises(sqlite3.IntegrityError):
            repo.close("cnf_1", "EXECUTED")

    def test_quantity_positive(self, test_db):
        with pytest.raises(sqlite3.IntegrityError):
            TradeConfirmationsRepo().create_pending(
                "cnf_2", "bob", "s1", "BUY", "AAPL", 0, "150.00", "2026-01-01T00:00:00Z"
            )
