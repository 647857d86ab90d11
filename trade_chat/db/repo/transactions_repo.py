"""Transaction ledger repository (append-only: no update or delete)."""
import sqlite3
from typing import List, Dict, Any
from trade_chat.db.connect import use_conn
from trade_chat.core.ids import new_id


class TransactionsRepo:
    """Repository for the transaction ledger."""

    def append(
        self,
        portfolio_id: str,
        holding_ref: str,
        symbol: str,
        direction: str,
        quantity: int,
        price_per_unit: str,
        total_amount: str,
        executed_at: str,
        conn: sqlite3.Connection = None
    ) -> str:
        transaction_id = new_id("txn_")
        with use_conn(conn) as c:
            c.execute(
                """
                INSERT INTO transactions (
                    transaction_id, portfolio_id, holding_ref, symbol, direction,
                    quantity, price_per_unit, total_amount, executed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (transaction_id, portfolio_id, holding_ref, symbol, direction,
                 quantity, price_per_unit, total_amount, executed_at)
            )
        return transaction_id

    def list_for_portfolio(
        self,
        portfolio_id: str,
        limit: int = 100,
        conn: sqlite3.Connection = None
    ) -> List[Dict[str, Any]]:
        with use_conn(conn) as c:
            rows = c.execute(
                """
                SELECT * FROM transactions
                WHERE portfolio_id = ?
                ORDER BY executed_at DESC, rowid DESC
                LIMIT ?
                """,
                (portfolio_id, limit)
            ).fetchall()
            return [dict(row) for row in rows]

    def count_for_portfolio(self, portfolio_id: str, conn: sqlite3.Connection = None) -> int:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT COUNT(*) AS count FROM transactions WHERE portfolio_id = ?",
                (portfolio_id,)
            ).fetchone()
            return row["count"]
