"""Holdings repository.

Quantity updates are compare-and-swap on ``version``: an update that finds
a different version than the one read raises ConcurrentModification.
"""
import sqlite3
from typing import List, Optional, Dict, Any
from trade_chat.db.connect import use_conn
from trade_chat.core.error_codes import ConcurrentModification
from trade_chat.core.ids import new_id
from trade_chat.core.time import now_iso


class HoldingsRepo:
    """Repository for stock holdings."""

    def get(self, portfolio_id: str, symbol: str, conn: sqlite3.Connection = None) -> Optional[Dict[str, Any]]:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT * FROM holdings WHERE portfolio_id = ? AND symbol = ?",
                (portfolio_id, symbol)
            ).fetchone()
            return dict(row) if row else None

    def list_for_portfolio(self, portfolio_id: str, conn: sqlite3.Connection = None) -> List[Dict[str, Any]]:
        with use_conn(conn) as c:
            rows = c.execute(
                "SELECT * FROM holdings WHERE portfolio_id = ? ORDER BY symbol ASC",
                (portfolio_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    def create_empty(
        self,
        portfolio_id: str,
        symbol: str,
        name: Optional[str],
        last_price: str,
        conn: sqlite3.Connection = None
    ) -> Dict[str, Any]:
        """Insert a zero-quantity holding so BUY deltas apply uniformly."""
        holding_id = new_id("hld_")
        now = now_iso()
        with use_conn(conn) as c:
            c.execute(
                """
                INSERT INTO holdings (
                    holding_id, portfolio_id, symbol, name, quantity,
                    last_price, version, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 0, ?, 0, ?, ?)
                """,
                (holding_id, portfolio_id, symbol, name, last_price, now, now)
            )
            return self.get(portfolio_id, symbol, conn=c)

    def update_position(
        self,
        holding_id: str,
        expected_version: int,
        quantity: int,
        last_price: str,
        last_price_change: str,
        market_cap: str,
        volume: int,
        conn: sqlite3.Connection = None
    ) -> None:
        with use_conn(conn) as c:
            cursor = c.execute(
                """
                UPDATE holdings
                SET quantity = ?, last_price = ?, last_price_change = ?,
                    market_cap = ?, volume = ?, version = version + 1, updated_at = ?
                WHERE holding_id = ? AND version = ?
                """,
                (quantity, last_price, last_price_change, market_cap, volume,
                 now_iso(), holding_id, expected_version)
            )
            if cursor.rowcount != 1:
                raise ConcurrentModification(
                    f"holding {holding_id} changed since version {expected_version}"
                )

    def delete(self, holding_id: str, expected_version: int, conn: sqlite3.Connection = None) -> None:
        with use_conn(conn) as c:
            cursor = c.execute(
                "DELETE FROM holdings WHERE holding_id = ? AND version = ?",
                (holding_id, expected_version)
            )
            if cursor.rowcount != 1:
                raise ConcurrentModification(
                    f"holding {holding_id} changed since version {expected_version}"
                )
