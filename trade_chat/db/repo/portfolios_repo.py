"""Portfolios repository (owner lookup and aggregate columns)."""
import sqlite3
from typing import Optional, Dict, Any
from trade_chat.db.connect import use_conn
from trade_chat.core.ids import new_id
from trade_chat.core.time import now_iso


class PortfoliosRepo:
    """Repository for portfolios."""

    def get_by_owner(self, owner_id: str, conn: sqlite3.Connection = None) -> Optional[Dict[str, Any]]:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT * FROM portfolios WHERE owner_id = ?",
                (owner_id,)
            ).fetchone()
            return dict(row) if row else None

    def get_by_id(self, portfolio_id: str, conn: sqlite3.Connection = None) -> Optional[Dict[str, Any]]:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT * FROM portfolios WHERE portfolio_id = ?",
                (portfolio_id,)
            ).fetchone()
            return dict(row) if row else None

    def get_or_create(self, owner_id: str, conn: sqlite3.Connection = None) -> Dict[str, Any]:
        """Return the owner's portfolio, creating an empty one on first use."""
        with use_conn(conn) as c:
            now = now_iso()
            c.execute(
                """
                INSERT OR IGNORE INTO portfolios (
                    portfolio_id, owner_id, total_holding_value,
                    active_holding_count, created_at, updated_at
                ) VALUES (?, ?, '0', 0, ?, ?)
                """,
                (new_id("pf_"), owner_id, now, now)
            )
            return self.get_by_owner(owner_id, conn=c)

    def update_aggregate(
        self,
        portfolio_id: str,
        total_holding_value: str,
        active_holding_count: int,
        conn: sqlite3.Connection = None
    ) -> str:
        """Write the aggregate columns. Returns the updated_at timestamp."""
        updated_at = now_iso()
        with use_conn(conn) as c:
            c.execute(
                """
                UPDATE portfolios
                SET total_holding_value = ?, active_holding_count = ?, updated_at = ?
                WHERE portfolio_id = ?
                """,
                (total_holding_value, active_holding_count, updated_at, portfolio_id)
            )
        return updated_at
