"""Trade confirmations repository.

Status moves PENDING -> CONFIRMED | CANCELLED | EXPIRED exactly once; every
transition is guarded by ``status = 'PENDING'`` so a confirmation can only be
consumed by one caller.
"""
import sqlite3
from typing import Optional, Dict, Any
from trade_chat.db.connect import use_conn
from trade_chat.core.time import now_iso

PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
EXPIRED = "EXPIRED"


class TradeConfirmationsRepo:
    """Repository for PIN challenges and their attempt counters."""

    def create_pending(
        self,
        confirmation_id: str,
        owner_id: str,
        session_id: str,
        direction: str,
        symbol: str,
        quantity: int,
        estimate_price: Optional[str],
        issued_at: str,
        conn: sqlite3.Connection = None
    ) -> None:
        with use_conn(conn) as c:
            c.execute(
                """
                INSERT INTO trade_confirmations (
                    confirmation_id, owner_id, session_id, direction, symbol,
                    quantity, estimate_price, status, pin_attempts, issued_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 'PENDING', 0, ?)
                """,
                (confirmation_id, owner_id, session_id, direction, symbol,
                 quantity, estimate_price, issued_at)
            )

    def get(self, confirmation_id: str, conn: sqlite3.Connection = None) -> Optional[Dict[str, Any]]:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT * FROM trade_confirmations WHERE confirmation_id = ?",
                (confirmation_id,)
            ).fetchone()
            return dict(row) if row else None

    def record_attempt(self, confirmation_id: str, conn: sqlite3.Connection = None) -> Optional[int]:
        """Count one failed PIN attempt. Returns the new total, or None if no longer pending."""
        with use_conn(conn) as c:
            cursor = c.execute(
                """
                UPDATE trade_confirmations SET pin_attempts = pin_attempts + 1
                WHERE confirmation_id = ? AND status = 'PENDING'
                """,
                (confirmation_id,)
            )
            if cursor.rowcount == 0:
                return None
            row = c.execute(
                "SELECT pin_attempts FROM trade_confirmations WHERE confirmation_id = ?",
                (confirmation_id,)
            ).fetchone()
            return row["pin_attempts"]

    def close(self, confirmation_id: str, status: str, conn: sqlite3.Connection = None) -> bool:
        """Move a PENDING confirmation to ``status``.

        Returns True if this call made the transition, False if the
        confirmation was already closed.
        """
        with use_conn(conn) as c:
            cursor = c.execute(
                """
                UPDATE trade_confirmations SET status = ?, closed_at = ?
                WHERE confirmation_id = ? AND status = 'PENDING'
                """,
                (status, now_iso(), confirmation_id)
            )
            return cursor.rowcount > 0
