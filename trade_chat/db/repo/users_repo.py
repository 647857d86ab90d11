"""Users repository (trading PIN storage)."""
import sqlite3
from typing import Optional
from trade_chat.db.connect import use_conn
from trade_chat.core.time import now_iso


class UsersRepo:
    """Repository for users and their hashed trading PIN."""

    def ensure_user(self, user_id: str, conn: sqlite3.Connection = None) -> None:
        """Create the user row if missing."""
        now = now_iso()
        with use_conn(conn) as c:
            c.execute(
                """
                INSERT OR IGNORE INTO users (user_id, pin_hash, created_at, updated_at)
                VALUES (?, NULL, ?, ?)
                """,
                (user_id, now, now)
            )

    def set_pin_hash(self, user_id: str, pin_hash: str, conn: sqlite3.Connection = None) -> None:
        now = now_iso()
        with use_conn(conn) as c:
            c.execute(
                """
                INSERT INTO users (user_id, pin_hash, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET pin_hash = excluded.pin_hash,
                                                   updated_at = excluded.updated_at
                """,
                (user_id, pin_hash, now, now)
            )

    def get_pin_hash(self, user_id: str, conn: sqlite3.Connection = None) -> Optional[str]:
        with use_conn(conn) as c:
            row = c.execute(
                "SELECT pin_hash FROM users WHERE user_id = ?",
                (user_id,)
            ).fetchone()
            return row["pin_hash"] if row else None
