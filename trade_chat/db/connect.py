"""Database connection management."""
import sqlite3
import os
from pathlib import Path
from contextlib import contextmanager
from typing import Generator
from trade_chat.core.config import get_settings
from trade_chat.core.logging import get_logger
from trade_chat.core.time import now_iso

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# DB busy/lock error substrings
BUSY_ERRORS = ("database is locked", "database table is locked")


def is_busy_error(exc: Exception) -> bool:
    """True for SQLite lock-timeout errors."""
    return isinstance(exc, sqlite3.OperationalError) and any(
        b in str(exc).lower() for b in BUSY_ERRORS
    )


def _parse_db_url(url: str) -> str:
    """Parse DATABASE_URL to SQLite file path."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "")
    elif url.startswith("sqlite://"):
        return url.replace("sqlite://", "")
    else:
        return url


def get_db_path() -> str:
    """Absolute path of the configured SQLite file."""
    return os.path.abspath(_parse_db_url(get_settings().database_url))


@contextmanager
def get_conn(immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
    """Get database connection context manager.

    Commits on success and rolls back on any exception. With
    ``immediate=True`` the transaction is opened with ``BEGIN IMMEDIATE`` so
    the reserved write lock is held before the first read; waiting for it is
    bounded by ``DB_TIMEOUT_SECONDS``.
    """
    settings = get_settings()
    db_path = _parse_db_url(settings.database_url)

    db_dir = os.path.dirname(db_path)
    if db_dir:
        os.makedirs(db_dir, exist_ok=True)

    timeout = settings.db_timeout_seconds
    conn = sqlite3.connect(db_path, timeout=timeout, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {int(timeout * 1000)}")
        conn.execute("PRAGMA foreign_keys = ON")
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def use_conn(conn: sqlite3.Connection = None) -> Generator[sqlite3.Connection, None, None]:
    """Yield ``conn`` when the caller already owns a transaction, else open one.

    Repositories accept an optional connection so several writes can share
    one transaction; commit/rollback stays with whoever opened it.
    """
    if conn is not None:
        yield conn
    else:
        with get_conn() as own_conn:
            yield own_conn


REQUIRED_COLUMNS = {
    "users": ["user_id", "pin_hash", "created_at", "updated_at"],
    "portfolios": ["portfolio_id", "owner_id", "total_holding_value",
                   "active_holding_count", "created_at", "updated_at"],
    "holdings": ["holding_id", "portfolio_id", "symbol", "name", "quantity",
                 "last_price", "last_price_change", "market_cap", "volume", "version"],
    "transactions": ["transaction_id", "portfolio_id", "holding_ref", "symbol", "direction",
                     "quantity", "price_per_unit", "total_amount", "executed_at"],
    "trade_confirmations": ["confirmation_id", "owner_id", "session_id", "direction", "symbol",
                            "quantity", "status", "pin_attempts", "issued_at"],
}


def validate_schema():
    """Check that critical tables have the expected columns.

    Returns (ok, missing) where ok=True when all critical tables/columns exist,
    and missing is a dict of table -> list of missing columns.
    """
    missing_map = {}
    try:
        with get_conn() as conn:
            cursor = conn.cursor()
            for table, expected_cols in REQUIRED_COLUMNS.items():
                cursor.execute(f"PRAGMA table_info({table})")
                actual_cols = {row[1] for row in cursor.fetchall()}
                if not actual_cols:
                    missing_map[table] = expected_cols
                    logger.warning("Schema validation: table '%s' does not exist", table)
                    continue
                missing = [c for c in expected_cols if c not in actual_cols]
                if missing:
                    missing_map[table] = missing
                    logger.warning("Schema validation: table '%s' missing columns: %s", table, missing)
    except sqlite3.Error as e:
        logger.warning("Schema validation failed: %s", str(e)[:200])
        return False, {"_error": [str(e)[:200]]}

    return len(missing_map) == 0, missing_map


def get_schema_status():
    """Return a dict describing current DB path, schema health, and migration status.

    Used by the health endpoint and startup logging.
    """
    result = {
        "db_path": get_db_path(),
        "schema_ok": False,
        "applied_migrations": [],
        "pending_migrations": [],
        "missing_columns": {},
    }

    try:
        with get_conn() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT filename FROM schema_migrations ORDER BY id ASC")
            result["applied_migrations"] = [row["filename"] for row in cursor.fetchall()]
    except sqlite3.OperationalError:
        # schema_migrations not created yet
        pass

    if MIGRATIONS_DIR.exists():
        all_files = sorted(f.name for f in MIGRATIONS_DIR.glob("*.sql"))
        applied_set = set(result["applied_migrations"])
        result["pending_migrations"] = [f for f in all_files if f not in applied_set]

    schema_ok, missing = validate_schema()
    result["schema_ok"] = schema_ok
    result["missing_columns"] = missing

    return result


def _split_statements(sql: str):
    """Strip ``--`` comments and split a migration into statements."""
    lines = []
    for line in sql.split('\n'):
        if '--' in line:
            line = line[:line.index('--')]
        lines.append(line)
    return [s.strip() for s in '\n'.join(lines).split(';') if s.strip()]


def init_db():
    """Initialize database with migrations (idempotent).

    Raises RuntimeError if migrations directory is not found.
    """
    if not MIGRATIONS_DIR.exists():
        raise RuntimeError(
            f"Migrations directory not found: {MIGRATIONS_DIR}. "
            "Cannot start without schema."
        )

    bootstrap_migration = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        filename TEXT NOT NULL UNIQUE,
        applied_at TEXT NOT NULL DEFAULT (datetime('now'))
    );
    """

    with get_conn() as conn:
        conn.executescript(bootstrap_migration)

        migration_files = sorted(f.name for f in MIGRATIONS_DIR.glob("*.sql"))

        cursor = conn.cursor()
        cursor.execute("SELECT filename FROM schema_migrations")
        applied_migrations = {row["filename"] for row in cursor.fetchall()}

        for migration_file in migration_files:
            if migration_file in applied_migrations:
                logger.debug(f"Migration {migration_file} already applied, skipping")
                continue

            migration_sql = (MIGRATIONS_DIR / migration_file).read_text()
            skipped_count = 0
            for statement in _split_statements(migration_sql):
                try:
                    conn.execute(statement)
                except sqlite3.OperationalError as e:
                    error_str = str(e).lower()
                    # Skip duplicate column/index errors (idempotency)
                    if "duplicate column" in error_str or "already exists" in error_str:
                        logger.debug(f"Skipping statement in {migration_file} (already exists): {statement[:50]}...")
                        skipped_count += 1
                    else:
                        logger.error(f"Failed to apply migration {migration_file}: {e}")
                        raise

            cursor.execute(
                "INSERT INTO schema_migrations (filename, applied_at) VALUES (?, ?)",
                (migration_file, now_iso())
            )
            conn.commit()

            if skipped_count:
                logger.info(f"Applied migration: {migration_file} ({skipped_count} statements skipped)")
            else:
                logger.info(f"Applied migration: {migration_file}")

    schema_ok, missing = validate_schema()
    logger.info(
        "DB: %s | Migrations: %d | Schema: %s",
        get_db_path(),
        len(migration_files),
        "OK" if schema_ok else f"MISSING {missing}"
    )
