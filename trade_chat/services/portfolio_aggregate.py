"""Portfolio aggregate store.

Totals are derived state: total_holding_value is the sum of
quantity * last_price over current holdings and active_holding_count is the
number of holdings with quantity > 0. Only the trade executor writes them,
inside its own transaction; readers may be served from a cache that the
executor refreshes after each commit.
"""
import sqlite3
import threading
from decimal import Decimal
from typing import Dict, List
from trade_chat.agents.schemas import Holding, PortfolioAggregate
from trade_chat.db.repo.holdings_repo import HoldingsRepo
from trade_chat.db.repo.portfolios_repo import PortfoliosRepo
from trade_chat.core.error_codes import PortfolioNotFound
from trade_chat.core.logging import get_logger
from trade_chat.core.time import parse_iso
from trade_chat.core.utils import to_decimal

logger = get_logger(__name__)


def holding_from_row(row: dict) -> Holding:
    return Holding(
        holding_id=row["holding_id"],
        portfolio_id=row["portfolio_id"],
        symbol=row["symbol"],
        name=row.get("name"),
        quantity=row["quantity"],
        last_price=to_decimal(row["last_price"]),
        last_price_change=to_decimal(row.get("last_price_change")),
        market_cap=to_decimal(row.get("market_cap")),
        volume=row.get("volume") or 0,
        version=row.get("version") or 0,
    )


def aggregate_from_row(row: dict) -> PortfolioAggregate:
    return PortfolioAggregate(
        portfolio_id=row["portfolio_id"],
        total_holding_value=to_decimal(row["total_holding_value"]),
        active_holding_count=row["active_holding_count"],
        updated_at=parse_iso(row["updated_at"]) if row.get("updated_at") else None,
    )


class PortfolioAggregateStore:
    """Authoritative portfolio totals with a read-through cache."""

    def __init__(self, portfolios_repo: PortfoliosRepo = None, holdings_repo: HoldingsRepo = None):
        self.portfolios_repo = portfolios_repo or PortfoliosRepo()
        self.holdings_repo = holdings_repo or HoldingsRepo()
        self._cache: Dict[str, PortfolioAggregate] = {}
        self._lock = threading.Lock()

    def current_aggregate(self, portfolio_id: str) -> PortfolioAggregate:
        """Read totals, from cache when available."""
        with self._lock:
            cached = self._cache.get(portfolio_id)
        if cached is not None:
            return cached

        row = self.portfolios_repo.get_by_id(portfolio_id)
        if row is None:
            raise PortfolioNotFound(portfolio_id)
        aggregate = aggregate_from_row(row)
        with self._lock:
            self._cache[portfolio_id] = aggregate
        return aggregate

    def holdings(self, portfolio_id: str) -> List[Holding]:
        return [holding_from_row(r) for r in self.holdings_repo.list_for_portfolio(portfolio_id)]

    def recompute(self, portfolio_id: str, conn: sqlite3.Connection) -> PortfolioAggregate:
        """Recompute and write totals from holdings, within the caller's transaction.

        Not visible to readers until the caller commits and calls refresh().
        """
        rows = self.holdings_repo.list_for_portfolio(portfolio_id, conn=conn)
        total = sum(
            (to_decimal(r["last_price"]) * r["quantity"] for r in rows),
            Decimal("0"),
        )
        count = sum(1 for r in rows if r["quantity"] > 0)
        updated_at = self.portfolios_repo.update_aggregate(
            portfolio_id, str(total), count, conn=conn
        )
        return PortfolioAggregate(
            portfolio_id=portfolio_id,
            total_holding_value=total,
            active_holding_count=count,
            updated_at=parse_iso(updated_at),
        )

    def refresh(self, aggregate: PortfolioAggregate) -> None:
        """Install a committed aggregate in the cache."""
        with self._lock:
            self._cache[aggregate.portfolio_id] = aggregate
