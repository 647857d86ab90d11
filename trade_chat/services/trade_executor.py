"""Trade executor: applies a confirmed trade to holding, ledger and totals.

All writes for one trade share a single SQLite transaction opened with
BEGIN IMMEDIATE, so the sufficiency check and the writes that depend on it
run while this connection holds the write lock. Holding updates are also
version-checked. Any failure rolls the whole trade back.
"""
import sqlite3
import time
from typing import Optional
from trade_chat.agents.schemas import Direction, Quote, TradeIntent, TradeResult
from trade_chat.db.connect import get_conn, is_busy_error
from trade_chat.db.repo.holdings_repo import HoldingsRepo
from trade_chat.db.repo.portfolios_repo import PortfoliosRepo
from trade_chat.db.repo.transactions_repo import TransactionsRepo
from trade_chat.services.portfolio_aggregate import PortfolioAggregateStore
from trade_chat.services.quotes import QuoteService, get_quote_service
from trade_chat.services.notifications.notifier import (
    ChangeNotifier,
    EVENT_PORTFOLIO_CHANGED,
    EVENT_TRADE_EXECUTED,
    get_notifier,
)
from trade_chat.core.error_codes import (
    ConcurrentModification,
    InsufficientHoldings,
    PersistenceFailure,
    TradeErrorException,
)
from trade_chat.core.logging import get_logger
from trade_chat.core.time import now_iso, parse_iso
from trade_chat.core.utils import to_decimal

logger = get_logger(__name__)


class TradeExecutor:
    """Executes confirmed trade intents for a portfolio owner."""

    def __init__(
        self,
        quote_service: Optional[QuoteService] = None,
        aggregate_store: Optional[PortfolioAggregateStore] = None,
        notifier: Optional[ChangeNotifier] = None,
        portfolios_repo: Optional[PortfoliosRepo] = None,
        holdings_repo: Optional[HoldingsRepo] = None,
        transactions_repo: Optional[TransactionsRepo] = None,
    ):
        self._quote_service = quote_service
        self._notifier = notifier
        self.portfolios_repo = portfolios_repo or PortfoliosRepo()
        self.holdings_repo = holdings_repo or HoldingsRepo()
        self.transactions_repo = transactions_repo or TransactionsRepo()
        self.aggregate_store = aggregate_store or PortfolioAggregateStore(
            self.portfolios_repo, self.holdings_repo
        )

    @property
    def quote_service(self) -> QuoteService:
        return self._quote_service or get_quote_service()

    @property
    def notifier(self) -> ChangeNotifier:
        return self._notifier or get_notifier()

    def execute(self, intent: TradeIntent, owner_id: str) -> TradeResult:
        """Execute ``intent`` for ``owner_id``.

        The quote is fetched fresh here, never reused from the confirmation
        estimate.

        Raises:
            QuoteUnavailable: provider failed, timed out or had no price
            InsufficientHoldings: SELL larger than the current holding
            PersistenceFailure: storage failed or the write lock timed out
        """
        started = time.monotonic()
        quote = self.quote_service.fetch_quote(intent.symbol)

        try:
            result = self._apply(intent, owner_id, quote)
        except TradeErrorException:
            raise
        except ConcurrentModification as e:
            logger.warning("Trade aborted on concurrent holding change: %s", e)
            raise PersistenceFailure("concurrent modification") from e
        except (sqlite3.Error, OverflowError) as e:
            # OverflowError: a value sqlite3 cannot bind as INTEGER
            reason = "lock timeout" if is_busy_error(e) else type(e).__name__
            logger.error(
                "Trade persistence failed for %s %d %s: %s",
                intent.direction.value, intent.quantity, intent.symbol, str(e)[:200],
                extra={"error_class": type(e).__name__},
            )
            raise PersistenceFailure(reason) from e

        self.aggregate_store.refresh(result.aggregate)
        self._publish(result)

        logger.info(
            "Trade executed: %s %d %s @ %s total=%s",
            result.direction.value, result.quantity, result.symbol,
            result.price, result.total_amount,
            extra={
                "portfolio_id": result.portfolio_id,
                "event": EVENT_TRADE_EXECUTED,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return result

    def _apply(self, intent: TradeIntent, owner_id: str, quote: Quote) -> TradeResult:
        with get_conn(immediate=True) as conn:
            portfolio = self.portfolios_repo.get_or_create(owner_id, conn=conn)
            portfolio_id = portfolio["portfolio_id"]

            holding = self.holdings_repo.get(portfolio_id, intent.symbol, conn=conn)

            if intent.direction == Direction.SELL:
                available = holding["quantity"] if holding else 0
                if available < intent.quantity:
                    raise InsufficientHoldings(intent.symbol, available, intent.quantity)
            elif holding is None:
                holding = self.holdings_repo.create_empty(
                    portfolio_id, intent.symbol, quote.company_name or intent.symbol,
                    str(quote.price), conn=conn,
                )

            total_amount = quote.price * intent.quantity
            executed_at = now_iso()
            transaction_id = self.transactions_repo.append(
                portfolio_id=portfolio_id,
                holding_ref=holding["holding_id"],
                symbol=intent.symbol,
                direction=intent.direction.value,
                quantity=intent.quantity,
                price_per_unit=str(quote.price),
                total_amount=str(total_amount),
                executed_at=executed_at,
                conn=conn,
            )

            new_quantity = holding["quantity"] + intent.signed_quantity()
            if new_quantity == 0:
                self.holdings_repo.delete(holding["holding_id"], holding["version"], conn=conn)
            else:
                self.holdings_repo.update_position(
                    holding_id=holding["holding_id"],
                    expected_version=holding["version"],
                    quantity=new_quantity,
                    last_price=str(quote.price),
                    last_price_change=str(quote.percent_change),
                    market_cap=str(to_decimal(quote.market_cap)),
                    volume=quote.volume,
                    conn=conn,
                )

            aggregate = self.aggregate_store.recompute(portfolio_id, conn=conn)

        return TradeResult(
            transaction_id=transaction_id,
            portfolio_id=portfolio_id,
            direction=intent.direction,
            symbol=intent.symbol,
            quantity=intent.quantity,
            price=quote.price,
            total_amount=total_amount,
            remaining_quantity=new_quantity,
            aggregate=aggregate,
            executed_at=parse_iso(executed_at),
        )

    def _publish(self, result: TradeResult) -> None:
        try:
            self.notifier.publish(result.portfolio_id, {
                "type": EVENT_TRADE_EXECUTED,
                "trade": result.model_dump(mode="json"),
            })
            self.notifier.publish(result.portfolio_id, {
                "type": EVENT_PORTFOLIO_CHANGED,
                "aggregate": result.aggregate.model_dump(mode="json"),
            })
        except Exception as e:
            # Trade is already committed
            logger.error("Change notification failed for %s: %s", result.portfolio_id, str(e)[:200])
