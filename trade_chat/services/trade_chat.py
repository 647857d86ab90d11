"""Conversation boundary for trade chat.

Receives (session_id, owner_id, message, optional PIN, optional echo of a
pending trade) and returns a ChatReply for the UI to render.
"""
import time
from typing import Optional
from trade_chat.agents.schemas import ChatReply
from trade_chat.agents.trade_parser import parse_quote_query
from trade_chat.agents import response_templates as templates
from trade_chat.db.repo.portfolios_repo import PortfoliosRepo
from trade_chat.db.repo.users_repo import UsersRepo
from trade_chat.services.confirmation import ConfirmationStateMachine
from trade_chat.services.portfolio_aggregate import PortfolioAggregateStore
from trade_chat.services.quotes import QuoteService, get_quote_service
from trade_chat.services.session_store import SessionStore
from trade_chat.services.trade_executor import TradeExecutor
from trade_chat.services.notifications.notifier import ChangeNotifier
from trade_chat.core.error_codes import QuoteUnavailable
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)


class TradeChatService:
    """Wires the session store, confirmation state machine and executor."""

    def __init__(
        self,
        quote_service: Optional[QuoteService] = None,
        notifier: Optional[ChangeNotifier] = None,
        session_store: Optional[SessionStore] = None,
        aggregate_store: Optional[PortfolioAggregateStore] = None,
        users_repo: Optional[UsersRepo] = None,
        portfolios_repo: Optional[PortfoliosRepo] = None,
    ):
        self._quote_service = quote_service
        self.portfolios_repo = portfolios_repo or PortfoliosRepo()
        self.users_repo = users_repo or UsersRepo()
        self.sessions = session_store or SessionStore()
        self.aggregate_store = aggregate_store or PortfolioAggregateStore(self.portfolios_repo)
        self.executor = TradeExecutor(
            quote_service=quote_service,
            aggregate_store=self.aggregate_store,
            notifier=notifier,
            portfolios_repo=self.portfolios_repo,
        )
        self.state_machine = ConfirmationStateMachine(
            executor=self.executor,
            quote_service=quote_service,
            users_repo=self.users_repo,
            fallback_reply=self.conversation_reply,
        )

    def handle_message(
        self,
        session_id: str,
        owner_id: str,
        message: str,
        pin: Optional[str] = None,
        pending_trade_echo: Optional[dict] = None,
    ) -> ChatReply:
        started = time.monotonic()
        state, created = self.sessions.get_or_create(session_id, owner_id)

        with state.lock:
            if created and pending_trade_echo:
                self.state_machine.restore(state, pending_trade_echo)
            reply = self.state_machine.handle(state, message, pin=pin)

        logger.info(
            "Chat turn handled (trade=%s, awaiting_pin=%s, error=%s)",
            reply.trade_result is not None, reply.awaiting_pin, reply.error_code,
            extra={
                "session_id": session_id,
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return reply

    def end_session(self, session_id: str, owner_id: str) -> bool:
        return self.sessions.end_session(session_id, owner_id, on_discard=self.state_machine.discard)

    @property
    def quote_service(self) -> QuoteService:
        return self._quote_service or get_quote_service()

    def conversation_reply(self, owner_id: str, message: str) -> str:
        """Reply for messages that are neither trades nor PIN input.

        Price questions get a quote; anything else gets the portfolio summary.
        """
        symbol = parse_quote_query(message)
        if symbol is not None:
            try:
                return templates.quote_reply(self.quote_service.fetch_quote(symbol))
            except QuoteUnavailable:
                return templates.quote_unavailable(symbol)
        return self.portfolio_reply(owner_id)

    def portfolio_reply(self, owner_id: str) -> str:
        """Portfolio-aware help text."""
        portfolio = self.portfolios_repo.get_or_create(owner_id)
        portfolio_id = portfolio["portfolio_id"]
        return templates.portfolio_summary(
            self.aggregate_store.current_aggregate(portfolio_id),
            self.aggregate_store.holdings(portfolio_id),
        )


_service: Optional[TradeChatService] = None


def get_trade_chat_service() -> TradeChatService:
    """Get trade chat service singleton."""
    global _service
    if _service is None:
        _service = TradeChatService()
    return _service


def reset_trade_chat_service() -> None:
    """Drop the singleton (sessions and aggregate cache). Used by tests."""
    global _service
    _service = None
