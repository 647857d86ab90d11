"""PIN confirmation state machine.

    IDLE --trade intent--> AWAITING_PIN --correct PIN--> EXECUTING --> IDLE
    AWAITING_PIN --> IDLE on cancel (any non-numeric, non-trade message),
                     on expiry, or after MAX_PIN_ATTEMPTS mismatches.

A new trade intent while AWAITING_PIN replaces the pending one. EXECUTING
always returns to IDLE, whatever the executor does.

Each challenge also gets a row in trade_confirmations holding its status and
PIN attempt count. The session keeps the live pending trade; the row is what
a round-tripped echo is checked against, and a confirmation can be consumed
only once.
"""
import re
from datetime import datetime
from typing import Callable, Optional
from pydantic import ValidationError
from trade_chat.agents.schemas import ChatReply, ConfirmationState, PendingConfirmation, TradeIntent
from trade_chat.agents.trade_parser import parse_trade_intent
from trade_chat.agents import response_templates as templates
from trade_chat.db.repo import trade_confirmations_repo as confirmations
from trade_chat.db.repo.trade_confirmations_repo import TradeConfirmationsRepo
from trade_chat.db.repo.users_repo import UsersRepo
from trade_chat.services.quotes import QuoteService, get_quote_service
from trade_chat.services.session_store import SessionState
from trade_chat.services.trade_executor import TradeExecutor
from trade_chat.core.config import get_settings
from trade_chat.core.error_codes import QuoteUnavailable, TradeErrorCode, TradeErrorException
from trade_chat.core.ids import new_id
from trade_chat.core.logging import get_logger
from trade_chat.core.security import is_pin_format, verify_pin
from trade_chat.core.time import parse_iso, to_iso, utcnow
from trade_chat.core.utils import to_decimal

logger = get_logger(__name__)

# While a PIN is expected, any all-digit reply is a PIN attempt
_DIGITS = re.compile(r'[0-9]+')


def pending_from_row(row: dict) -> PendingConfirmation:
    return PendingConfirmation(
        confirmation_id=row["confirmation_id"],
        intent=TradeIntent(direction=row["direction"], symbol=row["symbol"], quantity=row["quantity"]),
        issued_at=parse_iso(row["issued_at"]),
        owner_session_id=row["session_id"],
        estimate_price=to_decimal(row["estimate_price"]) if row.get("estimate_price") else None,
    )


class ConfirmationStateMachine:
    """Drives one session's pending trade through the PIN challenge."""

    def __init__(
        self,
        executor: TradeExecutor,
        quote_service: Optional[QuoteService] = None,
        users_repo: Optional[UsersRepo] = None,
        confirmations_repo: Optional[TradeConfirmationsRepo] = None,
        fallback_reply: Optional[Callable[[str, str], str]] = None,
        ttl_seconds: Optional[int] = None,
        max_pin_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        settings = get_settings()
        self.executor = executor
        self._quote_service = quote_service
        self.users_repo = users_repo or UsersRepo()
        self.confirmations_repo = confirmations_repo or TradeConfirmationsRepo()
        self.fallback_reply = fallback_reply
        self.ttl_seconds = ttl_seconds or settings.pending_trade_ttl_seconds
        self.max_pin_attempts = max_pin_attempts or settings.max_pin_attempts
        self._clock = clock

    @property
    def quote_service(self) -> QuoteService:
        return self._quote_service or get_quote_service()

    def is_expired(self, pending: PendingConfirmation) -> bool:
        age = (self._clock() - pending.issued_at).total_seconds()
        return age < 0 or age > self.ttl_seconds

    def handle(self, state: SessionState, message: str, pin: Optional[str] = None) -> ChatReply:
        """Process one turn for ``state``. Caller holds ``state.lock``."""
        message = (message or "").strip()

        expired = False
        if state.state == ConfirmationState.AWAITING_PIN and self.is_expired(state.pending):
            logger.info("Pending trade expired", extra={"session_id": state.session_id})
            self._close(state, confirmations.EXPIRED)
            expired = True

        if pin is not None:
            return self._on_pin(state, pin.strip(), expired)

        intent = parse_trade_intent(message)
        if intent is not None:
            return self._on_intent(state, intent)

        if _DIGITS.fullmatch(message):
            return self._on_pin(state, message, expired)

        cancelled = state.state == ConfirmationState.AWAITING_PIN
        if cancelled:
            logger.info("Pending trade cancelled by message", extra={"session_id": state.session_id})
            self._close(state, confirmations.CANCELLED)
        return self._fall_through(state, message, cancelled)

    def restore(self, state: SessionState, echo: dict) -> bool:
        """Rebuild a pending confirmation from an echo sent back by a stateless caller.

        The echo only names a confirmation. The trade, issue time and PIN
        attempt count come from the stored record, which must still be
        pending and belong to this owner and session. Returns True if the
        session now awaits a PIN.
        """
        try:
            claimed = PendingConfirmation.model_validate(echo)
        except ValidationError as e:
            logger.warning("Ignoring malformed pending_trade_echo: %s", str(e)[:200],
                           extra={"session_id": state.session_id})
            return False

        row = self.confirmations_repo.get(claimed.confirmation_id)
        if row is None or row["owner_id"] != state.owner_id or row["session_id"] != state.session_id:
            logger.warning("Ignoring pending_trade_echo for an unknown confirmation",
                           extra={"session_id": state.session_id})
            return False
        if row["status"] != confirmations.PENDING:
            logger.info("Ignoring pending_trade_echo for a %s confirmation", row["status"].lower(),
                        extra={"session_id": state.session_id})
            return False

        pending = pending_from_row(row)
        if claimed.intent != pending.intent or claimed.issued_at != pending.issued_at:
            logger.warning("Ignoring pending_trade_echo that does not match its confirmation",
                           extra={"session_id": state.session_id})
            return False

        state.set_pending(pending, pin_attempts=row["pin_attempts"])
        return True

    def discard(self, pending: PendingConfirmation) -> None:
        """Cancel a pending confirmation whose session is going away."""
        self.confirmations_repo.close(pending.confirmation_id, confirmations.CANCELLED)

    def _close(self, state: SessionState, status: str) -> None:
        self.confirmations_repo.close(state.pending.confirmation_id, status)
        state.clear()

    def _on_intent(self, state: SessionState, intent: TradeIntent) -> ChatReply:
        if state.pending is not None:
            logger.info("Pending trade replaced by new request", extra={"session_id": state.session_id})
            self._close(state, confirmations.CANCELLED)
        state.clear()

        try:
            quote = self.quote_service.fetch_quote(intent.symbol)
        except QuoteUnavailable as e:
            return ChatReply(
                reply_text=templates.quote_unavailable(intent.symbol),
                error_code=e.error_code.value,
            )

        pending = PendingConfirmation(
            confirmation_id=new_id("cnf_"),
            intent=intent,
            issued_at=self._clock(),
            owner_session_id=state.session_id,
            estimate_price=quote.price,
        )
        self.confirmations_repo.create_pending(
            confirmation_id=pending.confirmation_id,
            owner_id=state.owner_id,
            session_id=state.session_id,
            direction=intent.direction.value,
            symbol=intent.symbol,
            quantity=intent.quantity,
            estimate_price=str(quote.price),
            issued_at=to_iso(pending.issued_at),
        )
        state.set_pending(pending)
        return ChatReply(
            reply_text=templates.trade_challenge(intent, quote.price, quote.company_name),
            awaiting_pin=True,
            pending_trade_echo=state.pending_echo(),
        )

    def _on_pin(self, state: SessionState, pin: str, expired: bool) -> ChatReply:
        if state.state != ConfirmationState.AWAITING_PIN:
            return ChatReply(
                reply_text=templates.no_pending_trade(),
                error_code=TradeErrorCode.CONFIRMATION_EXPIRED.value if expired else None,
            )

        pin_hash = self.users_repo.get_pin_hash(state.owner_id)
        if not pin_hash:
            self._close(state, confirmations.CANCELLED)
            return ChatReply(
                reply_text=templates.pin_not_set(),
                error_code=TradeErrorCode.PIN_NOT_SET.value,
            )

        if not (is_pin_format(pin) and verify_pin(pin, pin_hash)):
            return self._on_pin_mismatch(state)

        # Single use: another session may have restored and consumed the same confirmation
        if not self.confirmations_repo.close(state.pending.confirmation_id, confirmations.CONFIRMED):
            logger.warning("Confirmation already closed", extra={"session_id": state.session_id})
            state.clear()
            return ChatReply(reply_text=templates.no_pending_trade())

        return self._execute(state)

    def _on_pin_mismatch(self, state: SessionState) -> ChatReply:
        attempts = self.confirmations_repo.record_attempt(state.pending.confirmation_id)
        if attempts is None:
            state.clear()
            return ChatReply(reply_text=templates.no_pending_trade())

        state.pin_attempts = attempts
        attempts_left = self.max_pin_attempts - attempts
        logger.info(
            "PIN mismatch (%d of %d)", attempts, self.max_pin_attempts,
            extra={"session_id": state.session_id},
        )
        if attempts_left <= 0:
            self._close(state, confirmations.CANCELLED)
            return ChatReply(
                reply_text=templates.pin_attempts_exhausted(),
                error_code=TradeErrorCode.PIN_MISMATCH.value,
            )
        return ChatReply(
            reply_text=templates.pin_mismatch(attempts_left),
            awaiting_pin=True,
            pending_trade_echo=state.pending_echo(),
            error_code=TradeErrorCode.PIN_MISMATCH.value,
        )

    def _execute(self, state: SessionState) -> ChatReply:
        intent = state.pending.intent
        state.state = ConfirmationState.EXECUTING
        try:
            result = self.executor.execute(intent, state.owner_id)
        except TradeErrorException as e:
            logger.info(
                "Trade rejected: %s", e.error_code.value,
                extra={"session_id": state.session_id, "error_class": type(e).__name__},
            )
            return ChatReply(
                reply_text=templates.trade_failed(e.message),
                error_code=e.error_code.value,
            )
        finally:
            state.clear()

        return ChatReply(reply_text=templates.trade_executed(result), trade_result=result)

    def _fall_through(self, state: SessionState, message: str, cancelled: bool) -> ChatReply:
        if self.fallback_reply:
            text = self.fallback_reply(state.owner_id, message)
        else:
            text = templates.TRADE_SYNTAX_HINT
        if cancelled:
            text = f"{templates.trade_cancelled()}\n{text}"
        return ChatReply(reply_text=text, handled=False)
