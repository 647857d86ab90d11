"""Strict Pydantic schemas for the trade chat domain."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

# Upper bound on shares per trade; keeps quantities and totals within SQLite INTEGER range
MAX_TRADE_QUANTITY = 1_000_000_000


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class ConfirmationState(str, Enum):
    IDLE = "IDLE"
    AWAITING_PIN = "AWAITING_PIN"
    EXECUTING = "EXECUTING"


class TradeIntent(BaseModel):
    """Parsed trade instruction. Immutable once parsed."""
    model_config = ConfigDict(frozen=True)

    direction: Direction
    symbol: str = Field(..., pattern=r"^[A-Z]{1,5}$")
    quantity: int = Field(..., gt=0, le=MAX_TRADE_QUANTITY)

    def signed_quantity(self) -> int:
        return self.quantity if self.direction == Direction.BUY else -self.quantity


class Quote(BaseModel):
    """Point-in-time price snapshot for one symbol."""
    symbol: str
    price: Decimal = Field(..., ge=0)
    percent_change: Decimal = Decimal("0")
    volume: int = 0
    market_cap: Decimal = Decimal("0")
    company_name: Optional[str] = None
    high: Optional[Decimal] = None
    low: Optional[Decimal] = None
    open: Optional[Decimal] = None
    previous_close: Optional[Decimal] = None
    as_of: datetime


class PendingConfirmation(BaseModel):
    """A parsed trade waiting for PIN approval within one session."""
    model_config = ConfigDict(frozen=True)

    confirmation_id: str
    intent: TradeIntent
    issued_at: datetime
    owner_session_id: str
    estimate_price: Optional[Decimal] = None

    @field_validator("issued_at")
    @classmethod
    def issued_at_utc(cls, v: datetime) -> datetime:
        # Naive timestamps are UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class Holding(BaseModel):
    holding_id: str
    portfolio_id: str
    symbol: str
    name: Optional[str] = None
    quantity: int = Field(..., ge=0)
    last_price: Decimal
    last_price_change: Decimal = Decimal("0")
    market_cap: Decimal = Decimal("0")
    volume: int = 0
    version: int = 0

    @property
    def market_value(self) -> Decimal:
        return self.last_price * self.quantity


class Transaction(BaseModel):
    transaction_id: str
    portfolio_id: str
    holding_ref: str
    symbol: str
    direction: Direction
    quantity: int = Field(..., gt=0)
    price_per_unit: Decimal = Field(..., ge=0)
    total_amount: Decimal
    executed_at: datetime


class PortfolioAggregate(BaseModel):
    portfolio_id: str
    total_holding_value: Decimal = Decimal("0")
    active_holding_count: int = 0
    updated_at: Optional[datetime] = None


class TradeResult(BaseModel):
    """Outcome of one executed trade."""
    transaction_id: str
    portfolio_id: str
    direction: Direction
    symbol: str
    quantity: int
    price: Decimal
    total_amount: Decimal
    remaining_quantity: int
    aggregate: PortfolioAggregate
    executed_at: datetime


class ChatReply(BaseModel):
    """What the conversation boundary hands back to the UI layer."""
    reply_text: str
    awaiting_pin: bool = False
    handled: bool = True
    pending_trade_echo: Optional[Dict[str, Any]] = None
    trade_result: Optional[TradeResult] = None
    error_code: Optional[str] = None

    @field_validator("reply_text")
    @classmethod
    def reply_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("reply_text must not be empty")
        return v
