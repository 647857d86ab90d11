"""Structured error codes for trade execution failures.

Provides semantic error codes that can be used for:
- User-facing error messages with remediation
- Monitoring and alerting
- Error categorization and analysis
"""
from enum import Enum


class TradeErrorCode(str, Enum):
    """Error codes for the trade chat flow."""

    # Market data
    QUOTE_UNAVAILABLE = "QUOTE_UNAVAILABLE"

    # Business rules
    INSUFFICIENT_HOLDINGS = "INSUFFICIENT_HOLDINGS"
    PORTFOLIO_NOT_FOUND = "PORTFOLIO_NOT_FOUND"

    # Confirmation
    PIN_MISMATCH = "PIN_MISMATCH"
    PIN_NOT_SET = "PIN_NOT_SET"
    CONFIRMATION_EXPIRED = "CONFIRMATION_EXPIRED"

    # Storage
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"

    # Generic errors
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class TradeErrorException(Exception):
    """Exception with structured error code and message."""

    def __init__(
        self,
        error_code: TradeErrorCode,
        message: str,
        remediation: str = None,
        details: dict = None
    ):
        """Initialize trade error exception.

        Args:
            error_code: Structured error code
            message: Human-readable error message
            remediation: Optional remediation steps
            details: Optional additional error details
        """
        self.error_code = error_code
        self.message = message
        self.remediation = remediation or get_error_message(error_code)["remediation"]
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.error_code.value,
            "message": self.message,
            "remediation": self.remediation,
            "details": self.details
        }


class QuoteUnavailable(TradeErrorException):
    """Quote provider failed, timed out, or returned no price."""

    def __init__(self, symbol: str, reason: str = None):
        self.symbol = symbol
        super().__init__(
            TradeErrorCode.QUOTE_UNAVAILABLE,
            f"Could not get a current price for {symbol}.",
            details={"symbol": symbol, "reason": reason},
        )


class InsufficientHoldings(TradeErrorException):
    """SELL quantity exceeds the shares held."""

    def __init__(self, symbol: str, available: int, requested: int):
        self.symbol = symbol
        self.available = available
        self.requested = requested
        super().__init__(
            TradeErrorCode.INSUFFICIENT_HOLDINGS,
            f"Insufficient shares. You only have {available} shares of {symbol} "
            f"but requested to sell {requested}.",
            details={"symbol": symbol, "available": available, "requested": requested,
                     "shortfall": requested - available},
        )


class PortfolioNotFound(TradeErrorException):
    """Owner has no portfolio."""

    def __init__(self, owner_id: str):
        super().__init__(
            TradeErrorCode.PORTFOLIO_NOT_FOUND,
            "No portfolio found for this account.",
            details={"owner_id": owner_id},
        )


class PersistenceFailure(TradeErrorException):
    """Storage failed or timed out; the whole trade was rolled back."""

    def __init__(self, reason: str = None):
        super().__init__(
            TradeErrorCode.PERSISTENCE_FAILURE,
            "The trade could not be completed. No changes were made to your portfolio.",
            details={"reason": reason} if reason else None,
        )


class ConcurrentModification(Exception):
    """Optimistic version check on a holding failed."""
    pass


# Error code to user-friendly message mapping
ERROR_CODE_MESSAGES = {
    TradeErrorCode.QUOTE_UNAVAILABLE: {
        "message": "Unable to fetch a current quote for this symbol",
        "remediation": "Check the symbol and try again in a moment."
    },
    TradeErrorCode.INSUFFICIENT_HOLDINGS: {
        "message": "Not enough shares to sell",
        "remediation": "Reduce the quantity to at most the shares you hold."
    },
    TradeErrorCode.PORTFOLIO_NOT_FOUND: {
        "message": "Portfolio not found",
        "remediation": "Create a portfolio before trading."
    },
    TradeErrorCode.PIN_MISMATCH: {
        "message": "Incorrect PIN",
        "remediation": "Enter your trading PIN to confirm, or send any other message to cancel."
    },
    TradeErrorCode.PIN_NOT_SET: {
        "message": "No trading PIN configured",
        "remediation": "Set a trading PIN with PUT /api/v1/users/me/pin."
    },
    TradeErrorCode.CONFIRMATION_EXPIRED: {
        "message": "The pending trade expired",
        "remediation": "Restate the trade to get a fresh quote."
    },
    TradeErrorCode.PERSISTENCE_FAILURE: {
        "message": "Trade could not be saved",
        "remediation": "Try again. No partial changes were kept."
    },
    TradeErrorCode.UNKNOWN_ERROR: {
        "message": "An unexpected error occurred",
        "remediation": "Check system logs for details."
    }
}


def get_error_message(error_code: TradeErrorCode) -> dict:
    """Get user-friendly message and remediation for error code."""
    return ERROR_CODE_MESSAGES.get(
        error_code,
        {
            "message": "An error occurred",
            "remediation": "Contact support if the issue persists."
        }
    )
