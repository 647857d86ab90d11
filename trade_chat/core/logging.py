"""Structured logging with secret redaction.

Provides JSON-formatted logs with:
- Correlation IDs (request_id, session_id, portfolio_id)
- Automatic redaction for API keys, tokens, passwords and trading PINs
"""
import logging
import sys
import json
import re
from datetime import datetime, timezone

# === SECRET REDACTION PATTERNS ===
# These patterns match common secret formats and redact them from logs

SECRET_PATTERNS = [
    # JWT tokens (eyJ...)
    (
        r'\beyJ[a-zA-Z0-9_-]+\.eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\b',
        '***JWT_REDACTED***'
    ),
    # Generic tokens: token=value, bearer token, etc.
    (
        r'(?i)(bearer\s+|token["\']?\s*[:=]\s*["\']?)([a-zA-Z0-9_\-\.\/+]{20,})["\']?',
        r'\1***TOKEN_REDACTED***'
    ),
    # Password patterns
    (
        r'(?i)(password|passwd|pwd)["\']?\s*[:=]\s*["\']?([^\s"\']+)["\']?',
        r'\1=***PASSWORD_REDACTED***'
    ),
    # Trading PINs: pin=1234, "pin": "1234", new_pin: 5678
    (
        r'(?i)\b((?:new_|current_)?pin)["\']?\s*[:=]\s*["\']?(\d{3,12})["\']?',
        r'\1=***PIN_REDACTED***'
    ),
    # Environment variable format (FINNHUB_API_KEY=value, JWT_SECRET=value, etc.)
    (
        r'(?i)(FINNHUB_[A-Z_]*KEY|API_[A-Z_]*KEY|[A-Z_]*SECRET)\s*=\s*([a-zA-Z0-9_\-\.\/+]{16,})',
        r'\1=***REDACTED***'
    ),
    # API keys: api_key=value, token query params on quote URLs, etc.
    (
        r'(?i)(api[_-]?key|api[_-]?secret|secret[_-]?key|access[_-]?key)["\']?\s*[:=]\s*["\']?([a-zA-Z0-9_\-\.\/+]{16,})["\']?',
        r'\1=***REDACTED***'
    ),
]

# Compiled patterns for performance
_COMPILED_PATTERNS = [(re.compile(pattern), replacement) for pattern, replacement in SECRET_PATTERNS]


def redact_secrets(text: str) -> str:
    """Redact secrets from text using pattern matching.

    Args:
        text: Input text that may contain secrets

    Returns:
        Text with secrets replaced by redaction markers
    """
    if not text:
        return text

    result = str(text)
    for pattern, replacement in _COMPILED_PATTERNS:
        result = pattern.sub(replacement, result)

    return result


class SecretRedactionFilter(logging.Filter):
    """Logging filter that redacts secrets from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_secrets(str(record.msg))

        # Only strings are redacted so %d/%f format specifiers keep working
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: redact_secrets(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, (tuple, list)):
                record.args = tuple(
                    redact_secrets(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter with correlation IDs and elapsed time tracking."""

    CORRELATION_FIELDS = (
        "request_id",
        "session_id",
        "portfolio_id",
        "event",
        "elapsed_ms",
        "error_class",
    )

    def format(self, record):
        message = redact_secrets(record.getMessage())

        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": message,
            "module": record.module,
            "function": record.funcName,
        }

        for field in self.CORRELATION_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, ""):
                log_data[field] = value

        if record.exc_info:
            exception_text = self.formatException(record.exc_info)
            log_data["exception"] = redact_secrets(exception_text)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO"):
    """Setup logging with secret redaction.

    Configures structured JSON logging on the root logger, replacing any
    handlers already installed.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())
    handler.addFilter(SecretRedactionFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger (typically ``get_logger(__name__)``)."""
    return logging.getLogger(name)
