"""FastAPI application entry point."""
import contextvars
import logging
import traceback
import uuid
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from trade_chat.core.config import get_settings
from trade_chat.core.error_codes import TradeErrorCode, TradeErrorException
from trade_chat.core.logging import setup_logging, get_logger
from trade_chat.db.connect import init_db, get_conn, get_schema_status
from trade_chat.api.routes import chat, portfolio, quotes, users
from trade_chat.api.auth import router as auth_router

# Thread/async-safe request ID propagation via contextvars
_request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='')


class RequestIDFilter(logging.Filter):
    """Logging filter that injects request_id from contextvars into log records."""
    def filter(self, record):
        record.request_id = _request_id_ctx.get('')
        return True


settings = get_settings()
setup_logging(settings.log_level)
# Add the RequestIDFilter to root logger handlers so all log records get request_id
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIDFilter())
logger = get_logger(__name__)

settings.validate_quote_provider()
logger.info("quote_provider = %s", settings.quote_provider)

# Initialize database - FATAL on failure (server cannot serve without schema)
init_db()
_schema_status = get_schema_status()
logger.info(
    "Schema status: db=%s | applied=%d | pending=%d | ok=%s",
    _schema_status["db_path"],
    len(_schema_status["applied_migrations"]),
    len(_schema_status["pending_migrations"]),
    _schema_status["schema_ok"],
)

# HTTP status per business error code
ERROR_STATUS = {
    TradeErrorCode.PORTFOLIO_NOT_FOUND: 404,
    TradeErrorCode.INSUFFICIENT_HOLDINGS: 409,
    TradeErrorCode.QUOTE_UNAVAILABLE: 503,
    TradeErrorCode.PERSISTENCE_FAILURE: 503,
}


def _error_response(status_code: int, code: str, message: str, request_id: str,
                    remediation: str = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ERROR",
            "error": {
                "code": code,
                "message": message,
                "remediation": remediation,
                "request_id": request_id,
            },
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Middleware to add request_id to requests and responses."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        token = _request_id_ctx.set(request_id)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            # Last-resort catch so nothing escapes as an ExceptionGroup
            logger.error(
                "Unhandled in RequestIDMiddleware: %s | %s %s",
                str(exc)[:200], request.method, str(request.url.path),
                extra={"error_class": type(exc).__name__},
            )
            return _error_response(500, "INTERNAL_ERROR", "An internal error occurred", request_id)
        finally:
            _request_id_ctx.reset(token)


app = FastAPI(
    title="Trade Chat API",
    version="1.0.0"
)


def _request_id(request: Request) -> str:
    return getattr(request.state, 'request_id', str(uuid.uuid4())[:8])


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Structured JSON for HTTPException, keeping its status code."""
    response = _error_response(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail), _request_id(request))
    for key, value in (exc.headers or {}).items():
        response.headers[key] = value
    return response


@app.exception_handler(TradeErrorException)
async def trade_error_handler(request: Request, exc: TradeErrorException):
    return _error_response(
        ERROR_STATUS.get(exc.error_code, 400),
        exc.error_code.value,
        exc.message,
        _request_id(request),
        remediation=exc.remediation,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return JSON error response."""
    logger.error(
        "Unhandled exception: %s | %s %s\n%s",
        str(exc)[:200], request.method, str(request.url.path),
        traceback.format_exc()[-500:],
        extra={"error_class": type(exc).__name__},
    )
    return _error_response(500, "INTERNAL_ERROR", "An internal error occurred", _request_id(request))


# Request ID middleware (must be first)
app.add_middleware(RequestIDMiddleware)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"])
app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
app.include_router(portfolio.router, prefix="/api/v1/portfolio", tags=["portfolio"])
app.include_router(quotes.router, prefix="/api/v1/quotes", tags=["quotes"])
app.include_router(users.router, prefix="/api/v1/users", tags=["users"])


@app.get("/")
async def root():
    return {"message": "Trade Chat API"}


@app.get("/health")
def health():
    """DB readiness, schema health and migration status."""
    db_ok = False
    try:
        with get_conn() as conn:
            conn.execute("SELECT 1")
            db_ok = True
    except Exception as e:
        logger.warning("Health DB check failed: %s", str(e)[:200])

    schema_status = get_schema_status()
    ok = db_ok and schema_status["schema_ok"]
    return {
        "status": "ok" if ok else "degraded",
        "ok": ok,
        "db_ready": db_ok,
        "schema_ok": schema_status["schema_ok"],
        "migrations_needed": len(schema_status["pending_migrations"]) > 0,
        "pending_migrations": schema_status["pending_migrations"],
        "quote_provider": get_settings().quote_provider,
    }
