"""
Quotedesk API
FastAPI backend for catalog-driven quote pricing: catalog index, line-item
ledger, totals and quote status history on async SQLAlchemy.
"""
import os
import logging
import time
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from quotedesk.services.errors import (
    CatalogLoadError,
    InvalidMethodError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidStatusError,
    ItemNotFoundError,
    QuoteEngineError,
    QuoteNotFoundError,
)
from quotedesk.services.logging_config import setup_logging
from quotedesk.services.middleware import QuoteRequestMiddleware

# Load .env in dev (no-op when the file is missing)
load_dotenv()

_log_level = os.getenv("LOG_LEVEL", "INFO")
_json_logs = os.getenv("LOG_FORMAT", "json").lower() != "text"
setup_logging(level=_log_level, json_output=_json_logs)
logger = logging.getLogger("quotedesk-api")

_PROCESS_START = time.monotonic()

if not os.getenv("DATABASE_URL"):
    logger.warning("MISSING env var: DATABASE_URL, running in dev mode")


@asynccontextmanager
async def lifespan(app: FastAPI):
    from quotedesk.db import engine, init_db
    await init_db()
    yield
    await engine.dispose()


app = FastAPI(
    title="Quotedesk API",
    version="1.0.0",
    description="Catalog-driven quote pricing and quote lifecycle tracking",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Engine errors → HTTP status
# ---------------------------------------------------------------------------
_ERROR_STATUS = (
    (CatalogLoadError, 503),
    (QuoteNotFoundError, 404),
    (ItemNotFoundError, 404),
    (InvalidPriceError, 422),
    (InvalidQuantityError, 422),
    (InvalidMethodError, 422),
    (InvalidStatusError, 422),
)


def error_status(exc: QuoteEngineError) -> int:
    for exc_type, status_code in _ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code
    return 400


@app.exception_handler(QuoteEngineError)
async def quote_engine_error_handler(request: Request, exc: QuoteEngineError):
    status_code = error_status(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


# ---------------------------------------------------------------------------
# Security Headers Middleware
# ---------------------------------------------------------------------------
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to every response."""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# ---------------------------------------------------------------------------
# CORS: restricted to allowed origins from env
# ---------------------------------------------------------------------------
_cors_default = "http://localhost:3000,http://localhost:8000"
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", _cors_default).split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Requested-With", "X-Team-Id", "X-Request-ID"],
)
app.add_middleware(SecurityHeadersMiddleware)
# Request tracing is added last so it wraps all other middleware
app.add_middleware(QuoteRequestMiddleware)

# Routers
from quotedesk.api.catalog_routes import router as catalog_router
from quotedesk.api.quote_routes import router as quote_router

app.include_router(catalog_router)
app.include_router(quote_router)


@app.get("/health")
async def health_check():
    return {
        "status": "active",
        "version": app.version,
        "db_configured": bool(os.getenv("DATABASE_URL")),
        "uptime_seconds": round(time.monotonic() - _PROCESS_START, 1),
    }
