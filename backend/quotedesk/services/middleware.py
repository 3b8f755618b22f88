"""
Per-request tracing for the quote API.

Every response carries X-Request-ID (reused from the caller when present) and
X-Process-Time. Each request except /health emits one access line tagged with
the team and, for quote routes, the quote id. Server errors and requests slower
than SLOW_REQUEST_MS are logged at WARNING.
"""
import logging
import os
import re
import time
import uuid
from typing import Optional
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("quotedesk-api.access")

SKIP_LOG_PATHS = {"/health"}
SLOW_REQUEST_MS = float(os.getenv("SLOW_REQUEST_MS", "1000"))

_QUOTE_PATH = re.compile(r"^/api/quotes/(?P<quote_id>[^/]+)")


def quote_id_from_path(path: str) -> Optional[str]:
    match = _QUOTE_PATH.match(path)
    return match.group("quote_id") if match else None


class QuoteRequestMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, slow_ms: Optional[float] = None):
        super().__init__(app)
        self.slow_ms = SLOW_REQUEST_MS if slow_ms is None else slow_ms

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        team_id = request.headers.get("X-Team-Id") or None
        request.state.request_id = request_id
        request.state.team_id = team_id

        start_time = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(duration_ms)

        path = request.url.path
        if path in SKIP_LOG_PATHS:
            return response

        slow = duration_ms >= self.slow_ms
        level = logging.WARNING if response.status_code >= 500 or slow else logging.INFO
        logger.log(
            level,
            f"{request.method} {path} -> {response.status_code} in {duration_ms}ms"
            + (" (slow)" if slow else ""),
            extra={
                "http_method": request.method,
                "http_path": path,
                "http_status": response.status_code,
                "request_id": request_id,
                "team_id": team_id,
                "quote_id": quote_id_from_path(path),
                "duration_ms": duration_ms,
            },
        )
        return response
