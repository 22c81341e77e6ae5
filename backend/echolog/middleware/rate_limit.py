"""
EchoLog Backend — Rate Limiting Middleware
============================================

What:  Per-client sliding-window limit of RATE_LIMIT_REQUESTS requests per
       RATE_LIMIT_WINDOW seconds.
How:   Each client address keeps a deque of request timestamps; entries older
       than the window are dropped on every request. Over the limit, the
       request is answered with the standard error envelope (429) and a
       Retry-After header, without reaching the routes.

State is in-process memory: with several workers each one counts separately.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from echolog.config import settings
from echolog.exceptions import RateLimitExceededError
from echolog.middleware.logging import client_address
from echolog.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}
SWEEP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
        clock=time.monotonic,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._seen = 0

    def _retry_after(self, client: str, now: float) -> Optional[int]:
        """Records the hit, or returns seconds to wait when over the limit."""
        hits = self._hits.setdefault(client, deque())
        horizon = now - self.window_seconds
        while hits and hits[0] <= horizon:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return int(hits[0] + self.window_seconds - now) + 1

        hits.append(now)
        self._seen += 1
        if self._seen % SWEEP_EVERY == 0:
            self._sweep(horizon)
        return None

    def _sweep(self, horizon: float) -> None:
        idle = [c for c, hits in self._hits.items() if not hits or hits[-1] <= horizon]
        for client in idle:
            del self._hits[client]
        if idle:
            logger.debug("Dropped rate-limit state for %d idle clients", len(idle))

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client = client_address(request)
        retry_after = self._retry_after(client, self.clock())
        if retry_after is None:
            return await call_next(request)

        exc = RateLimitExceededError(retry_after=retry_after)
        logger.warning(
            "Rate limit exceeded for %s: %d requests in %ds",
            client,
            self.max_requests,
            self.window_seconds,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.error_code,
                "message": exc.message,
                "details": None,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(retry_after)},
        )
