"""
EchoLog Backend — Request ID Middleware
=========================================

What:  Gives every request a correlation id, stored in a ContextVar for log
       lines and error envelopes, and echoed in the X-Request-ID header.
How:   An inbound X-Request-ID (e.g. set by the frontend) is reused when it
       looks sane; otherwise a short random id is generated.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_ACCEPTED_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        inbound = request.headers.get(REQUEST_ID_HEADER, "")
        rid = inbound if _ACCEPTED_ID.match(inbound) else new_request_id()

        request_id_var.set(rid)
        request.state.request_id = rid
        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
