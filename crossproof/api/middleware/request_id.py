"""
Request ID middleware for request correlation.

- Accepts X-Request-ID from the client or generates one
- Echoes it in the response headers
- Sets the context var so every log line of the request carries it
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from crossproof.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Assign a request ID and log each request with its duration."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            start = time.perf_counter()
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "%s %s -> %d", request.method, request.url.path, response.status_code,
                extra={"duration_ms": round((time.perf_counter() - start) * 1000, 1)},
            )
            return response
        finally:
            request_id_var.reset(token)
