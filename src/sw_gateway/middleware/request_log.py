"""Request logging middleware.

Logs every HTTP request with method, path, status code and latency, tagged
with a short request ID. The ID is stored on request.state for the
ApiResponse envelope and echoed back in the X-Request-ID header.

Log format:
    INFO [POST] /api/v1/trades/3f1c.../accept → 200 (18ms) req_a1b2c3d4e5f6
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("sw.request")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = f"req_{uuid.uuid4().hex[:12]}"

        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.exception(
                "[%s] %s → unhandled error (%.0fms) %s",
                request.method, request.url.path, elapsed_ms, request.state.request_id,
            )
            raise
        elapsed_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.state.request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response
