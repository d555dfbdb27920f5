import logging
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from moodjournal.core.logging import request_id_ctx_var, latency_bucket_ms

logger = logging.getLogger("moodjournal.http")

# Probes hit these every few seconds; keep them out of INFO logs
_QUIET_PATHS = {"/healthz", "/readyz"}


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request_id for the lifetime of each request and log completion."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or uuid4().hex
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            response.headers[self.header_name] = rid
            level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
            logger.log(
                level,
                "request.complete",
                extra={
                    "request_id": rid,
                    "path": request.url.path,
                    "method": request.method,
                    "status": response.status_code,
                    "latency_bucket": latency_bucket_ms((time.perf_counter() - start) * 1000),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)
