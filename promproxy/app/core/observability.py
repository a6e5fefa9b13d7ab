import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from typing import Callable, Awaitable
import logging
from promproxy.app.core.logging import request_id_var
from promproxy.app.core.metrics import metrics

logger = logging.getLogger(__name__)


def _endpoint_label(request: Request) -> str:
    # Route template once routing has run, so container names don't fan out the keys
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Middleware for request ID propagation, latency tracking, and structured logging."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        logger.info(f"Request started: {log_data}")

        try:
            response = await call_next(request)
            elapsed = time.time() - start_time

            status_code = response.status_code
            metrics.record_request(_endpoint_label(request), status_code, elapsed)
            response.headers["X-Request-ID"] = request_id

            log_data.update({
                "status_code": status_code,
                "elapsed_seconds": round(elapsed, 3),
            })
            logger.info(f"Request completed: {log_data}")
            return response

        except Exception as e:
            elapsed = time.time() - start_time
            metrics.record_request(_endpoint_label(request), 500, elapsed)

            log_data.update({
                "status_code": 500,
                "elapsed_seconds": round(elapsed, 3),
                "error": str(e),
            })
            logger.error(f"Request failed: {log_data}", exc_info=True)
            raise
        finally:
            request_id_var.reset(token)
