from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from typing import Callable, Awaitable, Iterable
import hmac
import logging
from promproxy.app.core.keystore import APIKeyStore
from promproxy.app.core.metrics import metrics

logger = logging.getLogger(__name__)


def _unauthorized(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={"error": message},
    )


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose Authorization header does not carry the API key."""

    def __init__(
        self,
        app,
        enabled: bool,
        key_store: APIKeyStore,
        exempt_paths: Iterable[str] = ("/health", "/metrics"),
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._key_store = key_store
        self._exempt_paths = frozenset(exempt_paths)

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if not self._enabled or request.url.path in self._exempt_paths:
            return await call_next(request)

        api_key = self._key_store.get_or_generate()

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            logger.warning("Request missing Authorization header")
            metrics.record_auth_failure("missing")
            return _unauthorized("Authorization header is missing")

        parts = auth_header.split(" ")
        if len(parts) != 2 or parts[0] != "Bearer":
            logger.warning("Malformed Authorization header")
            metrics.record_auth_failure("malformed")
            return _unauthorized("Invalid Authorization header format")

        if not hmac.compare_digest(parts[1].encode(), api_key.encode()):
            logger.warning("Invalid bearer token")
            metrics.record_auth_failure("invalid_token")
            return _unauthorized("Unauthorized")

        return await call_next(request)
