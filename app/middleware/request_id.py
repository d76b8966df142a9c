from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
import uuid
from typing import Callable

from app.core.logging import get_logger, principal_var, request_id_var

logger = get_logger("sustainability.http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with an id and log its outcome.

    Reuses an incoming `X-Request-ID` header or generates one, stores it in
    `request_id_var` for the log records of the request and echoes it on
    the response.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        token = request_id_var.set(request_id)
        principal_token = principal_var.set(None)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
            return response
        finally:
            principal_var.reset(principal_token)
            request_id_var.reset(token)
