"""Service error taxonomy and its HTTP rendering."""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError

from app.core.logging import get_logger

logger = get_logger("sustainability.errors")


class ServiceError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(ServiceError):
    code = "unauthenticated"
    status_code = 401

    # Never reveal which check failed
    def __init__(self, message: str = "Invalid or missing authentication token"):
        super().__init__("Invalid or missing authentication token")
        self.reason = message


class Forbidden(ServiceError):
    code = "forbidden"
    status_code = 403

    def __init__(self, message: str = "Operation not permitted"):
        super().__init__(message)


class NotFound(ServiceError):
    code = "not_found"
    status_code = 404


class Conflict(ServiceError):
    code = "conflict"
    status_code = 409


class InvariantViolation(ServiceError):
    code = "invariant"
    status_code = 422


class BadInput(ServiceError):
    code = "bad_input"
    status_code = 400


class Upstream(ServiceError):
    code = "upstream"
    status_code = 502


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def handle_service_error(request: Request, exc: ServiceError):
        if isinstance(exc, Unauthenticated):
            logger.warning("Authentication rejected on %s: %s", request.url.path, exc.reason)
        else:
            logger.warning("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(OperationalError)
    @app.exception_handler(InterfaceError)
    async def handle_storage_unavailable(request: Request, exc: Exception):
        logger.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"detail": "storage unavailable", "code": Upstream.code},
        )
