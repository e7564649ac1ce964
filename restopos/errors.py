"""
API error types and their JSON rendering.

Routers and services raise these; ``register_exception_handlers`` turns them
into ``{"detail", "error_code", "path", ...}`` bodies.
"""
import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(HTTPException):
    """Base API error with a machine-readable code and optional extra fields"""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: str,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(status_code=status_code, detail=detail)
        self.error_code = error_code
        self.extra = extra or {}


class AuthenticationError(APIError):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, detail, "NOT_AUTHENTICATED")


class AuthorizationError(APIError):
    def __init__(self, detail: str = "Permission denied"):
        super().__init__(status.HTTP_403_FORBIDDEN, detail, "FORBIDDEN")


class ValidationFailed(APIError):
    def __init__(self, detail: str = "Validation failed", fields: dict[str, str] | None = None):
        super().__init__(
            status.HTTP_400_BAD_REQUEST, detail, "VALIDATION_ERROR",
            {"fields": fields} if fields else None,
        )


class NotFoundError(APIError):
    # also used for rows owned by another tenant
    def __init__(self, detail: str = "Not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, detail, "NOT_FOUND")


class ConflictError(APIError):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status.HTTP_409_CONFLICT, detail, "CONFLICT")


class InsufficientStock(APIError):
    def __init__(self, message: str, insufficient_items: list[dict]):
        super().__init__(
            status.HTTP_409_CONFLICT,
            "Insufficient inventory",
            "INSUFFICIENT_STOCK",
            {"message": message, "insufficientItems": insufficient_items},
        )
        self.insufficient_items = insufficient_items


class DataError(APIError):
    """Stored business data cannot produce a sane result (e.g. a recipe with a zero quantity)"""

    def __init__(self, detail: str):
        super().__init__(422, detail, "DATA_ERROR")


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} at {request.url.path}: {exc.detail}")
    elif exc.status_code in (401, 403):
        logger.info(f"{exc.error_code} at {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error_code": exc.error_code,
            "path": str(request.url.path),
            **exc.extra,
        },
    )


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # body/query schema failures share the ValidationFailed shape
    fields = {
        ".".join(str(p) for p in err["loc"] if p != "body"): err["msg"]
        for err in exc.errors()
    }
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "Validation failed",
            "error_code": "VALIDATION_ERROR",
            "path": str(request.url.path),
            "fields": fields,
        },
    )


def register_exception_handlers(app):
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
