from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    code = "SERVICE_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    code = "CONFLICT"


class StorageError(ServiceError):
    """Adapter/query failure. The underlying exception is kept as ``__cause__``."""

    code = "STORAGE_ERROR"


class ServiceResponse(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ServiceResponse":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, code: str) -> "ServiceResponse":
        return cls(success=False, error=error, code=code)


def failure_from_exception(exc: Exception, default_code: str) -> ServiceResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage failure (%s): %s", default_code, exc.message)
        return ServiceResponse.fail(exc.message, exc.code)
    if isinstance(exc, ServiceError):
        return ServiceResponse.fail(exc.message, exc.code)
    logger.exception("Unhandled failure (%s)", default_code)
    return ServiceResponse.fail(str(exc) or "Unknown error occurred", default_code)


_HTTP_STATUS_BY_CODE = {
    ValidationError.code: 422,
    NotFoundError.code: 404,
    ConflictError.code: 409,
    StorageError.code: 503,
}


def http_status_for(code: str | None) -> int:
    if not code:
        return 200
    if code in _HTTP_STATUS_BY_CODE:
        return _HTTP_STATUS_BY_CODE[code]
    if code.endswith("_NOT_FOUND") or code == "NO_METRICS_FOUND":
        return 404
    if code.startswith("DUPLICATE_") or code == "INVALID_STATUS_TRANSITION":
        return 409
    if code.startswith("INVALID_") or code.startswith("UNSUPPORTED_"):
        return 422
    return 500
