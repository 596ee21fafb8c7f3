# ./shared/errors.py
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Erro base dos serviços; cada subclasse carrega o status HTTP correspondente."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class UnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def service_error_handler(request: Request, exc: ServiceError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} ({exc.details})")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    body = {"message": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(ServiceError, service_error_handler)
