"""
Error taxonomy for the API.

Every error carries the HTTP status it is reported with. Route handlers
raise these directly; anything else escaping a handler is turned into an
InternalError by `handler_boundary`.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

log = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, error: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(AppError):
    status_code = 400


class UnauthorizedError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """The stored document changed between read and save."""
    status_code = 409


class UpstreamError(AppError):
    """External storage failed in a way the request cannot recover from."""
    status_code = 500


class InternalError(AppError):
    status_code = 500


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body = {"message": exc.message}
    if exc.error:
        body["error"] = exc.error
    return JSONResponse(status_code=exc.status_code, content=body)


@contextmanager
def handler_boundary(message: str):
    """Report unexpected failures inside a route as a 500 with `message`."""
    try:
        yield
    except AppError:
        raise
    except Exception as e:
        log.exception(message)
        raise InternalError(message, str(e) or "Unknown error") from e
