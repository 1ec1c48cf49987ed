"""
Error rendering for the HTTP layer
"""

from contextlib import contextmanager
from typing import Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..errors import LedgerError, StorageError
from ..logging_config import get_logger, log_action


logger = get_logger(__name__)


@contextmanager
def storage_guard(message: str, user_id: Optional[str] = None):
    """
    Let ledger errors through; turn anything else into a StorageError with a
    generic message after logging the real cause.
    """
    try:
        yield
    except LedgerError:
        raise
    except Exception as e:
        log_action(logger, "error", message, user_id=user_id, action="request_failed",
                   exc_info=True)
        raise StorageError(message) from e


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"message": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log_action(logger, "error", "Unhandled error", action="request_failed",
               resource=request.url.path, exc_info=(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content={"message": "Internal server error"})
