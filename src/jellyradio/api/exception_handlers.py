"""Map domain exceptions onto JSON error responses.

Every failure leaves the API as {"error": "<message>"}. No partial counters ever
leak out of a failed radio run.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import cast

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from jellyradio.domain.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DomainException,
    ExternalServiceError,
    SetupError,
)

logger = logging.getLogger(__name__)

Handler = Callable[[Request, Exception], Awaitable[JSONResponse]]


def setup_error_status(exc: SetupError) -> int:
    """Pick the HTTP status for a pipeline setup failure."""
    if exc.is_auth_failure:
        return status.HTTP_401_UNAUTHORIZED
    if exc.is_configuration_failure:
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_502_BAD_GATEWAY


# exception type -> (fixed status or None for SetupError, log level, log label)
_HANDLED: list[tuple[type[DomainException], int | None, int, str]] = [
    (SetupError, None, logging.WARNING, "Radio setup failed"),
    (ConfigurationError, 503, logging.ERROR, "Configuration error"),
    (AuthenticationError, 401, logging.WARNING, "Authentication failed"),
    (ExternalServiceError, 502, logging.ERROR, "External service error"),
    (DomainException, 500, logging.ERROR, "Unhandled domain error"),
]


def _make_handler(fixed_status: int | None, level: int, label: str) -> Handler:
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        error = cast(DomainException, exc)
        if fixed_status is None:
            status_code = setup_error_status(cast(SetupError, error))
        else:
            status_code = fixed_status

        path = request.url.path
        logger.log(
            level,
            f"{label} at {path}: {error.message}",
            extra={"path": path, "error": error.message, "status": status_code},
            # only the catch-all is a surprise worth a traceback
            exc_info=error if fixed_status == 500 else None,
        )
        return JSONResponse(status_code=status_code, content={"error": error.message})

    return handler


# Hey future me, Starlette looks handlers up along the exception's MRO, so the order
# here doesn't matter: SetupError still beats the DomainException catch-all.
def register_exception_handlers(app: FastAPI) -> None:
    """Register one JSON handler per domain exception type.

    Args:
        app: FastAPI application instance
    """
    for exc_type, fixed_status, level, label in _HANDLED:
        app.add_exception_handler(exc_type, _make_handler(fixed_status, level, label))
