"""Shared logger helpers.

USAGE:
    from jellyradio.infrastructure.observability.logger_template import log_operation

    async with log_operation(logger, "radio_synthesis", seed="Daft Punk"):
        await run_pipeline()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from jellyradio.domain.exceptions import DomainException


# Yo, wrap any operation you want timed. Logs {operation}.started, then either
# {operation}.completed or {operation}.failed, both with duration_ms. The exception
# is re-raised untouched - this only observes. Domain failures (SetupError & co)
# are expected outcomes: WARNING without traceback, the API handler reports them.
# Anything else is a bug: ERROR with the full traceback.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Log operation start/end with automatic timing.

    Args:
        logger: Module logger
        operation: Operation name (e.g., "radio_synthesis", "scan_wait")
        **context: Extra fields attached to every record
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        expected = isinstance(e, DomainException)
        logger.log(
            logging.WARNING if expected else logging.ERROR,
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=not expected,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": duration_ms},
    )
