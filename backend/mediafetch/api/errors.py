"""Global exception handlers for API errors."""
from fastapi import Request, status
from fastapi.responses import JSONResponse

from mediafetch.core.logging import get_logger
from mediafetch.models.fetch import ErrorResponse
from mediafetch.services.errors import MediaFetchError

logger = get_logger(__name__)

# Map error codes to HTTP status codes
STATUS_CODE_MAP = {
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "SPAWN_FAILED": status.HTTP_502_BAD_GATEWAY,
    "INTERNAL_ERROR": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def media_fetch_error_handler(
    request: Request, exc: MediaFetchError
) -> JSONResponse:
    """Handle all MediaFetchError exceptions raised before a stream starts.

    Args:
        request: FastAPI request
        exc: Domain exception

    Returns:
        JSON response with error details
    """
    status_code = STATUS_CODE_MAP.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    # Expected client errors are not worth a warning
    if exc.code not in ("INVALID_INPUT", "NOT_FOUND"):
        logger.warning(f"Domain error: {exc.code} - {exc.message}")
    else:
        logger.debug(f"Rejected request to {request.url.path}: {exc.code} - {exc.message}")

    error_response = ErrorResponse(code=exc.code, message=exc.message)

    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions.

    Args:
        request: FastAPI request
        exc: Unexpected exception

    Returns:
        JSON response with generic error
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)

    error_response = ErrorResponse(
        code="INTERNAL_ERROR",
        message="An unexpected error occurred. Please try again later.",
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(),
    )
