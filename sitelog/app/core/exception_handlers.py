"""Exception handlers for converting custom exceptions to HTTP responses."""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from sitelog.app.core.exceptions import (
    SiteLogException,
    ReportNotFoundError,
    ClientNotFoundError,
    SubmissionValidationError,
    ReportBusyError,
    AnalysisServiceError,
    UnsafeStoragePathError,
    BlobNotFoundError,
    StorageConfigurationError,
)


async def sitelog_exception_handler(request: Request, exc: SiteLogException) -> JSONResponse:
    """
    Handle all SiteLog custom exceptions and convert to appropriate HTTP responses.

    Args:
        request: The incoming request
        exc: The exception that was raised

    Returns:
        JSONResponse with appropriate status code and error details
    """
    # Map exception types to HTTP status codes
    if isinstance(exc, (ReportNotFoundError, ClientNotFoundError, BlobNotFoundError)):
        status_code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, (SubmissionValidationError, UnsafeStoragePathError)):
        status_code = status.HTTP_400_BAD_REQUEST
    elif isinstance(exc, ReportBusyError):
        status_code = status.HTTP_409_CONFLICT
    elif isinstance(exc, (AnalysisServiceError, StorageConfigurationError)):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        # Generic SiteLogException
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": exc.message,
            "type": exc.__class__.__name__,
            **({"info": exc.details} if exc.details else {})
        }
    )


def register_exception_handlers(app):
    """
    Register all custom exception handlers with the FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(SiteLogException, sitelog_exception_handler)
