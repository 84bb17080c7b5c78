"""
Error Handlers

Maps exceptions to the API's {success: false, error, details} envelope:

- QueryValidationError and malformed requests -> 400
- anything unexpected -> 500

Retrieval, catalog and tracking failures never get here; the search
pipeline absorbs them and reports degradation in the response body.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.logging import get_logger
from search.errors import QueryValidationError

logger = get_logger(__name__)


def _field_name(loc) -> str:
    # ("query", "limit") -> "limit"; ("body", "data", "sessionId") -> "data.sessionId"
    parts = [str(p) for p in loc if p not in ("body", "query", "path", "header")]
    return ".".join(parts) or "request"


def setup_error_handlers(app: FastAPI) -> None:
    """
    Set up custom error handlers for the FastAPI app.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(QueryValidationError)
    async def query_validation_error_handler(request: Request, exc: QueryValidationError):
        logger.warning("Invalid search request", path=request.url.path, details=exc.details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": exc.message, "details": exc.details},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        details = {}
        for error in exc.errors():
            details.setdefault(_field_name(error.get("loc", ())), str(error.get("msg", "")))
        logger.warning("Request validation failed", path=request.url.path, details=details)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Invalid request", "details": details},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.exception("Unexpected error", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "An unexpected error occurred"},
        )
