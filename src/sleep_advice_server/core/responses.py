"""JSON response envelope and exception handlers.

Every non-streaming API response has the shape
``{"success": bool, "data"?: ..., "message"?: str, "error"?: str}``.
"""

from typing import Any

import structlog
from litestar import Request, Response
from litestar.exceptions import HTTPException, ValidationException
from litestar.status_codes import HTTP_500_INTERNAL_SERVER_ERROR

logger = structlog.get_logger()


def success_response(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Build a success envelope."""
    envelope: dict[str, Any] = {"success": True, "data": data}
    if message:
        envelope["message"] = message
    return envelope


def error_response(error: str) -> dict[str, Any]:
    """Build an error envelope."""
    return {"success": False, "error": error}


def http_exception_handler(request: Request[Any, Any, Any], exc: HTTPException) -> Response[Any]:
    """Render Litestar HTTP exceptions as error envelopes."""
    content = error_response(exc.detail)
    if isinstance(exc, ValidationException) and exc.extra:
        content["details"] = exc.extra

    return Response(content=content, status_code=exc.status_code, headers=exc.headers)


def internal_error_handler(request: Request[Any, Any, Any], exc: Exception) -> Response[Any]:
    """Log unexpected errors and hide their details from clients."""
    logger.error(
        "Unhandled request error",
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )
    return Response(
        content=error_response("Internal server error"),
        status_code=HTTP_500_INTERNAL_SERVER_ERROR,
    )


exception_handlers = {
    HTTPException: http_exception_handler,
    HTTP_500_INTERNAL_SERVER_ERROR: internal_error_handler,
}
