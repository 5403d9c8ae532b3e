"""Global exception handlers for consistent error responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


def add_exception_handlers(app: FastAPI, domain_error: type[Exception]) -> None:
    """
    Map ``domain_error`` subclasses to JSON responses.

    Each subclass carries ``status_code`` and ``detail``; server-side
    failures (5xx) are logged with their traceback.
    """

    async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        status_code = getattr(exc, "status_code", 400)
        detail = getattr(exc, "detail", str(exc))
        if status_code >= 500:
            logger.error(
                "%s on %s %s: %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                detail,
                exc_info=exc,
            )
        body = {"detail": detail, "error": type(exc).__name__}
        request_id = get_request_id()
        if request_id:
            body["request_id"] = request_id
        return JSONResponse(status_code=status_code, content=body)

    app.add_exception_handler(domain_error, _domain_error_handler)
