from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base for failures that map onto a stable ``{"error": ...}`` body."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class UpstreamUnavailable(ServiceError):
    """Network, timeout or malformed payload while talking to an upstream."""

    status_code = 500
    default_message = "Upstream service unavailable"


class NotReady(ServiceError):
    status_code = 503
    default_message = "App list not ready, please retry in a moment"


class Misconfiguration(ServiceError):
    """A credential for an optional feature is missing or rejected.

    Callers log it and degrade to empty results; it is never sent to clients.
    """

    status_code = 500
    default_message = "Service misconfigured"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("query", "path"))
        msg = first.get("msg", "Invalid request")
        return _error(400, f"{loc}: {msg}" if loc else msg)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error")
