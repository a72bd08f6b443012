"""Error taxonomy for the deck-intake API.

Every error a handler can raise on purpose derives from ``PitchForkError``
and carries the HTTP status it maps to. ``register_exception_handlers``
renders them (and FastAPI's own validation / HTTP errors) as the JSON body
``{"error": str, "details"?: any}`` the web client expects.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = structlog.get_logger()


class PitchForkError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class InvalidInputError(PitchForkError):
    """Missing file, wrong MIME type or missing required field."""

    status_code = 400


class AuthenticationError(PitchForkError):
    status_code = 401


class NotFoundError(PitchForkError):
    status_code = 404


class PayloadTooLargeError(PitchForkError):
    status_code = 413


class ConfigurationError(PitchForkError):
    """A credential or setting needed for an outbound call is missing."""

    status_code = 500


class UpstreamError(PitchForkError):
    """An external API (OpenAI, Supabase, SMTP) answered with a failure."""

    status_code = 500

    def __init__(
        self,
        message: str,
        details: Any = None,
        status: int | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status = status


class StorageError(UpstreamError):
    """Supabase Storage or Auth REST call failed."""


class CompletionTimeoutError(PitchForkError):
    """An assistant run did not reach a terminal state in time."""

    status_code = 500


def error_body(message: str, details: Any = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": message}
    if details is not None:
        body["details"] = jsonable_encoder(details)
    return body


async def _pitchfork_error_handler(request: Request, exc: PitchForkError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "Request failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=exc.message,
        )
    else:
        logger.info(
            "Request rejected",
            path=request.url.path,
            status=exc.status_code,
            error=exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.details),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_body("Invalid request", exc.errors()),
    )


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PitchForkError, _pitchfork_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
