"""Wildcard CORS + top-level guard.

Unlike Starlette's ``CORSMiddleware`` this answers *every* ``OPTIONS``
request with an empty 200 (not only well-formed preflights) and stamps the
CORS headers on every response, including error responses. It is also the
outermost place where an unexpected exception is turned into a JSON 500.
"""

from __future__ import annotations

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from app.core.config import settings
from app.core.errors import error_body

logger = structlog.get_logger()


def cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": settings.cors_allow_methods,
        "Access-Control-Allow-Headers": settings.cors_allow_headers,
    }


class EdgeCORSMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=cors_headers())

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "Unhandled error",
                method=request.method,
                path=request.url.path,
                exc_info=True,
            )
            response = JSONResponse(
                status_code=500,
                content=error_body("Internal server error"),
            )

        response.headers.update(cors_headers())
        return response
