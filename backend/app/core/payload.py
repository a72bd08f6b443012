"""JSON body parsing for handlers that must authenticate first.

FastAPI decodes a declared body parameter before it resolves dependencies,
so a malformed body would be rejected ahead of ``get_current_user``. Routes
that authenticate take the raw ``Request`` and call ``read_json_body`` once
the caller is known.
"""

from __future__ import annotations

from typing import TypeVar

from fastapi import Request
from pydantic import BaseModel, ValidationError

from app.core.errors import InvalidInputError

B = TypeVar("B", bound=BaseModel)


async def read_json_body(request: Request, model: type[B]) -> B:
    try:
        data = await request.json()
    except ValueError as e:
        raise InvalidInputError("Invalid JSON body", details=str(e))

    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidInputError(
            "Invalid request",
            details=e.errors(include_url=False, include_context=False),
        )
