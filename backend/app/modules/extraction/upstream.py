from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import openai
import structlog

from app.core.errors import UpstreamError

logger = structlog.get_logger()


@contextmanager
def openai_errors(action: str) -> Iterator[None]:
    """Translate OpenAI SDK failures raised inside the block into ``UpstreamError``."""
    try:
        yield
    except openai.APIStatusError as exc:
        logger.error("OpenAI request failed", action=action, status=exc.status_code, error=exc.message)
        raise UpstreamError(
            f"OpenAI {action} failed",
            details={"status": exc.status_code, "message": exc.message},
            status=exc.status_code,
        ) from exc
    except openai.APIError as exc:
        # connection errors and client-side timeouts
        logger.error("OpenAI unreachable", action=action, error=str(exc))
        raise UpstreamError(f"OpenAI {action} failed", details={"message": str(exc)}) from exc
