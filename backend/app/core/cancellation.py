from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog
from starlette.requests import Request

logger = structlog.get_logger()

T = TypeVar("T")

DISCONNECT_POLL_INTERVAL_S = 0.5


async def cancel_on_disconnect(
    request: Request,
    awaitable: Awaitable[T],
    poll_interval: float = DISCONNECT_POLL_INTERVAL_S,
) -> T:
    """Await *awaitable*, cancelling it if the inbound client goes away.

    Cancellation unwinds the outbound call (and any cleanup scopes inside it)
    and re-raises ``asyncio.CancelledError`` to the caller.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling outbound call", path=request.url.path)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise asyncio.CancelledError()
    finally:
        if not task.done():
            task.cancel()
