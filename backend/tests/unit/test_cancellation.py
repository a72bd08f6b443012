from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.cancellation import cancel_on_disconnect


def _request(disconnected: bool) -> MagicMock:
    request = MagicMock()
    request.is_disconnected = AsyncMock(return_value=disconnected)
    return request


async def test_result_is_returned_while_connected() -> None:
    async def work() -> str:
        await asyncio.sleep(0.02)
        return "done"

    assert await cancel_on_disconnect(_request(False), work(), poll_interval=0.01) == "done"


async def test_disconnect_cancels_outbound_call() -> None:
    cancelled = asyncio.Event()

    async def work() -> None:
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    with pytest.raises(asyncio.CancelledError):
        await cancel_on_disconnect(_request(True), work(), poll_interval=0.01)
    assert cancelled.is_set()


async def test_errors_propagate() -> None:
    async def work() -> None:
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await cancel_on_disconnect(_request(False), work(), poll_interval=0.01)
