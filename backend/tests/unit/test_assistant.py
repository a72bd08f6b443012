"""Unit tests for the run-based completion session: bounded polling and scoped cleanup."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog
from structlog.testing import capture_logs

from app.core.errors import CompletionTimeoutError, UpstreamError
from app.modules.extraction.assistant import AssistantSession
from app.modules.extraction.pdf_service import load_pdf

RELEASE_ORDER = ["thread-1", "asst-1", "vs-1", "file-1"]


class FakeClock:
    """Monotonic clock that only moves when the session sleeps."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def document(pdf_bytes: bytes):
    return load_pdf(pdf_bytes, "deck.pdf")


def _session(client, clock: FakeClock | None = None, **kwargs) -> AssistantSession:
    clock = clock or FakeClock()
    kwargs.setdefault("poll_interval", 1.0)
    kwargs.setdefault("timeout", 180.0)
    kwargs.setdefault("max_attempts", 180)
    return AssistantSession(
        client,
        model="gpt-4o",
        sleep=clock.sleep,
        clock=clock,
        **kwargs,
    )


async def test_run_returns_reply_and_releases_everything(document, assistants_client) -> None:
    client = assistants_client(
        reply='{"company_name": "Acme"}',
        run_statuses=("queued", "in_progress", "completed"),
        markers=("【4:0†source】",),
    )
    reply = await _session(client).run(document, "Analyze this deck")

    assert reply == '{"company_name": "Acme"}'
    assert client.released == RELEASE_ORDER
    assert client.beta.threads.runs.retrieve.await_count == 2
    client.beta.assistants.create.assert_awaited_once()
    tools = client.beta.assistants.create.await_args.kwargs["tool_resources"]
    assert tools == {"file_search": {"vector_store_ids": ["vs-1"]}}


async def test_attempt_cap_raises_timeout_and_cleans_up(document, assistants_client) -> None:
    client = assistants_client(run_statuses=("in_progress",))
    clock = FakeClock()

    with pytest.raises(CompletionTimeoutError) as exc_info:
        await _session(client, clock, max_attempts=3).run(document, "Analyze")

    assert exc_info.value.details["kind"] == "timeout"
    assert exc_info.value.details["attempts"] == 3
    assert client.beta.threads.runs.retrieve.await_count == 3
    client.beta.threads.runs.cancel.assert_awaited_once_with("run-1", thread_id="thread-1")
    assert client.released == RELEASE_ORDER


async def test_wall_clock_timeout_raises(document, assistants_client) -> None:
    client = assistants_client(run_statuses=("queued",))
    clock = FakeClock()

    with pytest.raises(CompletionTimeoutError) as exc_info:
        await _session(client, clock, poll_interval=2.0, timeout=5.0).run(document, "Analyze")

    assert exc_info.value.details["elapsed_s"] == 6.0
    assert exc_info.value.details["last_status"] == "queued"
    assert clock.now == 6.0
    assert client.released == RELEASE_ORDER


async def test_timeout_is_not_an_upstream_error(document, assistants_client) -> None:
    client = assistants_client(run_statuses=("in_progress",))
    with pytest.raises(CompletionTimeoutError) as exc_info:
        await _session(client, max_attempts=0).run(document, "Analyze")
    assert not isinstance(exc_info.value, UpstreamError)


async def test_failed_run_raises_upstream_error(document, assistants_client) -> None:
    client = assistants_client(run_statuses=("queued", "failed"))
    with pytest.raises(UpstreamError, match="Run failed with status: failed"):
        await _session(client).run(document, "Analyze")
    assert client.released == RELEASE_ORDER


async def test_failure_midway_releases_only_what_was_created(document, assistants_client) -> None:
    client = assistants_client()
    client.beta.assistants.create = AsyncMock(side_effect=RuntimeError("boom"))

    with pytest.raises(RuntimeError):
        await _session(client).run(document, "Analyze")

    assert client.released == ["vs-1", "file-1"]
    client.beta.threads.delete.assert_not_awaited()


async def test_release_failure_is_logged_not_raised(document, assistants_client) -> None:
    client = assistants_client()
    client.vector_stores.delete = AsyncMock(side_effect=RuntimeError("vector store busy"))

    with capture_logs() as logs:
        reply = await _session(client, logger=structlog.get_logger()).run(document, "Analyze")

    assert reply == '{"company_name": "Acme"}'
    failures = [e for e in logs if e["event"] == "Failed to release transient resource"]
    assert len(failures) == 1
    assert failures[0]["kind"] == "vector_store"
    assert failures[0]["log_level"] == "warning"
    assert client.released == ["thread-1", "asst-1", "file-1"]


async def test_injected_logger_receives_cleanup_events(document, assistants_client) -> None:
    client = assistants_client()
    client.files.delete = AsyncMock(side_effect=RuntimeError("gone"))
    logger = MagicMock()

    await _session(client, logger=logger).run(document, "Analyze")

    logger.warning.assert_called_once()
    assert logger.warning.call_args.kwargs["resource_id"] == "file-1"


async def test_cancellation_still_releases_resources(document, assistants_client) -> None:
    client = assistants_client(run_statuses=("in_progress",))
    started = asyncio.Event()

    async def _slow_sleep(seconds: float) -> None:
        started.set()
        await asyncio.sleep(3600)

    session = AssistantSession(client, model="gpt-4o", sleep=_slow_sleep, poll_interval=1.0)
    task = asyncio.create_task(session.run(document, "Analyze"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert client.released == RELEASE_ORDER


async def test_no_assistant_text_raises(document, assistants_client) -> None:
    client = assistants_client()
    client.beta.threads.messages.list = AsyncMock(return_value=MagicMock(data=[]))
    with pytest.raises(UpstreamError, match="No text response"):
        await _session(client).run(document, "Analyze")
