"""Run-based completion via the OpenAI Assistants API.

Flow: upload PDF → vector store → assistant (file_search) → thread → message
→ run → poll until terminal → read latest assistant reply.

Every remote object created along the way is registered on an
``AsyncExitStack`` the moment it exists, so it is deleted again whether the
run succeeds, fails, times out or is cancelled. Deletion is best-effort:
failures are logged through the injected logger and never raised.

Polling is bounded by both a wall-clock timeout and an attempt cap; running
out of either raises ``CompletionTimeoutError`` (not ``UpstreamError``).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from types import TracebackType
from typing import Any, TypeVar

import structlog
from openai import AsyncOpenAI

from app.core.config import settings
from app.core.errors import CompletionTimeoutError, UpstreamError
from app.modules.extraction.pdf_service import UploadedFile
from app.modules.extraction.prompts import ASSISTANT_INSTRUCTIONS
from app.modules.extraction.upstream import openai_errors

T = TypeVar("T")

RUN_PENDING_STATUSES = frozenset({"queued", "in_progress", "cancelling"})
VECTOR_STORE_PENDING_STATUSES = frozenset({"in_progress"})


class TransientResources:
    """Remote objects created for one extraction, released LIFO on exit."""

    def __init__(self, client: AsyncOpenAI, logger: Any = None) -> None:
        self._client = client
        self._log = logger or structlog.get_logger()
        self._stack = AsyncExitStack()
        self.created: list[tuple[str, str]] = []

    async def __aenter__(self) -> TransientResources:
        await self._stack.__aenter__()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool:
        return await self._stack.__aexit__(exc_type, exc, tb)

    def _register(self, kind: str, resource_id: str, delete: Callable[[], Awaitable[Any]]) -> None:
        self.created.append((kind, resource_id))

        async def _release() -> None:
            try:
                await delete()
            except Exception as exc:
                self._log.warning(
                    "Failed to release transient resource",
                    kind=kind,
                    resource_id=resource_id,
                    error=str(exc),
                )
            else:
                self._log.info("Released transient resource", kind=kind, resource_id=resource_id)

        self._stack.push_async_callback(_release)

    async def upload_file(self, document: UploadedFile) -> str:
        with openai_errors("file upload"):
            uploaded = await self._client.files.create(
                file=(document.filename, document.content, document.content_type),
                purpose="assistants",
            )
        self._register("file", uploaded.id, lambda: self._client.files.delete(uploaded.id))
        return uploaded.id

    async def create_vector_store(self, file_id: str, name: str = "PDF Analysis") -> str:
        with openai_errors("vector store create"):
            store = await self._client.vector_stores.create(name=name, file_ids=[file_id])
        self._register(
            "vector_store", store.id, lambda: self._client.vector_stores.delete(store.id)
        )
        return store.id

    async def create_assistant(self, vector_store_id: str, model: str, instructions: str) -> str:
        with openai_errors("assistant create"):
            assistant = await self._client.beta.assistants.create(
                name="PDF Analyzer",
                instructions=instructions,
                model=model,
                tools=[{"type": "file_search"}],
                tool_resources={"file_search": {"vector_store_ids": [vector_store_id]}},
            )
        self._register(
            "assistant", assistant.id, lambda: self._client.beta.assistants.delete(assistant.id)
        )
        return assistant.id

    async def create_thread(self) -> str:
        with openai_errors("thread create"):
            thread = await self._client.beta.threads.create()
        self._register("thread", thread.id, lambda: self._client.beta.threads.delete(thread.id))
        return thread.id


class AssistantSession:
    """One document, one question, one run."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str | None = None,
        instructions: str = ASSISTANT_INSTRUCTIONS,
        poll_interval: float | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        logger: Any = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.model = model or settings.assistant_model
        self.instructions = instructions
        self.poll_interval = (
            poll_interval if poll_interval is not None else settings.assistant_poll_interval_s
        )
        self.timeout = timeout if timeout is not None else settings.assistant_poll_timeout_s
        self.max_attempts = (
            max_attempts if max_attempts is not None else settings.assistant_poll_max_attempts
        )
        self._log = logger or structlog.get_logger()
        self._sleep = sleep
        self._clock = clock

    async def run(self, document: UploadedFile, prompt: str) -> str:
        """Return the assistant's raw text reply to *prompt* about *document*."""
        client = self._client
        async with TransientResources(client, logger=self._log) as resources:
            file_id = await resources.upload_file(document)
            vector_store_id = await resources.create_vector_store(file_id)
            await self._poll(
                lambda: client.vector_stores.retrieve(vector_store_id),
                pending=VECTOR_STORE_PENDING_STATUSES,
                what="vector store",
            )
            assistant_id = await resources.create_assistant(
                vector_store_id, self.model, self.instructions
            )
            thread_id = await resources.create_thread()

            with openai_errors("message create"):
                await client.beta.threads.messages.create(thread_id, role="user", content=prompt)
            with openai_errors("run create"):
                run = await client.beta.threads.runs.create(thread_id, assistant_id=assistant_id)

            self._log.info("Assistant run started", run_id=run.id, model=self.model)

            try:
                run = await self._poll(
                    lambda: client.beta.threads.runs.retrieve(run.id, thread_id=thread_id),
                    pending=RUN_PENDING_STATUSES,
                    what="run",
                    initial=run,
                )
            except CompletionTimeoutError:
                await self._cancel_run(thread_id, run.id)
                raise

            if run.status != "completed":
                last_error = getattr(run, "last_error", None)
                raise UpstreamError(
                    f"Run failed with status: {run.status}",
                    details={"last_error": getattr(last_error, "message", None)},
                )

            return await self._latest_reply(thread_id)

    async def _poll(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        pending: frozenset[str],
        what: str,
        initial: T | None = None,
    ) -> T:
        started = self._clock()
        with openai_errors(f"{what} status check"):
            current = initial if initial is not None else await fetch()
        attempts = 0

        while getattr(current, "status", None) in pending:
            elapsed = self._clock() - started
            if attempts >= self.max_attempts or elapsed >= self.timeout:
                self._log.warning(
                    "Polling gave up",
                    what=what,
                    attempts=attempts,
                    elapsed_s=round(elapsed, 1),
                    last_status=current.status,
                )
                raise CompletionTimeoutError(
                    f"Timed out waiting for {what} to finish",
                    details={
                        "kind": "timeout",
                        "attempts": attempts,
                        "elapsed_s": round(elapsed, 1),
                        "last_status": current.status,
                    },
                )
            await self._sleep(self.poll_interval)
            attempts += 1
            with openai_errors(f"{what} status check"):
                current = await fetch()
            self._log.debug("Polled status", what=what, status=current.status, attempt=attempts)

        return current

    async def _cancel_run(self, thread_id: str, run_id: str) -> None:
        try:
            await self._client.beta.threads.runs.cancel(run_id, thread_id=thread_id)
        except Exception as exc:
            self._log.warning("Failed to cancel run", run_id=run_id, error=str(exc))

    async def _latest_reply(self, thread_id: str) -> str:
        with openai_errors("message list"):
            messages = await self._client.beta.threads.messages.list(
                thread_id, order="desc", limit=10
            )

        for message in messages.data:
            if message.role != "assistant":
                continue
            texts = []
            for part in message.content:
                if part.type != "text":
                    continue
                value = part.text.value
                # strip file_search citation markers
                for annotation in getattr(part.text, "annotations", None) or []:
                    marker = getattr(annotation, "text", "")
                    if marker:
                        value = value.replace(marker, "")
                texts.append(value)
            if texts:
                return "\n".join(texts)

        raise UpstreamError("No text response from assistant")
