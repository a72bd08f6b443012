"""Shared test fixtures for the Pitch Fork backend test suite."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import fitz  # PyMuPDF
import pytest
from httpx import ASGITransport, AsyncClient

from app.main import app


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client that talks directly to the FastAPI ASGI app."""
    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_pdf() -> Callable[..., bytes]:
    """Build a real one-page PDF whose text layer holds *lines*."""

    def _make(*lines: str) -> bytes:
        doc = fitz.open()
        page = doc.new_page()
        y = 72
        for line in lines or ("Acme Robotics",):
            page.insert_text((72, y), line)
            y += 20
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def pdf_bytes(make_pdf: Callable[..., bytes]) -> bytes:
    return make_pdf("Acme Robotics", "Jane Doe - CEO", "Raising $2M seed")


def assistant_reply(text: str, markers: tuple[str, ...] = ()) -> SimpleNamespace:
    part = SimpleNamespace(
        type="text",
        text=SimpleNamespace(
            value=text + "".join(markers),
            annotations=[SimpleNamespace(text=m) for m in markers],
        ),
    )
    return SimpleNamespace(
        data=[
            SimpleNamespace(role="assistant", content=[part]),
            SimpleNamespace(role="user", content=[]),
        ]
    )


@pytest.fixture
def assistants_client() -> Callable[..., MagicMock]:
    """Factory for an ``AsyncOpenAI`` stand-in that scripts one assistant run.

    ``released`` on the returned mock records deleted resource ids in order.
    """

    def _make(
        reply: str = '{"company_name": "Acme"}',
        run_statuses: tuple[str, ...] = ("completed",),
        markers: tuple[str, ...] = (),
    ) -> MagicMock:
        client = MagicMock()
        client.released = []

        def _release(resource_id: str) -> None:
            client.released.append(resource_id)

        client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-1"))
        client.files.delete = AsyncMock(side_effect=_release)
        client.vector_stores.create = AsyncMock(return_value=SimpleNamespace(id="vs-1"))
        client.vector_stores.retrieve = AsyncMock(
            return_value=SimpleNamespace(id="vs-1", status="completed")
        )
        client.vector_stores.delete = AsyncMock(side_effect=_release)
        client.beta.assistants.create = AsyncMock(return_value=SimpleNamespace(id="asst-1"))
        client.beta.assistants.delete = AsyncMock(side_effect=_release)
        client.beta.threads.create = AsyncMock(return_value=SimpleNamespace(id="thread-1"))
        client.beta.threads.delete = AsyncMock(side_effect=_release)
        client.beta.threads.messages.create = AsyncMock()
        client.beta.threads.messages.list = AsyncMock(return_value=assistant_reply(reply, markers))

        first, *rest = run_statuses
        client.beta.threads.runs.create = AsyncMock(
            return_value=SimpleNamespace(id="run-1", status=first, last_error=None)
        )
        if rest:
            client.beta.threads.runs.retrieve = AsyncMock(
                side_effect=[SimpleNamespace(id="run-1", status=s, last_error=None) for s in rest]
            )
        else:
            client.beta.threads.runs.retrieve = AsyncMock(
                return_value=SimpleNamespace(id="run-1", status=first, last_error=None)
            )
        client.beta.threads.runs.cancel = AsyncMock()
        return client

    return _make


def chat_response(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=1200, completion_tokens=80),
    )


@pytest.fixture
def chat_client() -> Callable[[str | None], MagicMock]:
    """Factory for an ``AsyncOpenAI`` stand-in whose chat completion returns *content*."""

    def _make(content: str | None) -> MagicMock:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=chat_response(content))
        return client

    return _make
