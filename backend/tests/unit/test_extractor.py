"""Unit tests for ExtractorService request construction and completion strategies."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from instructor.core import InstructorRetryException
from pydantic import ValidationError

from app.core.config import settings
from app.core.errors import ConfigurationError, UpstreamError
from app.modules.extraction.extractor import (
    COMPANY_SPECS,
    DECK_OVERVIEW,
    ExtractorService,
)
from app.modules.extraction.pdf_service import load_pdf
from app.modules.extraction.schemas import (
    DeckOverviewExtraction,
    ExtractionRequest,
    ParseStatus,
    TeamMember,
)


@pytest.fixture
def document(pdf_bytes: bytes):
    return load_pdf(pdf_bytes, "deck.pdf")


def _status_error(status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request, json={"error": {"message": "slow down"}})
    return openai.APIStatusError("slow down", response=response, body={"message": "slow down"})


# ---------------------------------------------------------------------------
# Request construction
# ---------------------------------------------------------------------------


def test_request_inlines_pdf_as_data_uri(document) -> None:
    request = ExtractorService.build_request(document, DECK_OVERVIEW)
    file_part = request.user_content[1]
    assert file_part["type"] == "file"
    assert file_part["file"]["filename"] == "deck.pdf"
    assert file_part["file"]["file_data"].startswith("data:application/pdf;base64,")
    assert request.response_format == "json_object"
    assert 0.0 <= request.temperature <= 0.1
    assert len(request.user_content) == 2


def test_company_specs_request_adds_truncated_text_layer(
    document, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "extraction_text_char_limit", 5)
    request = ExtractorService.build_request(document, COMPANY_SPECS)
    assert request.model == settings.company_specs_model
    text_part = request.user_content[2]
    assert text_part["type"] == "text"
    assert text_part["text"].endswith(document.text[:5])
    assert "Tech / AI / SaaS" in request.system_instruction


def test_text_layer_can_be_switched_off(document, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "extraction_include_text_layer", False)
    request = ExtractorService.build_request(document, COMPANY_SPECS)
    assert len(request.user_content) == 2


def test_request_is_immutable_and_bounded(document) -> None:
    request = ExtractorService.build_request(document, DECK_OVERVIEW)
    with pytest.raises(ValidationError):
        request.model = "other"
    with pytest.raises(ValidationError):
        ExtractionRequest(
            model="gpt-4o",
            system_instruction="x",
            user_content=(),
            temperature=0.7,
        )


# ---------------------------------------------------------------------------
# Strategy (a): synchronous chat completion
# ---------------------------------------------------------------------------


async def test_extract_sends_json_mode_and_normalizes(document, chat_client) -> None:
    client = chat_client('{"company_name": "Acme", "industry": "Robotics"}')
    result = await ExtractorService(client=client).extract(document, DECK_OVERVIEW)

    kwargs = client.chat.completions.create.await_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    assert kwargs["messages"][0]["role"] == "system"
    assert result.status is ParseStatus.PARSED
    assert result.record.company_name == "Acme"
    assert result.record.key_team_members == ""


async def test_missing_api_key_fails_before_any_call(
    document, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "openai_api_key", "")
    with patch("app.modules.extraction.extractor.AsyncOpenAI") as client_cls:
        with pytest.raises(ConfigurationError):
            await ExtractorService().extract(document, DECK_OVERVIEW)
    client_cls.assert_not_called()


async def test_empty_choices_is_invalid_response(document) -> None:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=SimpleNamespace(choices=[], usage=None))
    with pytest.raises(UpstreamError, match="Invalid response from OpenAI"):
        await ExtractorService(client=client).extract(document, DECK_OVERVIEW)


async def test_provider_status_error_becomes_upstream_error(document) -> None:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=_status_error(429))
    with pytest.raises(UpstreamError) as exc_info:
        await ExtractorService(client=client).extract(document, DECK_OVERVIEW)
    assert exc_info.value.status == 429
    assert exc_info.value.status_code == 500
    assert exc_info.value.details["status"] == 429


async def test_connection_error_becomes_upstream_error(document) -> None:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        side_effect=openai.APIConnectionError(
            request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        )
    )
    with pytest.raises(UpstreamError):
        await ExtractorService(client=client).extract(document, DECK_OVERVIEW)


# ---------------------------------------------------------------------------
# Strategy (c): structured completion
# ---------------------------------------------------------------------------


async def test_structured_extraction_releases_uploaded_file(document) -> None:
    client = MagicMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-9"))
    client.files.delete = AsyncMock()

    structured = MagicMock()
    structured.chat.completions.create = AsyncMock(
        return_value=DeckOverviewExtraction(
            company_name="Acme",
            industry="Robotics",
            key_team_members=[TeamMember(name="Jane", role="CEO"), TeamMember(name="Raj")],
        )
    )

    with patch("app.modules.extraction.extractor.instructor.from_openai", return_value=structured):
        result = await ExtractorService(client=client).extract_structured(document)

    assert result.record.key_team_members == "Jane (CEO), Raj"
    assert result.status is ParseStatus.PARSED
    kwargs = structured.chat.completions.create.await_args.kwargs
    assert kwargs["response_model"] is DeckOverviewExtraction
    assert kwargs["messages"][0]["content"][1] == {"type": "file", "file": {"file_id": "file-9"}}
    client.files.delete.assert_awaited_once_with("file-9")


async def test_structured_extraction_releases_file_on_failure(document) -> None:
    client = MagicMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-9"))
    client.files.delete = AsyncMock()

    structured = MagicMock()
    structured.chat.completions.create = AsyncMock(side_effect=_status_error(500))

    with patch("app.modules.extraction.extractor.instructor.from_openai", return_value=structured):
        with pytest.raises(UpstreamError):
            await ExtractorService(client=client).extract_structured(document)

    client.files.delete.assert_awaited_once_with("file-9")


# ---------------------------------------------------------------------------
# Strategy (b): run-based completion
# ---------------------------------------------------------------------------


async def test_analyze_normalizes_assistant_reply(document, assistants_client) -> None:
    client = assistants_client(
        reply='```json\n{"company_name": "Acme", "url": "www.acme.ai", "revenue": "$1.2M ARR"}\n```'
    )
    result = await ExtractorService(client=client).analyze(document)
    assert result.record.url == "https://acme.ai"
    assert result.record.revenue == "$1.2M ARR"
    assert result.record.funding_terms == ""
    assert len(client.released) == 4


async def test_structured_validation_exhaustion_becomes_upstream_error(document) -> None:
    client = MagicMock()
    client.files.create = AsyncMock(return_value=SimpleNamespace(id="file-4"))
    client.files.delete = AsyncMock()

    structured = MagicMock()
    structured.chat.completions.create = AsyncMock(
        side_effect=InstructorRetryException("validation failed", n_attempts=3, total_usage=0)
    )

    with patch("app.modules.extraction.extractor.instructor.from_openai", return_value=structured):
        with pytest.raises(UpstreamError) as exc_info:
            await ExtractorService(client=client).extract_structured(document)

    assert exc_info.value.message == "Structured output failed validation"
    assert exc_info.value.details == {"attempts": 3}
    client.files.delete.assert_awaited_once_with("file-4")
