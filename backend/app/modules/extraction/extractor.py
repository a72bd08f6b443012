"""Pitch Fork Extractor Service: builds model requests and runs them against OpenAI.

Three completion strategies share one lazily built ``AsyncOpenAI`` client:

  * ``extract``: one chat completion with the PDF inlined as a data URI,
    JSON-object output hint and a tolerant parse.
  * ``extract_structured``: instructor-wrapped completion against an uploaded
    file reference, validated by a pydantic model.
  * ``analyze``: run-based completion (Assistants + file_search),
    see ``assistant.AssistantSession``.

Every strategy ends in the response normalizer, so callers always receive a
``NormalizedExtraction`` with a fixed, string-only field set.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import instructor
import structlog
from instructor.core import InstructorRetryException
from openai import AsyncOpenAI
from pydantic import BaseModel

from app.core.config import settings
from app.core.errors import ConfigurationError, UpstreamError
from app.modules.extraction.assistant import AssistantSession, TransientResources
from app.modules.extraction.normalizer import (
    NormalizedExtraction,
    ParseOutcome,
    normalize,
    normalize_model_output,
)
from app.modules.extraction.pdf_service import UploadedFile
from app.modules.extraction.prompts import (
    COMPANY_SPECS_INSTRUCTION,
    DECK_ANALYSIS_PROMPT,
    DECK_OVERVIEW_INSTRUCTION,
    KEY_INFO_INSTRUCTION,
    STRUCTURED_OVERVIEW_INSTRUCTION,
    USER_PROMPTS,
)
from app.modules.extraction.schemas import (
    CompanySpecs,
    DeckAnalysis,
    DeckOverview,
    DeckOverviewExtraction,
    ExtractionRequest,
    KeyInfo,
    ParseStatus,
)
from app.modules.extraction.upstream import openai_errors

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Extraction profiles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractionProfile:
    """Everything that differs between the synchronous extraction endpoints."""

    name: str
    instruction: str
    result_model: type[BaseModel]
    model_setting: str = "extraction_model"
    include_text_layer: bool = False

    @property
    def model(self) -> str:
        return getattr(settings, self.model_setting)

    @property
    def user_prompt(self) -> str:
        return USER_PROMPTS[self.name]


COMPANY_SPECS = ExtractionProfile(
    name="company_specs",
    instruction=COMPANY_SPECS_INSTRUCTION,
    result_model=CompanySpecs,
    model_setting="company_specs_model",
    include_text_layer=True,
)
DECK_OVERVIEW = ExtractionProfile(
    name="deck_overview",
    instruction=DECK_OVERVIEW_INSTRUCTION,
    result_model=DeckOverview,
)
KEY_INFO = ExtractionProfile(
    name="key_info",
    instruction=KEY_INFO_INSTRUCTION,
    result_model=KeyInfo,
)


# ---------------------------------------------------------------------------
# Extractor Service
# ---------------------------------------------------------------------------


class ExtractorService:
    """OpenAI-backed extraction for one request.

    The client is built on first use so a missing API key surfaces as a
    ``ConfigurationError`` before any outbound call is attempted.
    """

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.openai_api_key:
                raise ConfigurationError("OpenAI API key not configured")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.openai_timeout_s,
                max_retries=settings.extraction_max_retries,
            )
        return self._client

    # --- Request construction ------------------------------------------------

    @staticmethod
    def build_request(document: UploadedFile, profile: ExtractionProfile) -> ExtractionRequest:
        """Assemble the chat request for *profile*, with the PDF inlined as a data URI."""
        parts: list[dict[str, Any]] = [
            {"type": "text", "text": profile.user_prompt},
            {
                "type": "file",
                "file": {"filename": document.filename, "file_data": document.to_data_uri()},
            },
        ]
        if profile.include_text_layer and settings.extraction_include_text_layer and document.text:
            excerpt = document.text[: settings.extraction_text_char_limit]
            parts.append(
                {
                    "type": "text",
                    "text": f"Text layer of the deck (may be incomplete):\n\n{excerpt}",
                }
            )

        return ExtractionRequest(
            model=profile.model,
            system_instruction=profile.instruction,
            user_content=tuple(parts),
            temperature=settings.extraction_temperature,
            max_tokens=settings.extraction_max_tokens,
        )

    # --- Strategy (a): synchronous chat completion ---------------------------

    async def complete(self, request: ExtractionRequest) -> str:
        """Send one chat completion and return the raw reply text."""
        client = self.client
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages(),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.response_format == "json_object":
            kwargs["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        with openai_errors("chat completion"):
            response = await client.chat.completions.create(**kwargs)
        duration_ms = int((time.monotonic() - start) * 1000)

        choices = getattr(response, "choices", None)
        if not choices or choices[0].message is None:
            logger.error("OpenAI response has no choices", model=request.model)
            raise UpstreamError("Invalid response from OpenAI")

        usage = getattr(response, "usage", None)
        logger.info(
            "Chat completion finished",
            model=request.model,
            duration_ms=duration_ms,
            prompt_tokens=getattr(usage, "prompt_tokens", None),
            completion_tokens=getattr(usage, "completion_tokens", None),
        )
        return choices[0].message.content or ""

    async def extract(
        self, document: UploadedFile, profile: ExtractionProfile
    ) -> NormalizedExtraction:
        request = self.build_request(document, profile)
        logger.info(
            "Extraction started",
            kind=profile.name,
            model=request.model,
            filename=document.filename,
            pages=document.page_count,
        )
        raw = await self.complete(request)
        result = normalize_model_output(raw, profile.result_model)
        logger.info("Extraction normalized", kind=profile.name, parse_status=result.status.value)
        return result

    # --- Strategy (c): structured completion via instructor ------------------

    async def extract_structured(self, document: UploadedFile) -> NormalizedExtraction[DeckOverview]:
        """Upload the PDF, ask for a validated ``DeckOverviewExtraction``, release the upload."""
        client = self.client
        structured = instructor.from_openai(client)

        async with TransientResources(client, logger=logger) as resources:
            file_id = await resources.upload_file(document)
            try:
                with openai_errors("structured completion"):
                    result = await structured.chat.completions.create(
                        model=settings.extraction_model,
                        response_model=DeckOverviewExtraction,
                        max_retries=settings.extraction_max_retries,
                        temperature=0,
                        messages=[
                            {
                                "role": "user",
                                "content": [
                                    {"type": "text", "text": STRUCTURED_OVERVIEW_INSTRUCTION},
                                    {"type": "file", "file": {"file_id": file_id}},
                                ],
                            }
                        ],
                    )
            except InstructorRetryException as exc:
                logger.error("Structured output failed validation", error=str(exc))
                raise UpstreamError(
                    "Structured output failed validation",
                    details={"attempts": getattr(exc, "n_attempts", None)},
                ) from exc

        outcome = ParseOutcome(
            status=ParseStatus.PARSED,
            data=result.model_dump(),
            raw_text=result.model_dump_json(),
        )
        return normalize(outcome, DeckOverview)

    # --- Strategy (b): run-based completion -----------------------------------

    async def analyze(
        self, document: UploadedFile, prompt: str = DECK_ANALYSIS_PROMPT
    ) -> NormalizedExtraction[DeckAnalysis]:
        session = AssistantSession(self.client, model=settings.assistant_model, logger=logger)
        raw = await session.run(document, prompt)
        result = normalize_model_output(raw, DeckAnalysis)
        logger.info("Deck analysis normalized", parse_status=result.status.value)
        return result


def get_extractor() -> ExtractorService:
    """FastAPI dependency: one service (and client) per request."""
    return ExtractorService()
