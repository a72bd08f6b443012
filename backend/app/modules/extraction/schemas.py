"""Deck extraction schemas: field sets returned to the web client and API envelopes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Extraction field sets: every field is a string, "" when unknown
# ---------------------------------------------------------------------------


class CompanySpecs(BaseModel):
    """Company profile extracted from a pitch deck (find-company-specs)."""

    name: str = ""
    url: str = ""
    description: str = ""
    industry: str = Field("", description="'PrimaryIndustry; Sub-Industry'")
    serviceable_market_size: str = ""
    country: str = ""
    key_team_members: str = Field("", description="'Name | Role | Worked-at; ...'")
    revenue: str = ""
    valuation: str = ""
    funding_sought: str = ""


class DeckOverview(BaseModel):
    """Minimal company overview (show-me-details, parse-pdf-openai)."""

    company_name: str = ""
    industry: str = ""
    key_team_members: str = ""


class KeyInfo(BaseModel):
    """Key info for a stored upload (get-key-info)."""

    company_name: str = ""
    industry: str = ""
    team_members: str = ""


class DeckAnalysis(BaseModel):
    """Full deck analysis persisted to extracted_data (analyze-pdf)."""

    company_name: str = ""
    industry: str = ""
    key_team_members: str = ""
    url: str = ""
    valuation: str = ""
    revenue: str = ""
    description: str = ""
    funding_terms: str = ""


# ---------------------------------------------------------------------------
# Structured-output model (instructor); normalized into DeckOverview
# ---------------------------------------------------------------------------


class TeamMember(BaseModel):
    name: str
    role: str = ""


class DeckOverviewExtraction(BaseModel):
    company_name: str | None = None
    industry: str | None = None
    key_team_members: list[TeamMember] | None = None


# ---------------------------------------------------------------------------
# Outbound model request
# ---------------------------------------------------------------------------


class ExtractionRequest(BaseModel):
    """One chat-completion request. Frozen: built per call, never edited after sending."""

    model_config = {"frozen": True}

    model: str
    system_instruction: str
    user_content: tuple[dict[str, Any], ...]
    temperature: float = Field(0.1, ge=0.0, le=0.1)
    max_tokens: int = 2048
    response_format: Literal["json_object", "text"] = "json_object"

    def messages(self) -> list[dict[str, Any]]:
        return [
            {"role": "system", "content": self.system_instruction},
            {"role": "user", "content": list(self.user_content)},
        ]


# ---------------------------------------------------------------------------
# API request / response schemas
# ---------------------------------------------------------------------------


class ParseStatus(str, Enum):
    PARSED = "parsed"
    DEGRADED = "degraded"
    FAILED = "failed"


class ExtractionResponse(BaseModel):
    """Envelope for the extraction endpoints."""

    success: bool
    data: dict[str, Any]
    parse_status: ParseStatus


class KeyInfoRequest(BaseModel):
    model_config = {"populate_by_name": True}

    file_id: str | None = Field(None, alias="fileId")
    file_path: str | None = Field(None, alias="filePath")


class ParsePdfRequest(BaseModel):
    model_config = {"populate_by_name": True}

    signed_url: str | None = Field(None, alias="signedUrl")


class AnalyzePdfRequest(BaseModel):
    file_path: str | None = None
    company_id: str | None = None


class StoredExtraction(BaseModel):
    """Row of extracted_data as returned to the caller."""

    model_config = {"from_attributes": True}

    id: UUID
    file_path: str
    extracted_info: dict[str, Any]
    created_at: datetime | None = None


class AnalyzePdfResponse(BaseModel):
    success: bool = True
    data: StoredExtraction
    extracted_info: dict[str, Any]
    parse_status: ParseStatus
    company_updated: bool = False
