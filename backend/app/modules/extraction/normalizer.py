"""Response normalizer: turns raw model text into a fixed, string-only record.

Parsing is two-stage behind ``parse_model_output()``:
  1. strict ``json.loads`` of the whole reply (markdown code fences stripped);
  2. decode from each opening brace in turn until one yields an object.

The result is a tagged ``ParseOutcome`` (parsed / degraded / failed). Nothing
in this module raises on bad model output: the worst case is an all-empty
record with the raw reply kept for manual inspection.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from urllib.parse import urlsplit

import structlog
from pydantic import BaseModel

from app.modules.extraction.schemas import CompanySpecs, DeckAnalysis, ParseStatus

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

PARSE_ERROR_MESSAGE = "Failed to parse as JSON"
LIST_DELIMITER = ", "

# Closed set of primary industries the company-specs instruction allows.
PRIMARY_INDUSTRIES = (
    "Tech / AI / SaaS",
    "Healthcare / Life Sciences",
    "Consumer",
    "FinTech",
    "Climate / Energy",
    "DeepTech / Frontier",
    "Manufacturing",
    "Other",
)

_INDUSTRY_ALIASES: dict[str, str] = {
    "techaisaas": "Tech / AI / SaaS",
    "tech": "Tech / AI / SaaS",
    "saas": "Tech / AI / SaaS",
    "software": "Tech / AI / SaaS",
    "healthcarelifesciences": "Healthcare / Life Sciences",
    "healthcare": "Healthcare / Life Sciences",
    "lifesciences": "Healthcare / Life Sciences",
    "biotech": "Healthcare / Life Sciences",
    "consumer": "Consumer",
    "fintech": "FinTech",
    "climateenergy": "Climate / Energy",
    "climate": "Climate / Energy",
    "energy": "Climate / Energy",
    "cleantech": "Climate / Energy",
    "deeptechfrontier": "DeepTech / Frontier",
    "deeptech": "DeepTech / Frontier",
    "manufacturing": "Manufacturing",
    "other": "Other",
}

# Keys the model sometimes uses instead of the requested one.
_FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("company_name",),
    "company_name": ("name",),
    "team_members": ("key_team_members",),
    "key_team_members": ("team_members",),
    "funding_sought": ("funding_terms",),
    "funding_terms": ("funding_sought",),
}


# ---------------------------------------------------------------------------
# Stage 1 + 2: tolerant parse
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParseOutcome:
    status: ParseStatus
    data: dict[str, Any] = field(default_factory=dict)
    raw_text: str = ""


def strip_code_fences(raw_text: str) -> str:
    """Strip markdown code fences (```json ... ```) from an LLM reply."""
    text = raw_text.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        text = text[first_newline + 1:] if first_newline != -1 else text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


_DECODER = json.JSONDecoder()

# Upper bound on opening braces tried per reply.
MAX_SCAN_CANDIDATES = 256


def extract_first_json_object(text: str) -> dict[str, Any] | None:
    """Return the first object that decodes from an opening brace in *text*.

    Each candidate is decoded in place with ``raw_decode``, so string literals
    and escapes are honoured and trailing prose is ignored.
    """
    start = text.find("{")
    tried = 0
    while start != -1 and tried < MAX_SCAN_CANDIDATES:
        tried += 1
        try:
            obj, _ = _DECODER.raw_decode(text, start)
        except (ValueError, RecursionError):
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def parse_model_output(raw_text: str | None) -> ParseOutcome:
    text = raw_text or ""

    try:
        obj = json.loads(strip_code_fences(text))
    except (ValueError, RecursionError):
        obj = None
    if isinstance(obj, dict):
        return ParseOutcome(status=ParseStatus.PARSED, data=obj, raw_text=text)

    obj = extract_first_json_object(text)
    if obj is not None:
        logger.info("Model output parsed via brace scan", chars=len(text))
        return ParseOutcome(status=ParseStatus.DEGRADED, data=obj, raw_text=text)

    logger.warning("Model output is not JSON", chars=len(text))
    return ParseOutcome(status=ParseStatus.FAILED, data={}, raw_text=text)


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def _member_parts(entry: dict[str, Any]) -> tuple[str, str, str]:
    name = to_text(entry.get("name"))
    role = to_text(entry.get("role") or entry.get("title"))
    employer = to_text(
        entry.get("employer") or entry.get("worked_at") or entry.get("previous_employer")
    )
    return name, role, employer


def _format_member(entry: dict[str, Any]) -> str:
    """Render a team-member dict as ``name (role)`` / ``name (role, employer)``."""
    name, role, employer = _member_parts(entry)
    extras = [part for part in (role, employer) if part]
    if name and extras:
        return f"{name} ({', '.join(extras)})"
    if name:
        return name
    return " | ".join(t for t in (to_text(v) for v in entry.values()) if t)


def to_text(value: Any) -> str:
    """Coerce any JSON value into the single string a record field holds."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        parts = [_format_member(v) if isinstance(v, dict) else to_text(v) for v in value]
        return LIST_DELIMITER.join(p for p in parts if p)
    if isinstance(value, dict):
        if "name" in value:
            return _format_member(value)
        return LIST_DELIMITER.join(
            f"{k}: {text}" for k, text in ((k, to_text(v)) for k, v in value.items()) if text
        )
    return str(value)


def pipe_team_members(value: Any) -> str:
    """Render team members as ``Name | Role | Employer; ...``."""
    if isinstance(value, dict):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return to_text(value)
    entries = [
        " | ".join(p for p in _member_parts(v) if p) if isinstance(v, dict) else to_text(v)
        for v in value
    ]
    return "; ".join(e for e in entries if e)


def _industry_key(text: str) -> str:
    return re.sub(r"[^a-z]", "", text.lower())


def normalize_industry(value: str) -> str:
    """Snap ``Primary; Sub`` onto the closed primary taxonomy."""
    if not value:
        return ""
    primary, _, sub = value.partition(";")
    key = _industry_key(primary)

    match = _INDUSTRY_ALIASES.get(key)
    if match is None:
        for alias in sorted(_INDUSTRY_ALIASES, key=len, reverse=True):
            if len(alias) >= 4 and key.startswith(alias):
                match = _INDUSTRY_ALIASES[alias]
                break

    if match is None:
        return f"Other; {value.strip()}"
    sub = sub.strip()
    return f"{match}; {sub}" if sub else match


def normalize_url(value: str) -> str:
    """``www.Acme.io/`` → ``https://acme.io``. Non-URLs are returned unchanged."""
    raw = value.strip()
    if not raw:
        return ""
    candidate = raw if "://" in raw else f"https://{raw}"
    parts = urlsplit(candidate)
    host = parts.netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    if not host or "." not in host or " " in host:
        return raw
    return f"https://{host}{parts.path.rstrip('/')}"


FIELD_NORMALIZERS: dict[type[BaseModel], dict[str, Callable[[str], str]]] = {
    CompanySpecs: {"industry": normalize_industry, "url": normalize_url},
    DeckAnalysis: {"url": normalize_url},
}

# Raw value -> text, for fields whose list layout differs from ``to_text``.
FIELD_FORMATTERS: dict[type[BaseModel], dict[str, Callable[[Any], str]]] = {
    CompanySpecs: {"key_team_members": pipe_team_members},
}


# ---------------------------------------------------------------------------
# Record assembly
# ---------------------------------------------------------------------------


@dataclass
class NormalizedExtraction(Generic[M]):
    record: M
    status: ParseStatus
    raw_response: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not ParseStatus.FAILED

    def payload(self) -> dict[str, Any]:
        """Record fields, plus the raw reply and a parse error when parsing failed."""
        data = self.record.model_dump()
        if self.status is ParseStatus.FAILED:
            data["raw_response"] = self.raw_response
            data["parse_error"] = PARSE_ERROR_MESSAGE
        return data


def _lookup(data: dict[str, Any], name: str) -> Any:
    value = data.get(name)
    if value in (None, "", []):
        for alias in _FIELD_ALIASES.get(name, ()):
            if data.get(alias) not in (None, "", []):
                return data[alias]
    return value


def normalize(outcome: ParseOutcome, model: type[M]) -> NormalizedExtraction[M]:
    """Project a parse outcome onto *model*'s field set. Never raises."""
    normalizers = FIELD_NORMALIZERS.get(model, {})
    formatters = FIELD_FORMATTERS.get(model, {})
    values: dict[str, str] = {}
    for name in model.model_fields:
        try:
            text = formatters.get(name, to_text)(_lookup(outcome.data, name))
            if text and name in normalizers:
                text = normalizers[name](text)
        except Exception:
            logger.warning("Field normalization failed", field=name, exc_info=True)
            text = ""
        values[name] = text

    return NormalizedExtraction(
        record=model(**values),
        status=outcome.status,
        raw_response=outcome.raw_text,
    )


def normalize_model_output(raw_text: str | None, model: type[M]) -> NormalizedExtraction[M]:
    return normalize(parse_model_output(raw_text), model)
