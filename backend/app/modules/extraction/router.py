"""Pitch Fork Extraction API: deck intake endpoints.

Upload-based (multipart ``file``):
  - /show-me-details: company name, industry, team (inline PDF)
  - /find-company-specs-from-pitchdeck: full company profile (inline PDF + text layer)

Storage-based (JSON body):
  - /get-key-info: uploaded-files record → storage download → chat completion
  - /parse-pdf-openai: signed URL fetch → structured completion (instructor)
  - /analyze-pdf: storage download → assistant run → extracted_data + companies
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, File, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cancellation import cancel_on_disconnect
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import InvalidInputError, NotFoundError
from app.core.supabase import SupabaseClient, get_supabase
from app.modules.extraction.extractor import (
    COMPANY_SPECS,
    DECK_OVERVIEW,
    KEY_INFO,
    ExtractorService,
    get_extractor,
)
from app.modules.extraction.normalizer import NormalizedExtraction
from app.modules.extraction.pdf_service import load_pdf, read_upload
from app.modules.extraction.schemas import (
    AnalyzePdfRequest,
    AnalyzePdfResponse,
    ExtractionResponse,
    KeyInfoRequest,
    ParsePdfRequest,
    StoredExtraction,
)
from app.modules.extraction.service import (
    company_id_for,
    get_document_record,
    store_extraction,
    update_company,
)

logger = structlog.get_logger()

router = APIRouter(tags=["extraction"])


def _respond(result: NormalizedExtraction) -> ExtractionResponse:
    return ExtractionResponse(
        success=result.ok,
        data=result.payload(),
        parse_status=result.status,
    )


def _filename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1] or "document.pdf"


# ---------------------------------------------------------------------------
# Upload-based extraction
# ---------------------------------------------------------------------------


@router.post("/show-me-details", response_model=ExtractionResponse)
async def show_me_details(
    request: Request,
    file: UploadFile | None = File(None, description="Pitch deck PDF"),
    extractor: ExtractorService = Depends(get_extractor),
) -> ExtractionResponse:
    """Extract company name, industry and key team members from an uploaded deck."""
    document = await read_upload(file)
    result = await cancel_on_disconnect(request, extractor.extract(document, DECK_OVERVIEW))
    return _respond(result)


@router.post("/find-company-specs-from-pitchdeck", response_model=ExtractionResponse)
async def find_company_specs(
    request: Request,
    file: UploadFile | None = File(None, description="Pitch deck PDF"),
    extractor: ExtractorService = Depends(get_extractor),
) -> ExtractionResponse:
    """Extract the full company profile (ten string fields) from an uploaded deck."""
    document = await read_upload(file)
    result = await cancel_on_disconnect(request, extractor.extract(document, COMPANY_SPECS))
    return _respond(result)


# ---------------------------------------------------------------------------
# Storage-based extraction
# ---------------------------------------------------------------------------


@router.post("/get-key-info", response_model=ExtractionResponse)
async def get_key_info(
    request: Request,
    body: KeyInfoRequest,
    db: AsyncSession = Depends(get_db),
    supabase: SupabaseClient = Depends(get_supabase),
    extractor: ExtractorService = Depends(get_extractor),
) -> ExtractionResponse:
    if not body.file_id or not body.file_path:
        raise InvalidInputError("No file ID or file path provided")

    record = await get_document_record(db, body.file_id)
    if record is None:
        raise NotFoundError("File not found in database", details={"file_id": body.file_id})

    filename = record.original_filename or record.name
    if not filename.lower().endswith(".pdf"):
        raise InvalidInputError("Only PDF files are supported", details={"filename": filename})

    logger.info("Key info request", file_id=body.file_id, file_path=body.file_path)
    content = await supabase.download(settings.documents_bucket, body.file_path)
    document = load_pdf(content, filename)

    result = await cancel_on_disconnect(request, extractor.extract(document, KEY_INFO))
    return _respond(result)


@router.post("/parse-pdf-openai", response_model=ExtractionResponse)
async def parse_pdf_openai(
    request: Request,
    body: ParsePdfRequest,
    supabase: SupabaseClient = Depends(get_supabase),
    extractor: ExtractorService = Depends(get_extractor),
) -> ExtractionResponse:
    if not body.signed_url:
        raise InvalidInputError("Missing signedUrl")

    content = await supabase.fetch_signed_object(body.signed_url)
    path = body.signed_url.split("?", 1)[0]
    document = load_pdf(content, _filename(path))

    result = await cancel_on_disconnect(request, extractor.extract_structured(document))
    return _respond(result)


@router.post("/analyze-pdf", response_model=AnalyzePdfResponse)
async def analyze_pdf(
    request: Request,
    body: AnalyzePdfRequest,
    db: AsyncSession = Depends(get_db),
    supabase: SupabaseClient = Depends(get_supabase),
    extractor: ExtractorService = Depends(get_extractor),
) -> AnalyzePdfResponse:
    """Analyze a stored deck with an assistant run, persist the result, update the company.

    An unparseable reply is still stored (with ``raw_response`` and
    ``parse_error``) but never copied onto the company row.
    """
    if not body.file_path:
        raise InvalidInputError("file_path is required")

    content = await supabase.download(settings.documents_bucket, body.file_path)
    document = load_pdf(content, _filename(body.file_path))

    result = await cancel_on_disconnect(request, extractor.analyze(document))
    payload = result.payload()

    row = await store_extraction(db, body.file_path, payload)

    company_updated = False
    if result.ok:
        company_updated = await update_company(
            db, company_id_for(body.file_path, body.company_id), result.record
        )

    return AnalyzePdfResponse(
        data=StoredExtraction.model_validate(row),
        extracted_info=payload,
        parse_status=result.status,
        company_updated=company_updated,
    )
