"""Extraction persistence: DB queries for ExtractedData, Company and DocumentRecord."""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UpstreamError
from app.modules.extraction.models import Company, DocumentRecord, ExtractedData
from app.modules.extraction.schemas import DeckAnalysis

logger = structlog.get_logger()

# DeckAnalysis field -> companies column
_COMPANY_COLUMNS: dict[str, str] = {
    "company_name": "name",
    "industry": "industry",
    "key_team_members": "key_team_members",
    "url": "url",
    "valuation": "valuation",
    "revenue": "revenue",
    "description": "description",
    "funding_terms": "funding_terms",
}


async def store_extraction(
    db: AsyncSession,
    file_path: str,
    extracted_info: dict,
) -> ExtractedData:
    """Insert one extracted_data row and return it with id/created_at populated."""
    row = ExtractedData(file_path=file_path, extracted_info=extracted_info)
    db.add(row)
    try:
        await db.flush()
        await db.refresh(row)
    except SQLAlchemyError as exc:
        logger.error("Failed to store extracted data", file_path=file_path, error=str(exc))
        cause = getattr(exc, "orig", None) or exc
        raise UpstreamError("Failed to store extracted data", details=str(cause)) from exc

    logger.info("Extracted data stored", id=str(row.id), file_path=file_path)
    return row


async def get_document_record(db: AsyncSession, file_id: str) -> DocumentRecord | None:
    """Return the uploaded-files row for *file_id* (or None)."""
    try:
        uuid.UUID(file_id)
    except ValueError:
        return None
    result = await db.execute(select(DocumentRecord).where(DocumentRecord.id == file_id))
    return result.scalar_one_or_none()


def company_id_for(file_path: str, company_id: str | None = None) -> str:
    """Explicit id wins; otherwise the first segment of ``<company_id>/<file>``."""
    if company_id:
        return company_id
    return file_path.split("/", 1)[0]


async def update_company(db: AsyncSession, company_id: str, analysis: DeckAnalysis) -> bool:
    """Copy non-empty analysis fields onto the company row.

    Runs inside a SAVEPOINT: a failed update is logged and rolled back on its
    own, leaving the stored extraction intact. Returns whether a row changed.
    """
    values = {
        column: getattr(analysis, field)
        for field, column in _COMPANY_COLUMNS.items()
        if getattr(analysis, field)
    }
    if not values:
        logger.info("No company fields to update", company_id=company_id)
        return False

    try:
        async with db.begin_nested():
            result = await db.execute(
                update(Company).where(Company.id == company_id).values(**values)
            )
    except SQLAlchemyError as exc:
        logger.warning("Company update failed", company_id=company_id, error=str(exc))
        return False

    updated = (result.rowcount or 0) > 0
    logger.info("Company updated", company_id=company_id, updated=updated, fields=sorted(values))
    return updated
