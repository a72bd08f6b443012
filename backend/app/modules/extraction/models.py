"""Extraction persistence models.

ExtractedData is owned (and migrated) by this service. Company and
DocumentRecord map the subset of platform tables this service reads or
updates; their schema is managed by the platform, not by our migrations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ExtractedData(Base):
    """One deck analysis result. Insert-only."""

    __tablename__ = "extracted_data"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    file_path: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    extracted_info: Mapped[dict] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Company(Base):
    """Platform ``companies`` row, limited to the columns an analysis fills in."""

    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(Text)
    industry: Mapped[Optional[str]] = mapped_column(Text)
    key_team_members: Mapped[Optional[str]] = mapped_column(Text)
    url: Mapped[Optional[str]] = mapped_column(Text)
    valuation: Mapped[Optional[str]] = mapped_column(Text)
    revenue: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    funding_terms: Mapped[Optional[str]] = mapped_column(Text)


class DocumentRecord(Base):
    """Platform ``uploaded-files`` row (read-only)."""

    __tablename__ = "uploaded-files"

    id: Mapped[str] = mapped_column(UUID(as_uuid=False), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    original_filename: Mapped[Optional[str]] = mapped_column(Text)
