"""Report delivery: short-lived signed links to generated report files."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request

from app.core.config import settings
from app.core.errors import InvalidInputError
from app.core.payload import read_json_body
from app.core.security import AuthenticatedUser, get_current_user
from app.core.supabase import SupabaseClient, get_supabase
from app.modules.reports.schemas import DownloadUrlRequest, DownloadUrlResponse

logger = structlog.get_logger()

router = APIRouter(tags=["reports"])


@router.post(
    "/get-report-download-url",
    response_model=DownloadUrlResponse,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": DownloadUrlRequest.model_json_schema()}},
        }
    },
)
async def get_report_download_url(
    request: Request,
    user: AuthenticatedUser = Depends(get_current_user),
    supabase: SupabaseClient = Depends(get_supabase),
) -> DownloadUrlResponse:
    """Mint a signed URL for one object in the reports bucket.

    The caller is verified before the body is read; the URL itself is minted
    with the service-role key, so nothing reaches storage for an
    unauthenticated call.
    """
    body = await read_json_body(request, DownloadUrlRequest)
    if not body.file_path:
        raise InvalidInputError("file_path is required")

    expires_in = body.expires_in
    if expires_in is None:
        expires_in = settings.signed_url_default_expiry_s
    if not 1 <= expires_in <= settings.signed_url_max_expiry_s:
        raise InvalidInputError(
            "expires_in out of range",
            details={"min": 1, "max": settings.signed_url_max_expiry_s},
        )

    signed_url = await supabase.create_signed_url(
        settings.reports_bucket, body.file_path, expires_in
    )
    logger.info(
        "Report download URL issued",
        user_id=user.id,
        file_path=body.file_path,
        expires_in=expires_in,
    )
    return DownloadUrlResponse(signed_url=signed_url, expires_in=expires_in)
