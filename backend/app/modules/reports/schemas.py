from __future__ import annotations

from pydantic import BaseModel


class DownloadUrlRequest(BaseModel):
    # Optional so a missing field is reported as a 400 by the handler.
    file_path: str | None = None
    expires_in: int | None = None


class DownloadUrlResponse(BaseModel):
    success: bool = True
    signed_url: str
    expires_in: int
