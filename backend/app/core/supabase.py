"""Thin async client for the Supabase Storage and Auth REST APIs.

Storage calls use the service-role key and therefore bypass row-level
security; callers must have authenticated the requesting user first.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote, urlsplit

import httpx
import structlog

from app.core.config import settings
from app.core.errors import (
    AuthenticationError,
    ConfigurationError,
    InvalidInputError,
    StorageError,
)

logger = structlog.get_logger()


def _object_path(bucket: str, path: str) -> str:
    return f"{quote(bucket)}/{quote(path.lstrip('/'))}"


def _error_detail(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or body
    return body


class SupabaseClient:
    """Storage + Auth REST wrapper. One instance per request."""

    def __init__(
        self,
        url: str | None = None,
        service_role_key: str | None = None,
        anon_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = (url if url is not None else settings.supabase_url).rstrip("/")
        self.service_role_key = (
            service_role_key if service_role_key is not None else settings.supabase_service_role_key
        )
        self.anon_key = anon_key if anon_key is not None else settings.supabase_anon_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        if not self.url:
            raise ConfigurationError("Supabase URL not configured")
        return httpx.AsyncClient(
            base_url=self.url,
            timeout=settings.storage_timeout_s,
            transport=self._transport,
        )

    def _service_headers(self) -> dict[str, str]:
        if not self.service_role_key:
            raise ConfigurationError("Supabase service role key not configured")
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
        }

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def create_signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        """Mint a time-limited download URL for one storage object."""
        headers = self._service_headers()
        async with self._client() as client:
            try:
                resp = await client.post(
                    f"/storage/v1/object/sign/{_object_path(bucket, path)}",
                    headers=headers,
                    json={"expiresIn": expires_in},
                )
            except httpx.HTTPError as exc:
                raise StorageError("Failed to create signed URL", details=str(exc)) from exc

        if resp.status_code != 200:
            logger.warning(
                "Signed URL request rejected",
                bucket=bucket,
                path=path,
                status=resp.status_code,
            )
            raise StorageError(
                "Failed to create signed URL",
                details=_error_detail(resp),
                status=resp.status_code,
            )

        body = resp.json()
        signed = body.get("signedURL") or body.get("signedUrl")
        if not signed:
            raise StorageError("No signed URL returned")
        if signed.startswith("http"):
            return signed
        return f"{self.url}/storage/v1/{signed.lstrip('/')}"

    async def download(self, bucket: str, path: str) -> bytes:
        """Download an object's bytes with service-role credentials."""
        headers = self._service_headers()
        async with self._client() as client:
            try:
                resp = await client.get(
                    f"/storage/v1/object/{_object_path(bucket, path)}",
                    headers=headers,
                )
            except httpx.HTTPError as exc:
                raise StorageError("Failed to download file from storage", details=str(exc)) from exc

        if resp.status_code != 200:
            raise StorageError(
                "Failed to download file from storage",
                details=_error_detail(resp),
                status=resp.status_code,
            )
        logger.info("Storage object downloaded", bucket=bucket, path=path, bytes=len(resp.content))
        return resp.content

    async def fetch_signed_object(self, signed_url: str) -> bytes:
        """GET a previously minted signed URL. Only https, and only our host when configured."""
        parts = urlsplit(signed_url)
        if parts.scheme != "https" or not parts.netloc:
            raise InvalidInputError("signedUrl must be an https URL")
        if self.url and parts.netloc.lower() != urlsplit(self.url).netloc.lower():
            raise InvalidInputError(
                "signedUrl must point at the configured storage host",
                details={"host": parts.netloc},
            )

        async with httpx.AsyncClient(
            timeout=settings.storage_timeout_s, transport=self._transport
        ) as client:
            try:
                resp = await client.get(signed_url)
            except httpx.HTTPError as exc:
                raise StorageError("Failed to fetch PDF from signed URL", details=str(exc)) from exc

        if resp.status_code != 200:
            raise StorageError(
                "Failed to fetch PDF from signed URL",
                details=_error_detail(resp),
                status=resp.status_code,
            )
        logger.info("Signed object fetched", host=parts.netloc, bytes=len(resp.content))
        return resp.content

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Resolve an access token to its user via GET /auth/v1/user."""
        if not self.anon_key:
            raise ConfigurationError("Supabase anon key not configured")
        async with self._client() as client:
            try:
                resp = await client.get(
                    "/auth/v1/user",
                    headers={
                        "apikey": self.anon_key,
                        "Authorization": f"Bearer {access_token}",
                    },
                )
            except httpx.HTTPError as exc:
                raise StorageError("Auth service unreachable", details=str(exc)) from exc

        if resp.status_code in (401, 403):
            raise AuthenticationError("Unable to authenticate user")
        if resp.status_code != 200:
            raise StorageError(
                "Auth service error",
                details=_error_detail(resp),
                status=resp.status_code,
            )
        user = resp.json()
        if not isinstance(user, dict) or not user.get("id"):
            raise AuthenticationError("Unable to authenticate user")
        return user


def get_supabase() -> SupabaseClient:
    return SupabaseClient()
