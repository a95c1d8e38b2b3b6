"""File storage collaborator used by media sync.

Wizard uploads live in a private Supabase Storage bucket. Only download is
needed by the sync engine; upload and signed-URL issuance belong to the
form renderer.

Provides:
- FileStorage: Protocol consumed by the sync executor
- SupabaseStorageClient: httpx implementation over the Storage REST API

No retries here: a failed download fails the sync attempt, and the whole
batch is retried by the backoff executor.
"""

from __future__ import annotations

from typing import Protocol
from urllib.parse import quote

import httpx
import structlog

logger = structlog.get_logger(__name__)


class StorageNotConfiguredError(RuntimeError):
    """Raised when storage credentials are missing."""


class FileStorage(Protocol):
    async def download_file(self, storage_key: str) -> bytes: ...


class SupabaseStorageClient:
    """Download objects from a Supabase Storage bucket.

    Args:
        url: Supabase project URL.
        service_role_key: Service role key (bypasses bucket policies).
        bucket: Bucket holding wizard uploads.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport override.
    """

    def __init__(
        self,
        url: str,
        service_role_key: str,
        bucket: str = "onboarding-uploads",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = url.rstrip("/") if url else ""
        self._key = service_role_key
        self._bucket = bucket
        self._timeout = timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._base_url and self._key)

    async def download_file(self, storage_key: str) -> bytes:
        """Download an object by storage key and return its bytes.

        Raises:
            StorageNotConfiguredError: Storage URL or key is missing.
            httpx.HTTPStatusError: Object missing or access denied.
        """
        if not self.configured:
            raise StorageNotConfiguredError(
                "File storage unavailable; SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured"
            )

        path = f"/storage/v1/object/{self._bucket}/{quote(storage_key)}"
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._key}",
                "apikey": self._key,
            },
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            response = await client.get(path)
            response.raise_for_status()
            content = response.content

        logger.debug("storage.file_downloaded", storage_key=storage_key, size=len(content))
        return content
