"""Supabase Storage integration for prototype uploads and deployments.

Two buckets are involved:
  uploads     — private; holds the original archive or HTML file at
                ``{user_id}/{prototype_id}.{ext}``
  deployments — public; holds the published site at ``{prototype_id}/...``

The supabase client is synchronous, so every network call is pushed to a
worker thread to keep the event loop free while a deployment publishes
many files concurrently. The service role key is used server-side only.

Security:
  - `validate_path()` rejects any path containing `..` or null bytes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from supabase import Client, create_client

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def validate_path(path: str) -> None:
    """Reject storage paths that could be used for path traversal.

    Raises:
        ValueError: If the path is empty or contains invalid components.
    """
    if not path:
        raise ValueError("Storage path must not be empty")
    if ".." in path:
        raise ValueError(
            f"Invalid storage path, path traversal detected: {path!r}"
        )
    if "\x00" in path:
        raise ValueError(
            f"Invalid storage path, null byte detected: {path!r}"
        )


class PrototypeStorage:
    """Thin async facade over the two prototype storage buckets."""

    def __init__(self, client: Client, uploads_bucket: str, deployments_bucket: str) -> None:
        self._client = client
        self.uploads_bucket = uploads_bucket
        self.deployments_bucket = deployments_bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "PrototypeStorage":
        client = create_client(settings.supabase_url, settings.supabase_service_key)
        return cls(client, settings.uploads_bucket, settings.deployments_bucket)

    async def ensure_buckets(self) -> None:
        """Create the uploads (private) and deployments (public) buckets if missing."""
        for bucket, public in (
            (self.uploads_bucket, False),
            (self.deployments_bucket, True),
        ):
            await asyncio.to_thread(self._ensure_bucket, bucket, public)

    def _ensure_bucket(self, bucket: str, public: bool) -> None:
        existing = {b.id if hasattr(b, "id") else b["id"] for b in self._client.storage.list_buckets()}
        if bucket in existing:
            return
        logger.info("Creating storage bucket %s (public=%s)", bucket, public)
        self._client.storage.create_bucket(bucket, options={"public": public})

    async def download_upload(self, path: str) -> bytes:
        """Fetch the raw bytes of an uploaded source file."""
        validate_path(path)
        bucket = self._client.storage.from_(self.uploads_bucket)
        return await asyncio.to_thread(bucket.download, path)

    async def store_upload(self, path: str, data: bytes, content_type: str) -> None:
        """Store a user's source file in the private uploads bucket."""
        validate_path(path)
        await self._upload(self.uploads_bucket, path, data, content_type, upsert=False)

    async def publish(self, path: str, data: bytes, content_type: str) -> None:
        """Write one file into the public deployments bucket (overwriting)."""
        validate_path(path)
        await self._upload(self.deployments_bucket, path, data, content_type, upsert=True)

    async def _upload(
        self, bucket_name: str, path: str, data: bytes, content_type: str, upsert: bool
    ) -> None:
        bucket = self._client.storage.from_(bucket_name)
        options: dict[str, Any] = {
            "content-type": content_type,
            "upsert": "true" if upsert else "false",
        }
        await asyncio.to_thread(bucket.upload, path, data, options)

    def public_url(self, path: str) -> Optional[str]:
        """Resolve the public URL of a deployed file, or None if unavailable."""
        validate_path(path)
        result = self._client.storage.from_(self.deployments_bucket).get_public_url(path)
        # Older clients return {"publicURL": ...}; current ones return a str.
        if isinstance(result, dict):
            result = result.get("publicURL") or result.get("publicUrl")
        return result.rstrip("?") if result else None


def get_storage(settings: Settings = Depends(get_settings)) -> PrototypeStorage:
    """FastAPI dependency providing the storage facade."""
    if not settings.supabase_service_key:
        logger.error("SUPABASE_SERVICE_KEY not configured, storage unavailable")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server configuration error",
        )
    return PrototypeStorage.from_settings(settings)
