"""Binary artifact storage and image rehoming.

Tool results may carry images as inline base64. Rehoming uploads each one
to an artifact store and replaces the inline data with the public URL, so
the model conversation and chat transcript only carry references.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional, Protocol, runtime_checkable

import httpx

from mcp_chat.errors import ArtifactUploadError
from mcp_chat.mcp.models import ImageContent, NormalizedToolResult

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: Dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/svg+xml": "svg",
}


def extension_for(mime_type: str) -> str:
    """File extension for an image mime type, ``png`` when unknown."""
    return MIME_EXTENSIONS.get(mime_type.lower(), "png")


def artifact_name(mime_type: str) -> str:
    """Timestamp-derived object name, e.g. ``1718000000000_a1b2c3.png``."""
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:6]}.{extension_for(mime_type)}"


def decode_base64(data: str) -> bytes:
    """Decode raw base64 or a ``data:`` URL payload.

    Raises:
        ArtifactUploadError: The payload is not valid base64.
    """
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArtifactUploadError(f"Invalid base64 image data: {e}") from e


@runtime_checkable
class ArtifactStore(Protocol):
    """Stores binary artifacts and returns a public reference."""

    async def upload(self, data: str, mime_type: str) -> str:
        """Upload base64 ``data`` and return its public URL.

        Raises:
            ArtifactUploadError: The upload failed.
        """
        ...


@dataclass
class SupabaseStorageConfig:
    """Configuration for Supabase Storage uploads.

    Attributes:
        url: Project URL, e.g. ``https://xyz.supabase.co``.
        key: Service or anon key used as bearer token.
        bucket: Target bucket; must allow public reads.
        timeout: HTTP timeout in seconds.
    """

    url: str
    key: str
    bucket: str = "chart-image"
    timeout: float = 30.0


class SupabaseArtifactStore:
    """Uploads artifacts through the Supabase Storage REST API."""

    def __init__(
        self,
        config: SupabaseStorageConfig,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._client = client
        self._owns_client = client is None

    def _base(self) -> str:
        return self.config.url.rstrip("/")

    def public_url(self, name: str) -> str:
        return f"{self._base()}/storage/v1/object/public/{self.config.bucket}/{name}"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def upload(self, data: str, mime_type: str) -> str:
        payload = decode_base64(data)
        name = artifact_name(mime_type)
        client = await self._get_client()
        try:
            response = await client.post(
                f"{self._base()}/storage/v1/object/{self.config.bucket}/{name}",
                content=payload,
                headers={
                    "Authorization": f"Bearer {self.config.key}",
                    "apikey": self.config.key,
                    "Content-Type": mime_type,
                    "x-upsert": "false",
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ArtifactUploadError(
                f"Upload of {name} failed with HTTP {e.response.status_code}: {e.response.text}"
            ) from e
        except httpx.HTTPError as e:
            raise ArtifactUploadError(f"Upload of {name} failed: {e}") from e

        url = self.public_url(name)
        logger.info(f"Uploaded artifact {name} ({len(payload)} bytes)")
        return url

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


@dataclass
class InMemoryArtifactStore:
    """Keeps artifacts in memory; useful for tests and local runs."""

    base_url: str = "memory://artifacts"
    objects: Dict[str, bytes] = field(default_factory=dict)

    async def upload(self, data: str, mime_type: str) -> str:
        name = artifact_name(mime_type)
        self.objects[name] = decode_base64(data)
        return f"{self.base_url}/{name}"


async def rehome_images(
    result: NormalizedToolResult,
    store: Optional[ArtifactStore],
) -> int:
    """Replace inline images in ``result`` with uploaded URLs, in place.

    A failed upload keeps the inline data and is only logged.

    Returns:
        Number of images rehomed.
    """
    if store is None:
        return 0

    rehomed = 0
    for item in result.content:
        if not isinstance(item, ImageContent) or not item.is_inline:
            continue
        try:
            url = await store.upload(item.data, item.mime_type)
        except Exception as e:
            logger.warning(f"Keeping inline {item.mime_type} image, upload failed: {e}")
            continue
        item.url = url
        item.data = None
        rehomed += 1
    return rehomed
