"""Artifact storage for images produced by tools."""

from .store import (
    MIME_EXTENSIONS,
    ArtifactStore,
    InMemoryArtifactStore,
    SupabaseArtifactStore,
    SupabaseStorageConfig,
    artifact_name,
    decode_base64,
    extension_for,
    rehome_images,
)

__all__ = [
    "MIME_EXTENSIONS",
    "ArtifactStore",
    "InMemoryArtifactStore",
    "SupabaseArtifactStore",
    "SupabaseStorageConfig",
    "artifact_name",
    "decode_base64",
    "extension_for",
    "rehome_images",
]
