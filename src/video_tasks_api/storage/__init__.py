"""Metadata storage backends and models."""

from video_tasks_api.storage.base import MetadataStore
from video_tasks_api.storage.files import FileMetadataStore
from video_tasks_api.storage.memory import InMemoryMetadataStore
from video_tasks_api.storage.models import ArtifactMetadata
from video_tasks_api.storage.postgres import PostgresMetadataStore

__all__ = [
    "ArtifactMetadata",
    "FileMetadataStore",
    "InMemoryMetadataStore",
    "MetadataStore",
    "PostgresMetadataStore",
]
