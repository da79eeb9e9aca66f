"""Chunk storage port for caify.

This module provides:
- Abstract async interface for chunk storage (has/get/put)
- MemoryStorage for in-process sync and testing
- LocalFSStorage for chunks on a local filesystem
- S3Storage for S3-compatible object stores (OVH, AWS, MinIO)

Chunks are keyed by their lowercase hex hash. Storage only needs
read-your-writes for a single caller; ``put`` must tolerate being retried
with the same bytes for the same hash.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

from caify.core.types import CaifyError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class StorageError(CaifyError):
    """Raised when a chunk cannot be written to storage."""


class ChunkStorage(ABC):
    """Abstract interface for content-addressed chunk storage."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where chunks are stored."""

    @abstractmethod
    async def has(self, chunk_hash: str) -> bool:
        """Check if a chunk exists in storage.

        Args:
            chunk_hash: Hex hash of the chunk.

        Returns:
            True if chunk exists, False otherwise.
        """

    @abstractmethod
    async def get(self, chunk_hash: str) -> bytes | None:
        """Retrieve a chunk.

        Args:
            chunk_hash: Hex hash of the chunk.

        Returns:
            Chunk data, or None if the chunk is not stored.
        """

    @abstractmethod
    async def put(self, chunk_hash: str, data: bytes) -> None:
        """Store a chunk.

        Args:
            chunk_hash: Hex hash of the chunk.
            data: Chunk bytes.

        Raises:
            StorageError: If the write failed.
        """


class MemoryStorage(ChunkStorage):
    """Dict-backed storage.

    Can wrap an existing mapping, such as the chunk map returned by
    :func:`caify.core.chunking.build`.
    """

    def __init__(self, chunks: dict[str, bytes] | None = None) -> None:
        self.chunks: dict[str, bytes] = chunks if chunks is not None else {}

    @property
    def location(self) -> str:
        return f"Memory: {len(self.chunks)} chunks"

    async def has(self, chunk_hash: str) -> bool:
        return chunk_hash in self.chunks

    async def get(self, chunk_hash: str) -> bytes | None:
        return self.chunks.get(chunk_hash)

    async def put(self, chunk_hash: str, data: bytes) -> None:
        self.chunks[chunk_hash] = bytes(data)


class LocalFSStorage(ChunkStorage):
    """Local filesystem storage.

    Chunks are stored in subdirectories based on hash prefix
    to avoid too many files in a single directory. Blocking file
    operations run in a worker thread.
    """

    def __init__(self, base_path: Path | str) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for chunk storage.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _chunk_path(self, chunk_hash: str) -> Path:
        """Get the file path for a chunk.

        Uses first 2 characters of hash as subdirectory prefix.
        """
        return self._base_path / chunk_hash[:2] / chunk_hash

    def _read(self, chunk_hash: str) -> bytes | None:
        path = self._chunk_path(chunk_hash)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def _write(self, chunk_hash: str, data: bytes) -> None:
        path = self._chunk_path(chunk_hash)
        # Readers never see a partial chunk
        tmp_path = path.with_suffix(".tmp")
        try:
            path.parent.mkdir(exist_ok=True)
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
            logger.debug("Stored chunk %s (%d bytes)", chunk_hash, len(data))
        except OSError as e:
            raise StorageError(f"Failed to write chunk {chunk_hash}: {e}") from e

    async def has(self, chunk_hash: str) -> bool:
        return await asyncio.to_thread(self._chunk_path(chunk_hash).exists)

    async def get(self, chunk_hash: str) -> bytes | None:
        return await asyncio.to_thread(self._read, chunk_hash)

    async def put(self, chunk_hash: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, chunk_hash, bytes(data))


class S3Storage(ChunkStorage):
    """S3-compatible storage (OVH, AWS, MinIO, etc.)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
        prefix: str = "caify",
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
            prefix: Key prefix for chunk objects.
        """
        import boto3

        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._prefix = prefix.strip("/")
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}/{self._prefix}"
        return f"S3: s3://{self._bucket}/{self._prefix}"

    def _key(self, chunk_hash: str) -> str:
        """Get the S3 key for a chunk."""
        return f"{self._prefix}/{chunk_hash[:2]}/{chunk_hash}"

    def _head(self, chunk_hash: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._client.head_object(Bucket=self._bucket, Key=self._key(chunk_hash))
            return True
        except ClientError:
            return False

    def _get(self, chunk_hash: str) -> bytes | None:
        from botocore.exceptions import ClientError

        try:
            response = self._client.get_object(Bucket=self._bucket, Key=self._key(chunk_hash))
            body: bytes = response["Body"].read()
            return body
        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchKey":
                return None
            raise

    def _put(self, chunk_hash: str, data: bytes) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client.put_object(Bucket=self._bucket, Key=self._key(chunk_hash), Body=data)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to write chunk {chunk_hash}: {e}") from e

    async def has(self, chunk_hash: str) -> bool:
        return await asyncio.to_thread(self._head, chunk_hash)

    async def get(self, chunk_hash: str) -> bytes | None:
        return await asyncio.to_thread(self._get, chunk_hash)

    async def put(self, chunk_hash: str, data: bytes) -> None:
        await asyncio.to_thread(self._put, chunk_hash, bytes(data))


def create_storage(config: dict[str, str | None]) -> ChunkStorage:
    """Factory function to create storage from configuration.

    Args:
        config: Storage configuration dict with keys:
            - type: "memory", "local" or "s3"
            - For local: local_path
            - For S3: bucket, endpoint_url, access_key, secret_key, region, prefix

    Returns:
        Configured ChunkStorage instance.

    Raises:
        ValueError: If storage type is unknown.
    """
    storage_type = config.get("type") or "local"

    if storage_type == "memory":
        return MemoryStorage()

    if storage_type == "local":
        return LocalFSStorage(config.get("local_path") or "./caify-chunks")

    if storage_type == "s3":
        bucket = config.get("bucket")
        if not bucket:
            raise ValueError("S3 storage requires 'bucket' configuration")
        return S3Storage(
            bucket=bucket,
            endpoint_url=config.get("endpoint_url"),
            access_key=config.get("access_key"),
            secret_key=config.get("secret_key"),
            region=config.get("region") or "us-east-1",
            prefix=config.get("prefix") or "caify",
        )

    raise ValueError(f"Unknown storage type: {storage_type}")
