"""Tests for chunk storage implementations."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest

from caify.storage import (
    ChunkStorage,
    LocalFSStorage,
    MemoryStorage,
    S3Storage,
    StorageError,
    create_storage,
)


class TestMemoryStorage:
    """Tests for MemoryStorage implementation."""

    @pytest.mark.asyncio
    async def test_put_get_has(self) -> None:
        """Stored chunks can be read back."""
        storage = MemoryStorage()
        await storage.put("ab" * 4, b"data")

        assert await storage.has("ab" * 4) is True
        assert await storage.get("ab" * 4) == b"data"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self) -> None:
        """get() should return None for missing chunks."""
        storage = MemoryStorage()
        assert await storage.get("00" * 4) is None
        assert await storage.has("00" * 4) is False

    def test_wraps_existing_mapping(self) -> None:
        """Should share the given mapping."""
        chunks = {"aa": b"x"}
        storage = MemoryStorage(chunks)
        assert storage.chunks is chunks
        assert storage.location == "Memory: 1 chunks"


class TestLocalFSStorage:
    """Tests for LocalFSStorage implementation."""

    @pytest.fixture
    def storage(self, tmp_path: Path) -> LocalFSStorage:
        """Create a LocalFSStorage instance for testing."""
        return LocalFSStorage(tmp_path / "chunks")

    @pytest.mark.asyncio
    async def test_put_creates_file(self, storage: LocalFSStorage) -> None:
        """put() should create the chunk file."""
        chunk_hash = "a" * 64
        await storage.put(chunk_hash, b"chunk data")

        assert await storage.has(chunk_hash)

    @pytest.mark.asyncio
    async def test_put_creates_subdirectory(self, storage: LocalFSStorage) -> None:
        """put() should create subdirectory based on hash prefix."""
        chunk_hash = "ab" + "c" * 62
        await storage.put(chunk_hash, b"data")

        expected_path = storage._base_path / "ab" / chunk_hash
        assert expected_path.exists()
        assert not expected_path.with_suffix(".tmp").exists()

    @pytest.mark.asyncio
    async def test_get_returns_data(self, storage: LocalFSStorage) -> None:
        """get() should return the stored data."""
        chunk_hash = "d" * 64
        await storage.put(chunk_hash, b"test data 12345")

        assert await storage.get(chunk_hash) == b"test data 12345"

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, storage: LocalFSStorage) -> None:
        """get() should return None for missing chunks."""
        assert await storage.get("f" * 64) is None
        assert await storage.has("f" * 64) is False

    @pytest.mark.asyncio
    async def test_put_is_idempotent(self, storage: LocalFSStorage) -> None:
        """Writing the same chunk twice keeps one copy."""
        chunk_hash = "1" * 64
        await storage.put(chunk_hash, b"same")
        await storage.put(chunk_hash, b"same")

        assert await storage.get(chunk_hash) == b"same"

    @pytest.mark.asyncio
    async def test_put_failure_raises_storage_error(self, storage: LocalFSStorage) -> None:
        """OS errors during a write surface as StorageError."""
        with patch.object(Path, "write_bytes", side_effect=OSError("disk full")):
            with pytest.raises(StorageError, match="disk full"):
                await storage.put("2" * 64, b"data")

    def test_location(self, storage: LocalFSStorage) -> None:
        assert storage.location.startswith("Local filesystem: ")


class TestS3Storage:
    """Tests for S3Storage using moto mock."""

    @pytest.fixture
    def mock_s3(self) -> Generator[None, None, None]:
        """Set up moto mock for S3."""
        pytest.importorskip("moto")
        import boto3
        from moto import mock_aws

        with mock_aws():
            client = boto3.client("s3", region_name="us-east-1")
            client.create_bucket(Bucket="test-bucket")
            yield

    @pytest.fixture
    def storage(self, mock_s3: None) -> S3Storage:
        """Create an S3Storage instance for testing."""
        return S3Storage(bucket="test-bucket", region="us-east-1")

    @pytest.mark.asyncio
    async def test_put_and_get(self, storage: S3Storage) -> None:
        """put() and get() should work correctly."""
        chunk_hash = "5a" * 32
        await storage.put(chunk_hash, b"s3 chunk data")

        assert await storage.get(chunk_hash) == b"s3 chunk data"
        assert await storage.has(chunk_hash) is True

    @pytest.mark.asyncio
    async def test_missing(self, storage: S3Storage) -> None:
        """Missing chunks read as None."""
        assert await storage.get("00" * 32) is None
        assert await storage.has("00" * 32) is False

    def test_key_format(self, storage: S3Storage) -> None:
        """S3 keys should use prefix subdirectory structure."""
        chunk_hash = "ab" + "f" * 62
        assert storage._key(chunk_hash) == f"caify/ab/{chunk_hash}"


class TestCreateStorage:
    """Tests for the create_storage factory function."""

    def test_create_memory_storage(self) -> None:
        assert isinstance(create_storage({"type": "memory"}), MemoryStorage)

    def test_create_local_storage(self, tmp_path: Path) -> None:
        """Should create LocalFSStorage for type='local'."""
        storage = create_storage({"type": "local", "local_path": str(tmp_path / "chunks")})
        assert isinstance(storage, LocalFSStorage)

    def test_default_type_is_local(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Should default to local storage in ./caify-chunks."""
        monkeypatch.chdir(tmp_path)
        storage = create_storage({})
        assert isinstance(storage, LocalFSStorage)
        assert (tmp_path / "caify-chunks").is_dir()

    def test_create_s3_requires_bucket(self) -> None:
        """Should raise ValueError if bucket is missing."""
        with pytest.raises(ValueError, match="requires 'bucket'"):
            create_storage({"type": "s3"})

    def test_unknown_type_raises(self) -> None:
        """Should raise ValueError for unknown storage type."""
        with pytest.raises(ValueError, match="Unknown storage type"):
            create_storage({"type": "unknown"})


class TestChunkStorageInterface:
    """Verify ChunkStorage is a proper abstract base class."""

    def test_cannot_instantiate_abstract(self) -> None:
        """ChunkStorage cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ChunkStorage()  # type: ignore[abstract]
