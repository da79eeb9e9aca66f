"""Tests for chunk tree construction."""

from __future__ import annotations

import logging
import os
from unittest.mock import patch

import pytest

from caify.core.chunking import (
    BuildResult,
    Chunk,
    aiter_leaves,
    assemble,
    build,
    build_into,
    iter_leaves,
    split_manifest,
)
from caify.core.config import CaifyConfig
from caify.core.digest import digest, register_algorithm, to_hex, unregister_algorithm
from caify.core.types import ChunkNotFoundError, ConfigurationError, MalformedManifestError
from caify.storage import MemoryStorage


def h(data: bytes, config: CaifyConfig) -> str:
    return to_hex(digest(data, config.hash_algorithm, config.hash_size))


class TestChunk:
    """Tests for the Chunk dataclass."""

    def test_leaf_and_size(self) -> None:
        """Level 0 chunks are leaves."""
        chunk = Chunk(hash="00", level=0, data=b"abc")
        assert chunk.is_leaf
        assert chunk.size == 3
        assert not Chunk(hash="00", level=1, data=b"").is_leaf


class TestBuildSingleChunk:
    """Blobs that fit in one chunk."""

    def test_small_blob_is_level_zero_root(self, small_config: CaifyConfig) -> None:
        """A blob no larger than chunk_size is its own root."""
        data = b"hello caify"
        result = build(data, small_config)
        assert result.level == 0
        assert result.hash == h(data, small_config)
        assert result.chunks == {result.hash: data}

    def test_exact_chunk_size(self, small_config: CaifyConfig) -> None:
        """A blob of exactly chunk_size bytes is not split."""
        data = os.urandom(64)
        result = build(data, small_config)
        assert result.level == 0
        assert len(result.chunks) == 1

    def test_empty_blob(self, small_config: CaifyConfig) -> None:
        """The empty blob hashes to a single empty leaf."""
        result = build(b"", small_config)
        assert result.root == (h(b"", small_config), 0)
        assert result.chunks == {result.hash: b""}

    def test_default_config(self) -> None:
        """Without a config, full SHA-256 hashes are used."""
        result = build(b"data")
        assert len(result.hash) == 64


class TestBuildTree:
    """Blobs that need manifests."""

    def test_one_manifest_level(self, small_config: CaifyConfig) -> None:
        """Eight leaves fit in one 64-byte manifest."""
        data = os.urandom(64 * 8)
        result = build(data, small_config)

        leaf_hashes = [h(data[i : i + 64], small_config) for i in range(0, len(data), 64)]
        manifest = b"".join(bytes.fromhex(x) for x in leaf_hashes)

        assert result.level == 1
        assert result.hash == h(manifest, small_config)
        assert result.chunks[result.hash] == manifest
        assert len(result.chunks) == 9

    def test_two_manifest_levels(self, small_config: CaifyConfig) -> None:
        """64 leaves need eight level 1 manifests and a level 2 root."""
        data = os.urandom(64 * 64)
        result = build(data, small_config)

        assert result.level == 2
        assert len(result.chunks) == 64 + 8 + 1
        assert len(result.chunks[result.hash]) == 64
        assert assemble(result.hash, result.level, result.chunks, small_config) == data

    def test_chunks_never_exceed_chunk_size(self, small_config: CaifyConfig) -> None:
        """Every chunk is at most chunk_size bytes."""
        result = build(os.urandom(64 * 64), small_config)
        assert all(len(chunk) <= 64 for chunk in result.chunks.values())

    def test_deterministic(self, small_config: CaifyConfig) -> None:
        """Building the same blob twice yields the same root and chunks."""
        data = os.urandom(64 * 16)
        first = build(data, small_config)
        second = build(data, small_config)
        assert first.root == second.root
        assert first.chunks == second.chunks

    def test_identical_regions_deduplicated(self, small_config: CaifyConfig) -> None:
        """Repeated content is stored once per unique hash."""
        data = b"x" * (64 * 64)
        result = build(data, small_config)

        assert result.chunks[h(b"x" * 64, small_config)] == b"x" * 64
        # one leaf, one level 1 manifest, one root
        assert len(result.chunks) == 3

    def test_populates_supplied_mapping(self, small_config: CaifyConfig) -> None:
        """A caller-supplied mapping is filled in place and kept."""
        chunks: dict[str, bytes] = {"existing": b"keep me"}
        result = build(os.urandom(64 * 8), small_config, chunks=chunks)
        assert result.chunks is chunks
        assert chunks["existing"] == b"keep me"
        assert len(chunks) == 10

    def test_result_type(self, small_config: CaifyConfig) -> None:
        assert isinstance(build(b"a", small_config), BuildResult)


class TestTrailingRemainder:
    """Only whole chunk_size slices are taken when splitting."""

    def test_spec_example(self, prefix_algorithm: str) -> None:
        """9 bytes with 4-byte chunks: two leaves, byte I is dropped."""
        config = CaifyConfig(chunk_size=4, hash_size=2, hash_algorithm=prefix_algorithm)
        result = build(b"ABCDEFGHI", config)

        assert result.level == 1
        # manifest = digest(ABCD) || digest(EFGH) = AB || EF, hashed to AB
        assert result.hash == b"AB".hex()
        assert result.chunks[b"EF".hex()] == b"EFGH"
        # the trivial digest gives the manifest the same hash as the first leaf
        assert result.chunks[b"AB".hex()] == b"ABEF"
        assert all(b"I" not in chunk for chunk in result.chunks.values())

    def test_remainder_not_in_tree(
        self, small_config: CaifyConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A 100-byte blob keeps only its first 64 bytes."""
        data = os.urandom(100)
        with caplog.at_level(logging.WARNING, logger="caify.core.chunking"):
            result = build(data, small_config)

        assert result.level == 1
        assert assemble(result.hash, result.level, result.chunks, small_config) == data[:64]
        assert "Dropping 36 trailing bytes" in caplog.text

    def test_remainder_dropped_at_manifest_level(self, small_config: CaifyConfig) -> None:
        """Nine leaves overflow a manifest; the ninth hash is dropped."""
        data = os.urandom(64 * 9)
        result = build(data, small_config)

        assert result.level == 2
        assert assemble(result.hash, result.level, result.chunks, small_config) == data[: 64 * 8]


class TestBuildErrors:
    """Configuration and digest failures."""

    def test_invalid_config_fails_before_hashing(self) -> None:
        """chunk_size not a multiple of hash_size fails before any digest."""
        with patch("caify.core.chunking.digest") as mock_digest:
            with pytest.raises(ConfigurationError):
                build(b"x" * 100, CaifyConfig(chunk_size=10, hash_size=3))
            mock_digest.assert_not_called()

    def test_short_digest_fails(self) -> None:
        """A digest shorter than hash_size is an invariant violation."""
        register_algorithm("short", lambda data: b"\x01", 4)
        try:
            config = CaifyConfig(chunk_size=8, hash_size=4, hash_algorithm="short")
            with pytest.raises(ConfigurationError, match="Hash size mismatch: 1 != 4"):
                build(b"x" * 16, config)
        finally:
            unregister_algorithm("short")


class TestSplitManifest:
    """Tests for split_manifest()."""

    def test_splits_into_hex_hashes(self) -> None:
        assert split_manifest(b"\x00\x01\xff\xfe", 2) == ["0001", "fffe"]

    def test_empty_manifest(self) -> None:
        assert split_manifest(b"", 8) == []

    def test_rejects_partial_hash(self) -> None:
        """Length must be a multiple of hash_size."""
        with pytest.raises(MalformedManifestError, match="Invalid chunk length 5/2"):
            split_manifest(b"\x00" * 5, 2)


class TestReassembly:
    """Tests for walking a tree back into its leaves."""

    def test_iter_leaves_in_order(self, small_config: CaifyConfig) -> None:
        """Leaves come out in blob order."""
        data = os.urandom(64 * 20)
        result = build(data, small_config)
        leaves = list(iter_leaves(result.hash, result.level, result.chunks, small_config))
        assert leaves == [data[i : i + 64] for i in range(0, 64 * 16, 64)]

    def test_missing_chunk(self, small_config: CaifyConfig) -> None:
        """A missing child raises ChunkNotFoundError."""
        result = build(os.urandom(64 * 8), small_config)
        chunks = dict(result.chunks)
        missing = next(k for k in chunks if k != result.hash)
        del chunks[missing]

        with pytest.raises(ChunkNotFoundError, match=missing):
            assemble(result.hash, result.level, chunks, small_config)

    @pytest.mark.asyncio
    async def test_aiter_leaves_from_storage(self, small_config: CaifyConfig) -> None:
        """Leaves can be read back from a ChunkStorage."""
        data = os.urandom(64 * 64)
        result = build(data, small_config)
        storage = MemoryStorage(dict(result.chunks))

        leaves = [leaf async for leaf in aiter_leaves(result.hash, result.level, storage, small_config)]

        assert b"".join(leaves) == data


class TestBuildInto:
    """Tests for writing a tree straight into storage."""

    @pytest.mark.asyncio
    async def test_writes_all_chunks(self, small_config: CaifyConfig) -> None:
        """Every chunk of the tree ends up in storage."""
        data = os.urandom(64 * 8)
        storage = MemoryStorage()

        root = await build_into(data, storage, small_config)

        expected = build(data, small_config)
        assert root == expected.root
        assert storage.chunks == dict(expected.chunks)

    @pytest.mark.asyncio
    async def test_skips_existing_chunks(self, small_config: CaifyConfig) -> None:
        """Chunks already stored are not written again."""
        data = os.urandom(64 * 8)
        storage = MemoryStorage()
        await build_into(data, storage, small_config)

        with patch.object(storage, "put", wraps=storage.put) as spy:
            await build_into(data, storage, small_config)

        spy.assert_not_called()
