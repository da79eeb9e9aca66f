"""Chunk tree construction for caify.

This module turns a blob into a Merkle DAG of fixed-size chunks:
- Level 0 chunks (leaves) hold raw data, at most chunk_size bytes
- Level N chunks (manifests) hold the concatenated hashes of their
  level N-1 children
- Reduction repeats until a single root chunk remains

Only whole chunk_size slices are taken when a chunk is split. A trailing
remainder shorter than chunk_size is not part of the tree; build() logs a
warning when that happens.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from caify.core.config import CaifyConfig
from caify.core.digest import digest, to_hex
from caify.core.types import ChunkNotFoundError, ConfigurationError, MalformedManifestError

if TYPE_CHECKING:
    from caify.storage import ChunkStorage

logger = logging.getLogger(__name__)


@dataclass
class Chunk:
    """A chunk identified by its hash and level."""

    hash: str
    level: int
    data: bytes

    @property
    def is_leaf(self) -> bool:
        """Return True for level 0 (data) chunks."""
        return self.level == 0

    @property
    def size(self) -> int:
        """Return the size of this chunk in bytes."""
        return len(self.data)


@dataclass
class BuildResult:
    """Root identity of a built tree plus the chunks that make it up.

    Attributes:
        hash: Hex hash of the root chunk.
        level: Level of the root chunk (0 when the blob fits in one chunk).
        chunks: Mapping of hex hash to chunk bytes.
    """

    hash: str
    level: int
    chunks: MutableMapping[str, bytes] = field(default_factory=dict)

    @property
    def root(self) -> tuple[str, int]:
        """Return the (hash, level) pair identifying the tree."""
        return (self.hash, self.level)


def build(
    data: bytes,
    config: CaifyConfig | None = None,
    chunks: MutableMapping[str, bytes] | None = None,
) -> BuildResult:
    """Build a chunk tree from a blob.

    Args:
        data: Blob to chunk.
        config: Chunk/hash parameters (defaults to CaifyConfig()).
        chunks: Optional mapping to populate in place. It is never pruned;
            the caller decides whether to persist or discard it.

    Returns:
        BuildResult with the root hash, root level and chunk map.

    Raises:
        ConfigurationError: If the digest adapter returns hashes of the
            wrong size.
    """
    config = config or CaifyConfig()
    sink: MutableMapping[str, bytes] = chunks if chunks is not None else {}
    chunk_size = config.chunk_size
    hash_size = config.hash_size

    def reduce(chunk: memoryview, level: int) -> tuple[bytes, int]:
        length = len(chunk)
        if length <= chunk_size:
            hash_bytes = digest(chunk, config.hash_algorithm, hash_size)
            sink[to_hex(hash_bytes)] = bytes(chunk)
            return hash_bytes, level

        # Split: hash every whole slice at this level, fold into a manifest
        full_chunks = length // chunk_size
        remainder = length % chunk_size
        if remainder:
            logger.warning(
                "Dropping %d trailing bytes at level %d (length %d is not a multiple of %d)",
                remainder,
                level,
                length,
                chunk_size,
            )
        manifest = bytearray()
        for i in range(full_chunks):
            start = i * chunk_size
            child, _ = reduce(chunk[start : start + chunk_size], level)
            if len(child) != hash_size:
                raise ConfigurationError(f"Hash size mismatch: {len(child)} != {hash_size}")
            manifest += child

        # Fold: the manifest becomes a chunk one level up
        return reduce(memoryview(bytes(manifest)), level + 1)

    root_bytes, root_level = reduce(memoryview(data), 0)
    result = BuildResult(hash=to_hex(root_bytes), level=root_level, chunks=sink)
    logger.debug("Built %s/%d with %d chunks", result.hash, result.level, len(sink))
    return result


async def build_into(
    data: bytes,
    storage: ChunkStorage,
    config: CaifyConfig | None = None,
) -> tuple[str, int]:
    """Build a chunk tree and write its chunks to storage.

    Chunks already present in storage are not written again.

    Args:
        data: Blob to chunk.
        storage: Destination storage.
        config: Chunk/hash parameters (defaults to CaifyConfig()).

    Returns:
        The (hash, level) root identity.
    """
    result = build(data, config)
    written = 0
    for chunk_hash, chunk in result.chunks.items():
        if await storage.has(chunk_hash):
            continue
        await storage.put(chunk_hash, chunk)
        written += 1
    logger.info(
        "Stored %s/%d: %d new of %d chunks in %s",
        result.hash,
        result.level,
        written,
        len(result.chunks),
        storage.location,
    )
    return result.root


def split_manifest(chunk: bytes, hash_size: int) -> list[str]:
    """Split a manifest chunk into child hex hashes.

    Args:
        chunk: Manifest bytes.
        hash_size: Size of each child hash in bytes.

    Returns:
        Child hashes in manifest order.

    Raises:
        MalformedManifestError: If the length is not a multiple of hash_size.
    """
    if len(chunk) % hash_size:
        raise MalformedManifestError(f"Invalid chunk length {len(chunk)}/{hash_size}")
    return [to_hex(chunk[i : i + hash_size]) for i in range(0, len(chunk), hash_size)]


def iter_leaves(
    root_hash: str,
    level: int,
    chunks: Mapping[str, bytes],
    config: CaifyConfig | None = None,
) -> Iterator[bytes]:
    """Yield leaf data of a tree in order.

    Args:
        root_hash: Hex hash of the root chunk.
        level: Level of the root chunk.
        chunks: Mapping holding every chunk of the tree.
        config: Chunk/hash parameters (defaults to CaifyConfig()).

    Yields:
        Leaf chunk bytes, depth-first in manifest order.

    Raises:
        ChunkNotFoundError: If a referenced chunk is missing.
        MalformedManifestError: If a manifest cannot be split.
    """
    config = config or CaifyConfig()
    stack = [(root_hash, level)]
    while stack:
        chunk_hash, chunk_level = stack.pop()
        chunk = chunks.get(chunk_hash)
        if chunk is None:
            raise ChunkNotFoundError(f"Chunk not found: {chunk_hash}/{chunk_level}")
        if chunk_level == 0:
            yield chunk
            continue
        children = split_manifest(chunk, config.hash_size)
        stack.extend((child, chunk_level - 1) for child in reversed(children))


async def aiter_leaves(
    root_hash: str,
    level: int,
    storage: ChunkStorage,
    config: CaifyConfig | None = None,
) -> AsyncIterator[bytes]:
    """Yield leaf data of a tree held in a ChunkStorage.

    Same traversal and errors as iter_leaves().
    """
    config = config or CaifyConfig()
    stack = [(root_hash, level)]
    while stack:
        chunk_hash, chunk_level = stack.pop()
        chunk = await storage.get(chunk_hash)
        if chunk is None:
            raise ChunkNotFoundError(f"Chunk not found: {chunk_hash}/{chunk_level}")
        if chunk_level == 0:
            yield chunk
            continue
        children = split_manifest(chunk, config.hash_size)
        stack.extend((child, chunk_level - 1) for child in reversed(children))


def assemble(
    root_hash: str,
    level: int,
    chunks: Mapping[str, bytes],
    config: CaifyConfig | None = None,
) -> bytes:
    """Concatenate the leaves of a tree back into a blob."""
    return b"".join(iter_leaves(root_hash, level, chunks, config))
