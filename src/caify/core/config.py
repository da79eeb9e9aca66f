"""Configuration classes for caify.

This module defines the settings shared by the tree builder and the sync
engine (which must match exactly across a session) and the concurrency
limits of a sync engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from caify.core.digest import native_digest_size
from caify.core.types import ConfigurationError

DEFAULT_CHUNK_SIZE = 2**16  # 64 KiB
DEFAULT_HASH_SIZE = 32
DEFAULT_HASH_ALGORITHM = "SHA-256"


@dataclass(frozen=True)
class CaifyConfig:
    """Chunk tree parameters.

    Attributes:
        chunk_size: Maximum size of any chunk in bytes. Must be a multiple
            of hash_size so manifests split evenly into child hashes.
        hash_size: Number of digest bytes kept per hash.
        hash_algorithm: Digest algorithm identifier (e.g., "SHA-256").
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    hash_size: int = DEFAULT_HASH_SIZE
    hash_algorithm: str = DEFAULT_HASH_ALGORITHM

    def __post_init__(self) -> None:
        """Validate the chunk/hash relationship."""
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.hash_size <= 0:
            raise ConfigurationError(f"hash_size must be positive, got {self.hash_size}")
        if self.chunk_size % self.hash_size:
            raise ConfigurationError(
                f"chunk_size must be multiple of hash_size ({self.chunk_size} % {self.hash_size} != 0)"
            )
        native = native_digest_size(self.hash_algorithm)
        if self.hash_size > native:
            raise ConfigurationError(
                f"hash_size {self.hash_size} exceeds {self.hash_algorithm} digest size {native}"
            )

    @property
    def fanout(self) -> int:
        """Number of child hashes a full manifest holds."""
        return self.chunk_size // self.hash_size

    @classmethod
    def from_env(cls) -> CaifyConfig:
        """Build a configuration from CAIFY_* environment variables.

        Unset variables fall back to the defaults.

        Raises:
            ConfigurationError: If a size variable is not an integer.
        """
        try:
            chunk_size = int(os.environ.get("CAIFY_CHUNK_SIZE", DEFAULT_CHUNK_SIZE))
            hash_size = int(os.environ.get("CAIFY_HASH_SIZE", DEFAULT_HASH_SIZE))
        except ValueError as e:
            raise ConfigurationError(f"Invalid size in environment: {e}") from e
        return cls(
            chunk_size=chunk_size,
            hash_size=hash_size,
            hash_algorithm=os.environ.get("CAIFY_HASH_ALGORITHM", DEFAULT_HASH_ALGORITHM),
        )


@dataclass(frozen=True)
class SyncLimits:
    """Concurrency caps for a sync engine.

    Attributes:
        max_pending_requests: Maximum outstanding ``want`` requests.
        max_pending_scans: Maximum manifests scanned concurrently.
    """

    max_pending_requests: int
    max_pending_scans: int

    def __post_init__(self) -> None:
        if self.max_pending_requests <= 0:
            raise ConfigurationError(
                f"max_pending_requests must be positive, got {self.max_pending_requests}"
            )
        if self.max_pending_scans <= 0:
            raise ConfigurationError(
                f"max_pending_scans must be positive, got {self.max_pending_scans}"
            )

    @classmethod
    def reference(cls) -> SyncLimits:
        """Limits used by the original command line harness (2 requests, 1 scan)."""
        return cls(max_pending_requests=2, max_pending_scans=1)
