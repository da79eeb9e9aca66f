"""Core module - Configuration, digests, and chunk tree construction."""

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
from caify.core.config import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_HASH_ALGORITHM,
    DEFAULT_HASH_SIZE,
    CaifyConfig,
    SyncLimits,
)
from caify.core.digest import (
    digest,
    native_digest_size,
    register_algorithm,
    to_hex,
    unregister_algorithm,
)
from caify.core.types import (
    CaifyError,
    ChunkNotFoundError,
    ConfigurationError,
    MalformedManifestError,
    SessionState,
)

__all__ = [
    # Chunking
    "BuildResult",
    "Chunk",
    "aiter_leaves",
    "assemble",
    "build",
    "build_into",
    "iter_leaves",
    "split_manifest",
    # Config
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_HASH_ALGORITHM",
    "DEFAULT_HASH_SIZE",
    "CaifyConfig",
    "SyncLimits",
    # Digest
    "digest",
    "native_digest_size",
    "register_algorithm",
    "to_hex",
    "unregister_algorithm",
    # Types
    "CaifyError",
    "ChunkNotFoundError",
    "ConfigurationError",
    "MalformedManifestError",
    "SessionState",
]
