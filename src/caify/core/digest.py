"""Digest adapter for caify.

This module maps algorithm identifiers onto :mod:`hashlib` and produces
truncated digests. Both Web Crypto style names (``SHA-256``) and hashlib
names (``sha256``, ``blake2b``) are accepted. Additional algorithms can
be plugged in with register_algorithm().
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable

from caify.core.types import ConfigurationError

DigestFunc = Callable[[bytes], bytes]

# name -> (function, native digest size)
_custom_algorithms: dict[str, tuple[DigestFunc, int]] = {}


def register_algorithm(name: str, func: DigestFunc, digest_size: int) -> None:
    """Register a custom digest algorithm.

    Args:
        name: Identifier used in CaifyConfig.hash_algorithm (case-insensitive).
        func: Function returning at least ``digest_size`` bytes.
        digest_size: Native output length of ``func``.
    """
    if digest_size <= 0:
        raise ConfigurationError(f"digest_size must be positive, got {digest_size}")
    _custom_algorithms[name.lower()] = (func, digest_size)


def unregister_algorithm(name: str) -> None:
    """Remove a custom algorithm (no-op if unknown)."""
    _custom_algorithms.pop(name.lower(), None)


def resolve_algorithm(algorithm: str) -> str:
    """Return the canonical name for an algorithm identifier.

    Args:
        algorithm: Identifier such as "SHA-256", "sha3-256" or "sha256".

    Returns:
        A registered custom name or a name accepted by ``hashlib.new``.

    Raises:
        ConfigurationError: If the algorithm is unknown or has no fixed
            output length (SHAKE).
    """
    name = algorithm.lower()
    if name in _custom_algorithms:
        return name
    if name.startswith("sha-"):
        name = name.replace("-", "")
    else:
        name = name.replace("-", "_")
    if name not in hashlib.algorithms_available:
        raise ConfigurationError(f"Unknown hash algorithm: {algorithm}")
    if hashlib.new(name).digest_size == 0:
        raise ConfigurationError(f"Hash algorithm has no fixed digest size: {algorithm}")
    return name


def native_digest_size(algorithm: str) -> int:
    """Return the untruncated digest length of an algorithm in bytes."""
    name = resolve_algorithm(algorithm)
    if name in _custom_algorithms:
        return _custom_algorithms[name][1]
    return hashlib.new(name).digest_size


def digest(data: bytes, algorithm: str, size: int) -> bytes:
    """Hash data and truncate the result.

    Args:
        data: Bytes to hash.
        algorithm: Algorithm identifier (see resolve_algorithm).
        size: Number of leading digest bytes to keep.

    Returns:
        The first ``size`` bytes of the digest.
    """
    name = resolve_algorithm(algorithm)
    if name in _custom_algorithms:
        return _custom_algorithms[name][0](bytes(data))[:size]
    return hashlib.new(name, data).digest()[:size]


def to_hex(value: bytes) -> str:
    """Render a digest as lowercase hex."""
    return bytes(value).hex()
