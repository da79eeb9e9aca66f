"""Shared pytest fixtures for caify tests."""

from __future__ import annotations

from collections.abc import Generator

import pytest

from caify.core.config import CaifyConfig
from caify.core.digest import register_algorithm, unregister_algorithm

PREFIX_ALGORITHM = "prefix-2"


def prefix_digest(data: bytes) -> bytes:
    """First two bytes of the input, zero-padded."""
    return (bytes(data[:2]) + b"\x00\x00")[:2]


@pytest.fixture
def prefix_algorithm() -> Generator[str, None, None]:
    """Register a trivial digest that keeps the first two input bytes."""
    register_algorithm(PREFIX_ALGORITHM, prefix_digest, 2)
    yield PREFIX_ALGORITHM
    unregister_algorithm(PREFIX_ALGORITHM)


@pytest.fixture
def small_config() -> CaifyConfig:
    """64-byte chunks with 8-byte SHA-256 hashes (8 children per manifest)."""
    return CaifyConfig(chunk_size=64, hash_size=8, hash_algorithm="SHA-256")
