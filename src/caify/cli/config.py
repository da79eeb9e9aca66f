"""Configuration utilities for the caify CLI.

This module provides shared helpers used across CLI commands: resolving
chunk parameters from options or CAIFY_* environment variables, the
chunk store location and logging setup.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from caify.core.config import CaifyConfig, SyncLimits

DEFAULT_STORE_PATH = "/tmp/caify"


def get_store_path(store: str | None = None) -> Path:
    """Get the chunk store directory.

    Args:
        store: Explicit path from the command line, if any.

    Returns:
        The given path, else CAIFY_STORE_PATH, else /tmp/caify.
    """
    return Path(store or os.environ.get("CAIFY_STORE_PATH", DEFAULT_STORE_PATH)).expanduser()


def resolve_config(
    chunk_size: int | None,
    hash_size: int | None,
    hash_algorithm: str | None,
) -> CaifyConfig:
    """Merge command line options over the environment configuration.

    Raises:
        ConfigurationError: If the resulting parameters are invalid.
    """
    base = CaifyConfig.from_env()
    return CaifyConfig(
        chunk_size=chunk_size if chunk_size is not None else base.chunk_size,
        hash_size=hash_size if hash_size is not None else base.hash_size,
        hash_algorithm=hash_algorithm or base.hash_algorithm,
    )


def resolve_limits(max_requests: int | None, max_scans: int | None) -> SyncLimits:
    """Build engine limits, falling back to the reference values."""
    reference = SyncLimits.reference()
    return SyncLimits(
        max_pending_requests=max_requests or reference.max_pending_requests,
        max_pending_scans=max_scans or reference.max_pending_scans,
    )


def setup_logging(verbose: bool) -> None:
    """Configure the caify logger to write to stderr.

    Args:
        verbose: Log at DEBUG instead of WARNING.
    """
    formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    caify_logger = logging.getLogger("caify")
    for existing in caify_logger.handlers[:]:
        caify_logger.removeHandler(existing)
    caify_logger.addHandler(handler)
    caify_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    caify_logger.propagate = False
