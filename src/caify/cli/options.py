"""Shared click options for caify commands."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import click

F = Callable[..., Any]


def tree_options(func: F) -> F:
    """Add --chunk-size, --hash-size and --hash-algorithm to a command."""
    func = click.option(
        "--hash-algorithm",
        "-a",
        default=None,
        help="Digest algorithm (default: CAIFY_HASH_ALGORITHM or SHA-256).",
    )(func)
    func = click.option(
        "--hash-size",
        type=int,
        default=None,
        help="Bytes kept per hash (default: CAIFY_HASH_SIZE or 32).",
    )(func)
    func = click.option(
        "--chunk-size",
        "-c",
        type=int,
        default=None,
        help="Maximum chunk size in bytes (default: CAIFY_CHUNK_SIZE or 65536).",
    )(func)
    return func


def store_option(func: F) -> F:
    """Add --store to a command."""
    return click.option(
        "--store",
        "-s",
        type=click.Path(file_okay=False),
        default=None,
        help="Chunk store directory (default: CAIFY_STORE_PATH or /tmp/caify).",
    )(func)
