"""Store command for the caify CLI.

Commands:
- store: Chunk a file and synchronize it into the chunk store
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from caify.cli.config import get_store_path, resolve_config, resolve_limits
from caify.cli.options import store_option, tree_options
from caify.core.chunking import build
from caify.core.types import CaifyError
from caify.storage import LocalFSStorage
from caify.sync.peer import pull


@click.command("store")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@tree_options
@store_option
@click.option("--max-requests", type=click.IntRange(min=1), default=None, help="Outstanding wants (default: 2).")
@click.option("--max-scans", type=click.IntRange(min=1), default=None, help="Concurrent manifest scans (default: 1).")
@click.option("--ack", is_flag=True, help="Acknowledge every stored chunk.")
@click.option("--timeout", type=float, default=None, help="Give up after N seconds.")
def store_cmd(
    file: Path,
    chunk_size: int | None,
    hash_size: int | None,
    hash_algorithm: str | None,
    store: str | None,
    max_requests: int | None,
    max_scans: int | None,
    ack: bool,
    timeout: float | None,
) -> None:
    """Chunk FILE and pull its tree into the chunk store.

    Chunks already in the store are not transferred again.

    Examples:

        # Store with defaults (64 KiB chunks, SHA-256)
        caify store ./disk.img

        # Small chunks, more requests in flight
        caify store ./disk.img --chunk-size 4096 --max-requests 16
    """
    try:
        config = resolve_config(chunk_size, hash_size, hash_algorithm)
        limits = resolve_limits(max_requests, max_scans)
    except CaifyError as e:
        raise click.BadParameter(str(e)) from e

    result = build(file.read_bytes(), config)
    click.echo(f"{result.hash}/{result.level} had {len(result.chunks)} chunks")

    storage = LocalFSStorage(get_store_path(store))
    try:
        server = asyncio.run(
            pull(
                storage,
                result.chunks,
                result.hash,
                result.level,
                config,
                limits,
                acknowledge=ack,
                timeout=timeout,
            )
        )
    except (CaifyError, asyncio.TimeoutError) as e:
        click.echo(f"Error: {str(e) or 'timed out'}", err=True)
        sys.exit(1)

    click.echo(f"Transferred {server.served} chunks to {storage.location}")
    if ack:
        click.echo(f"Acknowledged {len(server.acknowledged)} chunks")
    if server.errors:
        for message in server.errors:
            click.echo(f"Error: {message}", err=True)
        sys.exit(1)
