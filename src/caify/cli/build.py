"""Tree commands for the caify CLI.

Commands:
- build: Chunk a file and print its root identity
- cat: Reassemble a tree from the chunk store
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from caify.cli.config import get_store_path, resolve_config
from caify.cli.options import store_option, tree_options
from caify.core.chunking import aiter_leaves, build
from caify.core.types import CaifyError
from caify.storage import LocalFSStorage


@click.command("build")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@tree_options
def build_cmd(
    file: Path,
    chunk_size: int | None,
    hash_size: int | None,
    hash_algorithm: str | None,
) -> None:
    """Chunk FILE and print its root as HASH/LEVEL.

    Nothing is written; use 'caify store' to keep the chunks.
    """
    try:
        config = resolve_config(chunk_size, hash_size, hash_algorithm)
    except CaifyError as e:
        raise click.BadParameter(str(e)) from e

    result = build(file.read_bytes(), config)
    click.echo(f"{result.hash}/{result.level} had {len(result.chunks)} chunks")


@click.command("cat")
@click.argument("root_hash")
@click.argument("level", type=int)
@tree_options
@store_option
def cat_cmd(
    root_hash: str,
    level: int,
    chunk_size: int | None,
    hash_size: int | None,
    hash_algorithm: str | None,
    store: str | None,
) -> None:
    """Write the blob rooted at ROOT_HASH/LEVEL from the chunk store to stdout."""
    try:
        config = resolve_config(chunk_size, hash_size, hash_algorithm)
    except CaifyError as e:
        raise click.BadParameter(str(e)) from e

    storage = LocalFSStorage(get_store_path(store))
    out = click.get_binary_stream("stdout")

    async def _copy() -> None:
        async for leaf in aiter_leaves(root_hash.lower(), level, storage, config):
            out.write(leaf)

    try:
        asyncio.run(_copy())
    except CaifyError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    out.flush()
