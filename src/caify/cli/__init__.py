"""Command-line interface for caify.

This module provides the main CLI entry point and assembles all commands.

Commands:
- build: Chunk a file and print its root
- store: Chunk a file and synchronize it into a chunk store
- cat: Reassemble a stored tree to stdout
"""

from __future__ import annotations

import click

from caify.cli.build import build_cmd, cat_cmd
from caify.cli.config import get_store_path, resolve_config, resolve_limits, setup_logging
from caify.cli.store import store_cmd


@click.group()
@click.version_option(package_name="caify")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """caify - Content-addressed chunk trees and verified sync."""
    setup_logging(verbose)


cli.add_command(build_cmd)
cli.add_command(store_cmd)
cli.add_command(cat_cmd)

__all__ = [
    "cli",
    "get_store_path",
    "resolve_config",
    "resolve_limits",
]
