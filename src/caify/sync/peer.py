"""In-process pusher for caify sessions.

This module provides:
- ChunkServer: Peer that answers a SyncEngine's wants from a chunk map
  or a ChunkStorage living in the same process
- pull: Synchronize one tree into storage and return the server

Usage:
    result = build(data, config)
    server = await pull(storage, result.chunks, result.hash, result.level, config, limits)
    assert not server.errors
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from caify.storage import ChunkStorage
from caify.sync.engine import SyncEngine

if TYPE_CHECKING:
    from caify.core.config import CaifyConfig, SyncLimits

logger = logging.getLogger(__name__)


class ChunkServer:
    """Serves chunks to a SyncEngine in the same process.

    Implements the Peer protocol: wants are answered by scheduling
    ``engine.send`` on the running loop, errors and acknowledgments are
    recorded.

    Attributes:
        errors: Fault messages reported by the engine.
        acknowledged: (hash, level) pairs the engine acknowledged.
        missing: (hash, level) pairs requested but not held by the source.
        served: Number of chunks sent.
    """

    def __init__(self, source: Mapping[str, bytes] | ChunkStorage) -> None:
        """Initialize the server.

        Args:
            source: Chunk map (e.g., BuildResult.chunks) or storage to serve from.
        """
        self._source = source
        self._engine: SyncEngine | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self.errors: list[str] = []
        self.acknowledged: list[tuple[str, int]] = []
        self.missing: list[tuple[str, int]] = []
        self.served = 0

    @property
    def engine(self) -> SyncEngine:
        """Get the attached engine.

        Raises:
            RuntimeError: If no engine is attached.
        """
        if self._engine is None:
            raise RuntimeError("No engine attached")
        return self._engine

    def attach(self, engine: SyncEngine) -> None:
        """Attach the engine that receives this server's sends."""
        self._engine = engine

    def want(self, chunk_hash: str, level: int) -> None:
        task = asyncio.get_running_loop().create_task(self._serve(chunk_hash, level))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def error(self, message: str) -> None:
        logger.warning("Engine reported error: %s", message)
        self.errors.append(message)

    def received(self, chunk_hash: str, level: int) -> None:
        self.acknowledged.append((chunk_hash, level))

    async def _lookup(self, chunk_hash: str) -> bytes | None:
        if isinstance(self._source, ChunkStorage):
            return await self._source.get(chunk_hash)
        return self._source.get(chunk_hash)

    async def _serve(self, chunk_hash: str, level: int) -> None:
        chunk = await self._lookup(chunk_hash)
        if chunk is None:
            logger.error("Cannot serve %s/%d: chunk not held", chunk_hash, level)
            self.missing.append((chunk_hash, level))
            return
        self.served += 1
        await self.engine.send(chunk_hash, level, chunk)

    async def push_tree(
        self,
        config: CaifyConfig,
        root_hash: str,
        level: int,
        timeout: float | None = None,
    ) -> None:
        """Run a full session: handshake, push, wait for completion, done.

        Args:
            config: Parameters the tree was built with.
            root_hash: Hex hash of the root chunk.
            level: Level of the root chunk.
            timeout: Seconds to wait for the engine to go idle (None = forever).

        Raises:
            asyncio.TimeoutError: If the engine did not finish in time (e.g.,
                a requested chunk is missing from the source).
            MalformedManifestError: If the engine hit an unreadable manifest.
        """
        engine = self.engine
        engine.caify(config.chunk_size, config.hash_size, config.hash_algorithm)
        await engine.push(root_hash, level)
        await asyncio.wait_for(engine.wait_idle(), timeout)
        if self._tasks:
            await asyncio.gather(*self._tasks)
        engine.done()
        logger.info(
            "Pushed %s/%d: served %d chunks, %d errors",
            root_hash,
            level,
            self.served,
            len(self.errors),
        )


async def pull(
    storage: ChunkStorage,
    source: Mapping[str, bytes] | ChunkStorage,
    root_hash: str,
    level: int,
    config: CaifyConfig,
    limits: SyncLimits,
    acknowledge: bool = False,
    timeout: float | None = None,
) -> ChunkServer:
    """Synchronize the tree rooted at (root_hash, level) from source into storage.

    Args:
        storage: Destination storage.
        source: Chunk map or storage holding the tree.
        root_hash: Hex hash of the root chunk.
        level: Level of the root chunk.
        config: Parameters the tree was built with.
        limits: Engine concurrency caps.
        acknowledge: Have the engine acknowledge stored chunks.
        timeout: Seconds to wait for completion (None = forever).

    Returns:
        The ChunkServer used, with its error and acknowledgment records.
    """
    server = ChunkServer(source)
    engine = SyncEngine(storage, server, limits, acknowledge=acknowledge)
    server.attach(engine)
    await server.push_tree(config, root_hash, level, timeout=timeout)
    return server
