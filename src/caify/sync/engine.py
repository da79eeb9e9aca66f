"""Pull-based chunk tree synchronization.

This module provides:
- SyncEngine: Receiver side of a caify session

The remote side announces a tree with ``push``; the engine walks the
manifests it already holds, asks for missing chunks with ``want`` and
verifies every chunk delivered with ``send`` before storing it.

Work is kept on two LIFO stacks, each drained on a later event loop
turn and capped by SyncLimits:
- Request stack: (hash, level) pairs not yet requested
- Scan stack: (manifest bytes, level) pairs awaiting dependency discovery

All state is owned by one engine and only mutated between awaits, so no
locking is needed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from caify.core.chunking import split_manifest
from caify.core.config import CaifyConfig
from caify.core.digest import digest, to_hex
from caify.core.types import SessionState
from caify.sync.types import (
    EngineStats,
    HashMismatchFault,
    LevelMismatchFault,
    ProtocolFault,
    ProtocolStateFault,
    SizeExceededFault,
    StorageFault,
    UnwantedSendFault,
)

if TYPE_CHECKING:
    from caify.core.config import SyncLimits
    from caify.storage import ChunkStorage
    from caify.sync.types import Peer

logger = logging.getLogger(__name__)


class SyncEngine:
    """Receiver side of a caify session, one instance per connection."""

    def __init__(
        self,
        storage: ChunkStorage,
        peer: Peer,
        limits: SyncLimits,
        acknowledge: bool = False,
    ) -> None:
        """Initialize the sync engine.

        Args:
            storage: Local chunk storage.
            peer: Outbound message surface.
            limits: Concurrency caps for requests and scans.
            acknowledge: Call peer.received() after each stored chunk.
                Off by default; peers that do not expect acknowledgments
                see the same messages either way otherwise.
        """
        self._storage = storage
        self._peer = peer
        self._limits = limits
        self._acknowledge = acknowledge

        self._state = SessionState.IDLE
        self._config: CaifyConfig | None = None

        self._wants: dict[str, int] = {}  # hash -> requested level
        self._queue: list[tuple[str, int]] = []
        self._queued: set[str] = set()  # hashes currently in _queue
        self._scan_queue: list[tuple[bytes, int]] = []
        self._pending_requests = 0
        self._pending_scans = 0

        self._request_drain_scheduled = False
        self._scan_drain_scheduled = False
        self._scan_tasks: set[asyncio.Task[None]] = set()
        self._active_calls = 0
        self._failure: BaseException | None = None
        self._idle = asyncio.Event()

        self.stats = EngineStats()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        """Get the session state."""
        return self._state

    @property
    def config(self) -> CaifyConfig | None:
        """Get the negotiated configuration (None before the first handshake)."""
        return self._config

    @property
    def limits(self) -> SyncLimits:
        return self._limits

    @property
    def pending_requests(self) -> int:
        """Number of want messages awaiting a send."""
        return self._pending_requests

    @property
    def pending_scans(self) -> int:
        return self._pending_scans

    @property
    def wants(self) -> dict[str, int]:
        """Copy of the want set (hash -> level)."""
        return dict(self._wants)

    @property
    def failure(self) -> BaseException | None:
        """Fatal scan failure, if one occurred."""
        return self._failure

    @property
    def is_idle(self) -> bool:
        """Check if there is no queued, scheduled or outstanding work."""
        return (
            not self._queue
            and not self._scan_queue
            and self._pending_requests == 0
            and self._pending_scans == 0
            and not self._scan_tasks
            and not self._request_drain_scheduled
            and not self._scan_drain_scheduled
            and self._active_calls == 0
        )

    # ------------------------------------------------------------------
    # Inbound messages
    # ------------------------------------------------------------------

    def caify(self, chunk_size: int, hash_size: int, hash_algorithm: str) -> None:
        """Handle a handshake: arm the session with new parameters.

        Any previous configuration is replaced, and a scan failure left
        over from an earlier session is cleared.

        Raises:
            ConfigurationError: If the parameters are inconsistent.
        """
        self._config = CaifyConfig(
            chunk_size=chunk_size,
            hash_size=hash_size,
            hash_algorithm=hash_algorithm,
        )
        if self._failure is not None:
            logger.info("Clearing previous scan failure: %s", self._failure)
            self._failure = None
        self._state = SessionState.ARMED
        logger.debug("Session armed: %s", self._config)

    def done(self) -> ProtocolFault | None:
        """Handle the end of a session's parameters."""
        if self._state != SessionState.ARMED:
            return self._report(ProtocolStateFault("done"))
        self._state = SessionState.IDLE
        logger.debug("Session disarmed (%s)", self.stats)
        return None

    def error(self, message: str) -> None:
        """Handle a fault reported by the remote side."""
        logger.warning("Peer reported error: %s", message)

    async def push(self, chunk_hash: str, level: int) -> ProtocolFault | None:
        """Handle a declaration that the tree rooted at (hash, level) should be local.

        Returns:
            The reported fault, or None.
        """
        if self._state != SessionState.ARMED:
            return self._report(ProtocolStateFault("push", chunk_hash, level))
        if self._is_requested(chunk_hash):
            return None

        self._active_calls += 1
        try:
            if level > 0:
                chunk = await self._storage.get(chunk_hash)
                if chunk is not None:
                    # Manifest already local: check its subtree instead of fetching it
                    self._scan_queue.append((chunk, level))
                    self._schedule_scans()
                    return None
            elif await self._storage.has(chunk_hash):
                return None

            self._enqueue(chunk_hash, level)
            return None
        finally:
            self._active_calls -= 1
            self._check_idle()

    async def send(self, chunk_hash: str, level: int, chunk: bytes) -> ProtocolFault | None:
        """Handle delivery of a requested chunk.

        Returns:
            The reported fault, or None if the chunk was stored.
        """
        if self._state != SessionState.ARMED:
            return self._report(ProtocolStateFault("send", chunk_hash, level))
        config = self._require_config()

        wanted_level = self._wants.pop(chunk_hash, None)
        if wanted_level is None:
            return self._report(UnwantedSendFault(chunk_hash, level))
        self._pending_requests -= 1
        self.stats.received += 1
        self._schedule_requests()

        if level != wanted_level:
            return self._report(LevelMismatchFault(chunk_hash, level, wanted_level))
        if len(chunk) > config.chunk_size:
            return self._report(SizeExceededFault(chunk_hash, level, len(chunk), config.chunk_size))

        self._active_calls += 1
        try:
            if level > 0:
                # Discovery starts before verification completes
                self._scan_queue.append((bytes(chunk), level))
                self._schedule_scans()

            actual_hash = to_hex(digest(chunk, config.hash_algorithm, config.hash_size))
            if actual_hash != chunk_hash:
                return self._report(HashMismatchFault(chunk_hash, level, actual_hash))

            try:
                await self._storage.put(chunk_hash, chunk)
            except Exception as e:
                self._enqueue(chunk_hash, level)
                self.stats.retries += 1
                return self._report(StorageFault(chunk_hash, level, e))

            self.stats.stored += 1
            logger.debug("Stored %s/%d (%d bytes)", chunk_hash, level, len(chunk))
            if self._acknowledge:
                self._peer.received(chunk_hash, level)
            return None
        finally:
            self._active_calls -= 1
            self._check_idle()

    # Operation names used by the protocol description
    handshake = caify
    close_handshake = done
    declare_needed = push
    receive_chunk = send
    report_peer_error = error

    async def wait_idle(self) -> None:
        """Wait until all queued and outstanding work has completed.

        Outstanding requests count as work, so this only returns once the
        peer has answered every want.

        Raises:
            MalformedManifestError: If a manifest scan failed.
        """
        while not self.is_idle and self._failure is None:
            self._idle.clear()
            await self._idle.wait()
        if self._failure is not None:
            raise self._failure

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _report(self, fault: ProtocolFault) -> ProtocolFault:
        """Send a fault to the peer and return it."""
        self.stats.faults += 1
        logger.warning("Protocol fault: %s", fault)
        self._peer.error(str(fault))
        return fault

    def _require_config(self) -> CaifyConfig:
        """Get the negotiated configuration.

        Raises:
            RuntimeError: If no handshake has been received yet.
        """
        if self._config is None:
            raise RuntimeError("No caify handshake received")
        return self._config

    def _is_requested(self, chunk_hash: str) -> bool:
        """Check if a chunk is already queued or awaiting its send."""
        return chunk_hash in self._wants or chunk_hash in self._queued

    def _enqueue(self, chunk_hash: str, level: int) -> None:
        """Queue a want for a missing chunk unless one is already pending."""
        if self._is_requested(chunk_hash):
            return
        self._queue.append((chunk_hash, level))
        self._queued.add(chunk_hash)
        self._schedule_requests()

    def _check_idle(self) -> None:
        if self._failure is not None or self.is_idle:
            self._idle.set()

    def _schedule_requests(self) -> None:
        if self._request_drain_scheduled:
            return
        self._request_drain_scheduled = True
        asyncio.get_running_loop().call_soon(self._drain_requests)

    def _schedule_scans(self) -> None:
        if self._scan_drain_scheduled:
            return
        self._scan_drain_scheduled = True
        asyncio.get_running_loop().call_soon(self._drain_scans)

    def _drain_requests(self) -> None:
        """Emit wants for queued chunks, most recent first, up to the cap."""
        self._request_drain_scheduled = False
        while self._pending_requests < self._limits.max_pending_requests and self._queue:
            chunk_hash, level = self._queue.pop()
            self._queued.discard(chunk_hash)
            self._wants[chunk_hash] = level
            self._pending_requests += 1
            self.stats.requested += 1
            self._peer.want(chunk_hash, level)
        self._check_idle()

    def _drain_scans(self) -> None:
        """Start scans for queued manifests, most recent first, up to the cap."""
        self._scan_drain_scheduled = False
        loop = asyncio.get_running_loop()
        while self._pending_scans < self._limits.max_pending_scans and self._scan_queue:
            chunk, level = self._scan_queue.pop()
            self._pending_scans += 1
            task = loop.create_task(self._scan(chunk, level))
            self._scan_tasks.add(task)
            task.add_done_callback(self._scan_finished)
        self._check_idle()

    async def _scan(self, chunk: bytes, level: int) -> None:
        """Queue every child of a manifest that is not already complete locally.

        Raises:
            MalformedManifestError: If the manifest length is not a multiple
                of hash_size. The scan is abandoned.
        """
        config = self._require_config()
        try:
            for child in split_manifest(chunk, config.hash_size):
                if level > 1:
                    child_chunk = await self._storage.get(child)
                    if child_chunk is not None:
                        self._scan_queue.append((child_chunk, level - 1))
                        self._schedule_scans()
                        continue
                elif await self._storage.has(child):
                    continue
                self._enqueue(child, level - 1)
            self.stats.scanned += 1
        finally:
            self._pending_scans -= 1
            self._schedule_scans()

    def _scan_finished(self, task: asyncio.Task[None]) -> None:
        self._scan_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            exc = task.exception()
            logger.error("Manifest scan failed: %s", exc)
            if self._failure is None:
                self._failure = exc
        self._check_idle()
