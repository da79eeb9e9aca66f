"""Shared types for caify synchronization.

This module provides:
- Peer: Outbound message surface of a sync engine (want/error/received)
- ProtocolFault and subclasses: Recoverable faults reported to the peer
- EngineStats: Counters describing a session's progress
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Protocol

from caify.core.types import CaifyError


class Peer(Protocol):
    """Outbound messages emitted by a SyncEngine.

    Implementations carry these to the remote side over whatever
    transport connects the two endpoints.
    """

    def want(self, chunk_hash: str, level: int) -> None:
        """Ask the remote side to send a chunk."""

    def error(self, message: str) -> None:
        """Report a protocol fault to the remote side."""

    def received(self, chunk_hash: str, level: int) -> None:
        """Acknowledge that a delivered chunk was verified and stored."""


class ProtocolFault(CaifyError):
    """Base class for recoverable protocol faults.

    Faults are reported to the peer and the session continues.
    """

    def __init__(self, operation: str, chunk_hash: str | None, level: int | None, reason: str) -> None:
        self.operation = operation
        self.chunk_hash = chunk_hash
        self.level = level
        self.reason = reason
        if chunk_hash is None:
            message = f"{operation}: {reason}"
        else:
            message = f"{operation} {chunk_hash}/{level}: {reason}"
        super().__init__(message)


class ProtocolStateFault(ProtocolFault):
    """Message received outside of caify mode."""

    def __init__(self, operation: str, chunk_hash: str | None = None, level: int | None = None) -> None:
        super().__init__(operation, chunk_hash, level, "Outside of caify mode")


class UnwantedSendFault(ProtocolFault):
    """A chunk was delivered that was never requested."""

    def __init__(self, chunk_hash: str, level: int) -> None:
        super().__init__("send", chunk_hash, level, "Unwanted send")


class LevelMismatchFault(ProtocolFault):
    """A chunk was delivered at a different level than requested."""

    def __init__(self, chunk_hash: str, level: int, expected_level: int) -> None:
        self.expected_level = expected_level
        super().__init__("send", chunk_hash, level, f"Expected {chunk_hash}/{expected_level}")


class SizeExceededFault(ProtocolFault):
    """A delivered chunk is larger than chunk_size."""

    def __init__(self, chunk_hash: str, level: int, size: int, chunk_size: int) -> None:
        self.size = size
        self.chunk_size = chunk_size
        super().__init__("send", chunk_hash, level, f"Chunk too large ({size} > {chunk_size})")


class HashMismatchFault(ProtocolFault):
    """A delivered chunk does not hash to the announced value."""

    def __init__(self, chunk_hash: str, level: int, actual_hash: str) -> None:
        self.actual_hash = actual_hash
        super().__init__("send", chunk_hash, level, f"Hash mismatch ({chunk_hash} != {actual_hash})")


class StorageFault(ProtocolFault):
    """A verified chunk could not be written; it has been requested again."""

    def __init__(self, chunk_hash: str, level: int, cause: BaseException) -> None:
        self.cause = cause
        super().__init__("send", chunk_hash, level, str(cause) or type(cause).__name__)


@dataclass
class EngineStats:
    """Counters for a sync engine.

    Attributes:
        requested: Number of want messages emitted.
        received: Number of send messages matched against the want set.
        stored: Number of chunks verified and written to storage.
        scanned: Number of manifests fully scanned.
        faults: Number of protocol faults reported.
        retries: Number of chunks re-requested after a storage failure.
    """

    requested: int = 0
    received: int = 0
    stored: int = 0
    scanned: int = 0
    faults: int = 0
    retries: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to a plain dict."""
        return asdict(self)
