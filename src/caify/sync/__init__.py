"""Sync module - Pull-based, verified chunk tree synchronization.

This module provides:
- SyncEngine: Receiver side of a caify session
- ChunkServer, pull: In-process pusher
- Peer: Outbound message protocol
- ProtocolFault and subclasses: Faults reported to the peer
"""

from caify.sync.engine import SyncEngine
from caify.sync.peer import ChunkServer, pull
from caify.sync.types import (
    EngineStats,
    HashMismatchFault,
    LevelMismatchFault,
    Peer,
    ProtocolFault,
    ProtocolStateFault,
    SizeExceededFault,
    StorageFault,
    UnwantedSendFault,
)

__all__ = [
    # Engine
    "SyncEngine",
    # Peer
    "ChunkServer",
    "Peer",
    "pull",
    # Types
    "EngineStats",
    "HashMismatchFault",
    "LevelMismatchFault",
    "ProtocolFault",
    "ProtocolStateFault",
    "SizeExceededFault",
    "StorageFault",
    "UnwantedSendFault",
]
