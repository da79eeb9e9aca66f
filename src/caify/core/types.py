"""Shared types for caify.

This module defines the exceptions and enums used by both the tree
builder and the sync engine.
"""

from __future__ import annotations

from enum import Enum


class CaifyError(Exception):
    """Base exception for caify errors."""


class ConfigurationError(CaifyError, ValueError):
    """Raised when chunk/hash settings are inconsistent or unknown."""


class ChunkNotFoundError(CaifyError, KeyError):
    """Raised when a chunk referenced by a manifest is not available."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Chunk not found"


class MalformedManifestError(CaifyError):
    """Raised when a manifest chunk cannot be split into child hashes.

    This is a validation fault: the scan that hit it is abandoned rather
    than reported to the peer and continued.
    """


class SessionState(str, Enum):
    """State of a sync session.

    A session is armed by the handshake and disarmed by ``done``.
    """

    IDLE = "idle"
    ARMED = "armed"
