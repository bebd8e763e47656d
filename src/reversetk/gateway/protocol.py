"""
gateway/protocol.py — Gateway Protocol Constants

Opcodes, dispatch type names and connection states shared by the
interception layer. Payload bodies stay plain dicts; only the envelope
vocabulary is typed here.
"""

from __future__ import annotations

from enum import Enum, IntEnum


# ─────────────────────────────────────────────────────────────────────────────
# Opcodes
# ─────────────────────────────────────────────────────────────────────────────

class Opcode(IntEnum):
    """Gateway opcodes the interception layer refers to."""

    DISPATCH        = 0
    HEARTBEAT       = 1
    IDENTIFY        = 2
    RESUME          = 6
    RECONNECT       = 7
    INVALID_SESSION = 9
    HELLO           = 10
    HEARTBEAT_ACK   = 11


# ─────────────────────────────────────────────────────────────────────────────
# Dispatch types
# ─────────────────────────────────────────────────────────────────────────────

class DispatchType(str, Enum):
    """Dispatch event names whose payloads are rewritten."""

    READY = "READY"


# ─────────────────────────────────────────────────────────────────────────────
# Connection lifecycle
# ─────────────────────────────────────────────────────────────────────────────

class ConnectionState(str, Enum):
    """Transport connection states. Owned by the transport, observed here."""

    CLOSED              = "CLOSED"
    WILL_RECONNECT      = "WILL_RECONNECT"
    CONNECTING          = "CONNECTING"
    IDENTIFYING         = "IDENTIFYING"
    RESUMING            = "RESUMING"
    SESSION_ESTABLISHED = "SESSION_ESTABLISHED"

    @classmethod
    def coerce(cls, value: "ConnectionState | str") -> "ConnectionState":
        """Accept a member or its name, case-insensitively."""
        if isinstance(value, cls):
            return value
        return cls(str(value).upper())
