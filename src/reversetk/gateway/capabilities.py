"""
gateway/capabilities.py — Capability Bitmask Negotiation

The identify payload declares a 32-bit capability bitmask; several bits
change the shape of later traffic (notably READY). CapabilityNegotiator
owns the mask for one logical session:

  - captured once from the first identify seen (first write wins)
  - kept across reconnects so operator edits apply to every re-identify
  - cleared only by an explicit reset()

Usage:
    negotiator = CapabilityNegotiator()
    negotiator.capture(16381)           # from the client's own identify
    negotiator.toggle_bit(4)            # DEDUPE_USER_OBJECTS off
    negotiator.set_from_string("1021")  # operator text field
"""

from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Any, Optional

from reversetk.exceptions import CapabilitiesNotCapturedError, CapabilityValidationError
from reversetk.observability.logger import get_logger

log = get_logger(__name__)

MAX_CAPABILITIES = 0xFFFFFFFF
CAPABILITY_BITS = 32

_DIGITS = re.compile(r"[0-9]+")


# ─────────────────────────────────────────────────────────────────────────────
# Known capability bits
# ─────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CapabilityFlag:
    """One named bit of the capability bitmask."""
    name: str
    value: int
    description: str

    @property
    def bit(self) -> int:
        return self.value.bit_length() - 1


KNOWN_CAPABILITIES: tuple[CapabilityFlag, ...] = (
    CapabilityFlag("LAZY_USER_NOTES", 1 << 0, "Remove the notes field from the READY event."),
    CapabilityFlag("NO_AFFINE_USER_IDS", 1 << 1, "Disable member/presence syncing for implicit relationships"),
    CapabilityFlag("VERSIONED_READ_STATES", 1 << 2, "Enable client state for ReadStates"),
    CapabilityFlag("VERSIONED_USER_GUILD_SETTINGS", 1 << 3, "Enable client state for UserGuildSettings"),
    CapabilityFlag("DEDUPE_USER_OBJECTS", 1 << 4, "Deduplicate user objects in READY."),
    CapabilityFlag("PRIORITIZED_READY_PAYLOAD", 1 << 5,
                   "Separate READY into two events (READY itself and READY_SUPPLEMENTAL)."),
    CapabilityFlag("MULTIPLE_GUILD_EXPERIMENT_POPULATIONS", 1 << 6,
                   "Changes populations field in guild_experiments in READY to be array of "
                   "populations rather than a single population"),
    CapabilityFlag("NON_CHANNEL_READ_STATES", 1 << 7, "Include read state tied to non-channel resources in READY"),
    CapabilityFlag("AUTH_TOKEN_REFRESH", 1 << 8, "Enable migration of mfa.*** tokens"),
    CapabilityFlag("USER_SETTINGS_PROTO", 1 << 9,
                   "Disable legacy user settings (remove user_settings field in READY and "
                   "prevent USER_SETTINGS_UPDATE event)"),
    CapabilityFlag("CLIENT_STATE_V2", 1 << 10, "Enable client state caching v2"),
    CapabilityFlag("PASSIVE_GUILD_UPDATE", 1 << 11,
                   "Enable better passive guild updating, disables CHANNEL_UNREAD_UPDATE and "
                   "enables PASSIVE_UPDATE_V1 instead"),
    CapabilityFlag("AUTO_CALL_CONNECT", 1 << 12, "Automatically connect to all existing calls on startup"),
    CapabilityFlag("DEBOUNCE_MESSAGE_REACTIONS", 1 << 13, "Debounce multiple message reaction add events"),
    CapabilityFlag("PASSIVE_GUILD_UPDATE_V2", 1 << 14,
                   "Enable even better passive guild updating, disables "
                   "CHANNEL_UNREAD_UPDATE/PASSIVE_UPDATE_V1 and enables PASSIVE_UPDATE_V2"),
    CapabilityFlag("PRIVATE_CHANNEL_OBFUSCATION", 1 << 15,
                   "Reset all fields except 'id', 'name' (name is set to '___name___') in "
                   "unavailable GuildChannel objects"),
) + tuple(
    CapabilityFlag(f"UNKNOWN_BIT_{bit}", 1 << bit, f"Unknown bit {bit}")
    for bit in range(16, CAPABILITY_BITS)
)

_BY_NAME: dict[str, CapabilityFlag] = {flag.name: flag for flag in KNOWN_CAPABILITIES}


def flag_by_name(name: str) -> CapabilityFlag:
    """Look up a flag by name, e.g. "VERSIONED_READ_STATES". Raises KeyError."""
    return _BY_NAME[name.upper()]


def describe_capabilities(mask: int) -> list[CapabilityFlag]:
    """Flags set in `mask`, lowest bit first."""
    return [flag for flag in KNOWN_CAPABILITIES if mask & flag.value]


# ─────────────────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────────────────

def _is_uint32(value: Any) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and 0 <= value <= MAX_CAPABILITIES
    )


def check_capabilities(value: Any) -> int:
    """Return `value` if it is a valid bitmask integer, else raise CapabilityValidationError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise CapabilityValidationError(
            value, f"Capabilities must be an integer, got {type(value).__name__}"
        )
    if value < 0:
        raise CapabilityValidationError(value, f"Capabilities must not be negative, got {value}")
    if value > MAX_CAPABILITIES:
        raise CapabilityValidationError(
            value, f"Capabilities must fit in {CAPABILITY_BITS} bits, got {value}"
        )
    return value


def parse_capabilities(text: Any) -> int:
    """
    Parse an operator-entered bitmask.

    Only ASCII decimal digits are accepted ("16381"); signs, whitespace,
    hex prefixes and empty strings are rejected with CapabilityValidationError.
    """
    if not isinstance(text, str) or not _DIGITS.fullmatch(text):
        raise CapabilityValidationError(text, "Provided capabilities value is invalid")
    return check_capabilities(int(text))


# ─────────────────────────────────────────────────────────────────────────────
# Negotiator
# ─────────────────────────────────────────────────────────────────────────────

class CapabilityNegotiator:
    """
    Holds the negotiated capability bitmask for one logical session.

    Created at session start and injected into the GatewayInterceptor.
    Mutations are serialised by a lock so an operator surface running on
    another thread cannot interleave with a toggle.
    """

    def __init__(self, initial: Optional[int] = None) -> None:
        self._lock = threading.Lock()
        self._value: Optional[int] = None if initial is None else check_capabilities(initial)

    def __repr__(self) -> str:
        return f"CapabilityNegotiator(value={self._value!r})"

    # -- Negotiation ---------------------------------------------------------

    def capture(self, initial: Any) -> None:
        """
        Remember `initial` if no bitmask is held yet; otherwise do nothing.

        Values that are not a valid 32-bit mask (e.g. an identify without a
        capabilities field) are ignored rather than captured.
        """
        if not _is_uint32(initial):
            if initial is not None:
                log.warning("capabilities.capture_ignored", value=repr(initial))
            return
        with self._lock:
            if self._value is not None:
                return
            self._value = initial
        log.info("capabilities.captured", value=initial)

    def get(self) -> Optional[int]:
        """Current bitmask, or None if nothing has been captured yet."""
        return self._value

    @property
    def captured(self) -> bool:
        return self._value is not None

    # -- Operator overrides --------------------------------------------------

    def set_raw(self, value: Any) -> None:
        """Unconditionally replace the bitmask after validating it."""
        value = check_capabilities(value)
        with self._lock:
            old, self._value = self._value, value
        log.info("capabilities.set", old=old, new=value)

    def set_from_string(self, text: Any) -> int:
        """Validate a decimal string and store it. Returns the stored value."""
        value = self.validate_string(text)
        self.set_raw(value)
        return value

    @staticmethod
    def validate_string(text: Any) -> int:
        """Parse a decimal-digit string; raises CapabilityValidationError otherwise."""
        return parse_capabilities(text)

    def toggle_bit(self, position: Any) -> int:
        """Flip one bit (0..31). Returns the new bitmask."""
        if isinstance(position, bool) or not isinstance(position, int) \
                or not 0 <= position < CAPABILITY_BITS:
            raise CapabilityValidationError(
                position, f"Bit position must be an integer in 0..{CAPABILITY_BITS - 1}, got {position!r}"
            )
        with self._lock:
            if self._value is None:
                raise CapabilitiesNotCapturedError(
                    "No capabilities captured yet; identify at least once or set a value first."
                )
            self._value ^= 1 << position
            value = self._value
        log.debug("capabilities.toggled", bit=position, value=value)
        return value

    def reset(self) -> None:
        """Forget the bitmask; the next identify captures afresh."""
        with self._lock:
            self._value = None
        log.info("capabilities.reset")

    # -- Queries -------------------------------------------------------------

    def is_enabled(self, flag: CapabilityFlag | str) -> bool:
        if isinstance(flag, str):
            flag = flag_by_name(flag)
        value = self._value
        return value is not None and bool(value & flag.value)

    def enabled_flags(self) -> list[CapabilityFlag]:
        value = self._value
        return [] if value is None else describe_capabilities(value)
