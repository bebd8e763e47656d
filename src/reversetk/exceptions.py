"""
exceptions.py — reversetk Unified Error Hierarchy

All reversetk-specific exceptions live here. Every layer raises typed
subclasses of ReverseTkError — never bare Exception.

Import from here, not from individual modules:
    from reversetk.exceptions import CapabilityValidationError, MalformedPayloadError

Hierarchy:
    ReverseTkError
    ├── CapabilityError
    │   ├── CapabilityValidationError
    │   └── CapabilitiesNotCapturedError
    ├── PayloadError
    │   └── MalformedPayloadError
    └── ConfigError
"""

from __future__ import annotations

from typing import Any, Optional


# ─────────────────────────────────────────────────────────────────────────────
# Root
# ─────────────────────────────────────────────────────────────────────────────

class ReverseTkError(Exception):
    """Base class for all reversetk exceptions."""


# ─────────────────────────────────────────────────────────────────────────────
# Capability layer
# ─────────────────────────────────────────────────────────────────────────────

class CapabilityError(ReverseTkError):
    """Base for capability bitmask errors."""


class CapabilityValidationError(CapabilityError, ValueError):
    """A bitmask value or bit position was rejected before being written."""

    def __init__(self, value: Any, message: str = "") -> None:
        self.value = value
        super().__init__(message or f"Provided capabilities value is invalid: {value!r}")


class CapabilitiesNotCapturedError(CapabilityError):
    """A bit toggle was requested before any bitmask was captured or set."""


# ─────────────────────────────────────────────────────────────────────────────
# Payload layer
# ─────────────────────────────────────────────────────────────────────────────

class PayloadError(ReverseTkError):
    """Base for in-flight payload errors."""


class MalformedPayloadError(PayloadError):
    """A payload is missing an expected field or has the wrong shape."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)


# ─────────────────────────────────────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────────────────────────────────────

class ConfigError(ReverseTkError):
    """Raised by Settings.validate_all() when configuration problems are found."""


__all__ = [
    "ReverseTkError",
    # Capability
    "CapabilityError",
    "CapabilityValidationError",
    "CapabilitiesNotCapturedError",
    # Payload
    "PayloadError",
    "MalformedPayloadError",
    # Config
    "ConfigError",
]
