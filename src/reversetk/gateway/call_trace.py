"""
gateway/call_trace.py — Server Call Traces

The gateway reports where it spent time as a compact nested tuple list:

    [["gateway-prd-1", {"micros": 2500, "calls": [["id_created", {"micros": 1000}]]}]]

This module turns that into CallTrace nodes (durations in milliseconds),
back again, and renders the same indented text tree the official client
prints:

    gateway-prd-1: 2.5
    |  id_created: 1
"""

from __future__ import annotations

import math
from decimal import Decimal
from dataclasses import dataclass, field
from typing import Any, Iterator

from reversetk.exceptions import MalformedPayloadError

INDENT = "|  "


@dataclass
class CallTrace:
    name: str
    duration: float
    calls: list["CallTrace"] = field(default_factory=list)

    @classmethod
    def from_wire_entry(cls, entry: Any) -> "CallTrace":
        """Build a node (and its subtree) from one [name, {micros, calls?}] pair."""
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            raise MalformedPayloadError(f"Call trace entry must be a [name, payload] pair, got {entry!r}")
        name, payload = entry
        if not isinstance(payload, dict):
            raise MalformedPayloadError(f"Call trace payload for {name!r} must be a mapping", field="calls")
        micros = payload.get("micros")
        if isinstance(micros, bool) or not isinstance(micros, (int, float)):
            raise MalformedPayloadError(f"Call trace {name!r} has no numeric micros", field="micros")
        calls = payload.get("calls") or []
        if not isinstance(calls, list):
            raise MalformedPayloadError(f"Call trace {name!r} calls must be a list", field="calls")
        return cls(
            name=str(name),
            duration=micros / 1000,
            calls=[cls.from_wire_entry(call) for call in calls],
        )

    def to_wire_entry(self) -> list:
        payload: dict[str, Any] = {"micros": round(self.duration * 1000)}
        if self.calls:
            payload["calls"] = [call.to_wire_entry() for call in self.calls]
        return [self.name, payload]

    def walk(self, depth: int = 0) -> Iterator[tuple[int, "CallTrace"]]:
        """Depth-first (depth, node) pairs, self first."""
        yield depth, self
        for call in self.calls:
            yield from call.walk(depth + 1)

    @property
    def total_calls(self) -> int:
        return sum(1 for _ in self.walk()) - 1

    def __repr__(self) -> str:
        calls = ", ".join(repr(call) for call in self.calls)
        return f"CallTrace(name={self.name}, duration={format_duration(self.duration)}, calls=[{calls}] )"


def from_wire(tuples: Any) -> list[CallTrace]:
    """Decode a list of wire tuples into CallTrace roots."""
    if not isinstance(tuples, list):
        raise MalformedPayloadError("Call trace must be a list of [name, payload] pairs")
    return [CallTrace.from_wire_entry(entry) for entry in tuples]


def to_wire(nodes: list[CallTrace]) -> list[list]:
    """
    Encode CallTrace roots back into wire tuples. micros is rounded to an int.

    Leaf nodes are written without a "calls" key, so an input that spelled
    out an empty "calls": [] comes back without it; the two decode to the
    same tree.
    """
    return [node.to_wire_entry() for node in nodes]


def format_duration(value: float) -> str:
    """
    Print a millisecond value the way JavaScript's Number#toString does:
    shortest round-trip digits, plain notation for 1e-7 < |x| < 1e21,
    exponent form ("1e+21", "1.5e-7") outside it, NaN and Infinity spelled
    out.
    """
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(map(str, digit_tuple)).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = exponent + k  # position of the decimal point relative to digits

    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return sign + text


def render_tree(nodes: list[CallTrace]) -> str:
    """One "name: duration" line per node, "|  " per ancestor, newline-terminated."""
    return "".join(
        f"{INDENT * depth}{node.name}: {format_duration(node.duration)}\n"
        for root in nodes
        for depth, node in root.walk()
    )
