"""
gateway/ — Gateway Payload Interception

Hooks that sit between an event-stream client and its transport:
capability bitmask negotiation, outbound payload isolation, READY
normalization, connection-state observation and call-trace decoding.
"""

from reversetk.gateway.call_trace import CallTrace, from_wire, render_tree, to_wire
from reversetk.gateway.capabilities import (
    KNOWN_CAPABILITIES,
    CapabilityFlag,
    CapabilityNegotiator,
    describe_capabilities,
)
from reversetk.gateway.connection import ConnectionStateObserver
from reversetk.gateway.copying import copy_payload
from reversetk.gateway.interceptor import GatewayInterceptor
from reversetk.gateway.normalizer import ReadyNormalizer
from reversetk.gateway.protocol import ConnectionState, DispatchType, Opcode

__all__ = [
    "CallTrace",
    "from_wire",
    "to_wire",
    "render_tree",
    "KNOWN_CAPABILITIES",
    "CapabilityFlag",
    "CapabilityNegotiator",
    "describe_capabilities",
    "ConnectionStateObserver",
    "copy_payload",
    "GatewayInterceptor",
    "ReadyNormalizer",
    "ConnectionState",
    "DispatchType",
    "Opcode",
]
