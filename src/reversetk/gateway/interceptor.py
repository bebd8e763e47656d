"""
gateway/interceptor.py — Gateway Payload Interceptor

Sits between the event-stream client and its transport. The transport
calls these hooks synchronously and continues with whatever they return:

    send(op, d, check)        → intercept_outgoing(op, d, check)
    _handleDispatch(d, t, x)  → intercept_dispatch(t, d, x)
    _handleHello(d)           → intercept_hello(d)
    connectionState = new     → on_connection_state(old, new)

Usage:
    negotiator = CapabilityNegotiator()
    interceptor = GatewayInterceptor(negotiator)

    op, data, check = interceptor.intercept_outgoing(2, identify_payload)
    event, data = interceptor.intercept_dispatch("READY", ready_payload)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Optional

from reversetk.exceptions import MalformedPayloadError
from reversetk.gateway.capabilities import CapabilityNegotiator
from reversetk.gateway.connection import ConnectionStateObserver, TransitionSink
from reversetk.gateway.copying import copy_payload
from reversetk.gateway.normalizer import ReadyNormalizer
from reversetk.gateway.protocol import ConnectionState, DispatchType, Opcode
from reversetk.observability.logger import bind_session, clear_session, get_logger

if TYPE_CHECKING:
    from reversetk.config.settings import Settings

log = get_logger(__name__)


class GatewayInterceptor:
    """
    Rewrites gateway traffic in flight.

    The only state shared between calls is the injected CapabilityNegotiator.
    Outbound payloads are copied before they are changed; inbound READY is
    normalized in place.
    """

    def __init__(
        self,
        negotiator: CapabilityNegotiator,
        normalizer: Optional[ReadyNormalizer] = None,
        observer: Optional[ConnectionStateObserver] = None,
        *,
        fix_ready: bool = True,
    ) -> None:
        self.negotiator = negotiator
        self.normalizer = normalizer or ReadyNormalizer()
        self.observer = observer or ConnectionStateObserver()
        self.fix_ready = fix_ready

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        negotiator: Optional[CapabilityNegotiator] = None,
        sink: Optional[TransitionSink] = None,
    ) -> "GatewayInterceptor":
        """Wire an interceptor from config. A configured override seeds the negotiator."""
        cfg = settings.interceptor
        if negotiator is None:
            negotiator = CapabilityNegotiator(cfg.capabilities_value)
        elif cfg.capabilities_value is not None:
            negotiator.set_raw(cfg.capabilities_value)
        return cls(
            negotiator,
            ReadyNormalizer(cfg.guild_property_fields),
            ConnectionStateObserver(sink),
            fix_ready=cfg.fix_ready,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Outbound
    # ─────────────────────────────────────────────────────────────────────────

    def intercept_outgoing(
        self,
        opcode: int,
        data: Any,
        check_session_established: Optional[bool] = None,
    ) -> tuple[int, Any, bool]:
        """
        Inspect one outbound payload.

        IDENTIFY: the first capabilities value seen is captured, then a copy
        of `data` is returned carrying the negotiator's current bitmask. The
        caller's dict is never modified.
        """
        if check_session_established is None:
            check_session_established = True

        if opcode == Opcode.IDENTIFY:
            data = self._rewrite_identify(data)

        return opcode, data, check_session_established

    def _rewrite_identify(self, data: Any) -> Any:
        if not isinstance(data, dict):
            log.warning("identify.not_a_mapping", type=type(data).__name__)
            return data

        self.negotiator.capture(data.get("capabilities"))
        rewritten = copy_payload(data)
        capabilities = self.negotiator.get()
        if capabilities is None:
            log.debug("identify.no_capabilities")
            return rewritten

        if rewritten.get("capabilities") != capabilities:
            log.info(
                "identify.capabilities_overridden",
                sent=data.get("capabilities"),
                negotiated=capabilities,
            )
        rewritten["capabilities"] = capabilities
        return rewritten

    # ─────────────────────────────────────────────────────────────────────────
    # Inbound
    # ─────────────────────────────────────────────────────────────────────────

    def intercept_dispatch(
        self,
        event_type: str,
        data: Any,
        extra: Any = None,
    ) -> tuple[str, Any]:
        """
        Normalize READY (when enabled); pass every other dispatch through.

        READY also carries the session id, which is bound to the log context
        until the connection closes.
        """
        if event_type != DispatchType.READY.value:
            return event_type, data

        session_id = data.get("session_id") if isinstance(data, dict) else None
        if isinstance(session_id, str) and session_id:
            bind_session(session_id)

        if self.fix_ready:
            try:
                self.normalizer.normalize(data)
            except MalformedPayloadError as e:
                log.warning("ready.normalize_failed", error=str(e))
        return event_type, data

    def intercept_hello(self, data: Any) -> Any:
        """HELLO is passed through unchanged."""
        return data

    def on_connection_state(
        self,
        old: ConnectionState | str,
        new: ConnectionState | str,
    ) -> None:
        self.observer.on_transition(old, new)
        if self.observer.current is ConnectionState.CLOSED:
            clear_session()
