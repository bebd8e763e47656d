"""
gateway/connection.py — Connection State Observer

A passive tap on the transport's connection-state setter. The transport
owns the state machine and its legality rules; this side only remembers
the last transition and hands it to a diagnostics sink.
"""

from __future__ import annotations

from typing import Callable, Optional

from reversetk.gateway.protocol import ConnectionState
from reversetk.observability.logger import get_logger

log = get_logger(__name__)

TransitionSink = Callable[[ConnectionState, ConnectionState], None]


def null_sink(old: ConnectionState, new: ConnectionState) -> None:
    """Default sink. Extension point for an event-bus dispatch."""


class ConnectionStateObserver:
    def __init__(self, sink: Optional[TransitionSink] = None) -> None:
        self._sink: TransitionSink = sink or null_sink
        self.previous: Optional[ConnectionState] = None
        self.current: Optional[ConnectionState] = None

    def on_transition(self, old: ConnectionState | str, new: ConnectionState | str) -> None:
        """Called by the transport every time its connection state is assigned."""
        old_state = ConnectionState.coerce(old)
        new_state = ConnectionState.coerce(new)
        self.previous, self.current = old_state, new_state
        log.debug("connection.transition", old=old_state.value, new=new_state.value)
        try:
            self._sink(old_state, new_state)
        except Exception as e:
            log.exception(
                "connection.sink_failed",
                old=old_state.value,
                new=new_state.value,
                error_type=type(e).__name__,
            )

    @property
    def session_established(self) -> bool:
        return self.current is ConnectionState.SESSION_ESTABLISHED
