"""Liveness tracking for a single sensor feed."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.schemas import ConnectionState, MonitorEvent
from services.change_detector import Fingerprint


@dataclass
class MonitorState:
    """Process-local state owned by one subscription."""

    last_fingerprint: Optional[Fingerprint] = None
    last_accepted_ms: Optional[int] = None
    connection: ConnectionState = ConnectionState.awaiting_data


class StalenessMonitor:
    """Two-state connected/disconnected machine driven by readings and ticks.

    The monitor starts in ``awaiting_data``. It never reports a disconnect
    until at least one reading has been accepted, and reports each
    transition exactly once. Callers must serialize access.
    """

    def __init__(self, state: MonitorState, disconnect_threshold_ms: int) -> None:
        if disconnect_threshold_ms <= 0:
            raise ValueError("disconnect threshold must be positive")
        self.state = state
        self.disconnect_threshold_ms = disconnect_threshold_ms

    @property
    def connection(self) -> ConnectionState:
        return self.state.connection

    def record_reading(self, now_ms: int) -> MonitorEvent:
        """Mark the feed alive; returns the event to deliver with the snapshot."""
        state = self.state
        if state.last_accepted_ms is None or now_ms > state.last_accepted_ms:
            state.last_accepted_ms = now_ms

        previous = state.connection
        state.connection = ConnectionState.connected
        if previous is ConnectionState.awaiting_data:
            return MonitorEvent.connected
        if previous is ConnectionState.disconnected:
            return MonitorEvent.reconnected
        return MonitorEvent.reading

    def check(self, now_ms: int) -> Optional[MonitorEvent]:
        """Return ``disconnected`` on the tick that crosses the threshold."""
        state = self.state
        if state.connection is not ConnectionState.connected or state.last_accepted_ms is None:
            return None
        if now_ms - state.last_accepted_ms <= self.disconnect_threshold_ms:
            return None
        state.connection = ConnectionState.disconnected
        return MonitorEvent.disconnected
