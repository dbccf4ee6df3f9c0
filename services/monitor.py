"""Service facade that keeps the latest view of every monitored unit."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

from app.schemas import (
    Alert,
    ConnectionState,
    FleetSummary,
    MonitorEvent,
    StorageSnapshot,
    UnitStatus,
)
from datastore.realtime_db import MockRealtimeDatabase, build_default_database
from models.records import HistoricalPoint, parse_raw_reading
from models.thresholds import ThresholdPolicy, load_policy
from services.alerts import build_alerts, summarize_units
from services.coordinator import IngestionCoordinator, MonitorSubscription, live_path
from settings import get_settings

logger = logging.getLogger(__name__)


class StorageMonitorService:
    """Subscribes to each configured unit and caches what it delivers."""

    def __init__(
        self,
        store: MockRealtimeDatabase,
        coordinator: IngestionCoordinator,
        units: Mapping[str, str],
        policy: ThresholdPolicy,
        default_lookback_hours: float = 24.0,
    ) -> None:
        if default_lookback_hours <= 0:
            raise ValueError("history lookback must be positive")
        self.store = store
        self.coordinator = coordinator
        self.units = dict(units)
        self.policy = policy
        self.default_lookback_hours = default_lookback_hours
        self._subscriptions: Dict[str, MonitorSubscription] = {}
        self._latest: Dict[str, StorageSnapshot] = {}
        self._lock = Lock()
        self._started = False

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True
        for unit_id, label in self.units.items():
            self._subscriptions[unit_id] = self.coordinator.subscribe(
                unit_id, self._make_callback(unit_id), storage_unit=label
            )

    def shutdown(self) -> None:
        self.coordinator.shutdown()
        self._subscriptions.clear()

    def ingest(self, unit_id: str, payload: Mapping[str, Any]) -> str:
        """Validate a reading and push it to the unit's live path."""
        self._require_unit(unit_id)
        reading = parse_raw_reading(payload)
        path = live_path(unit_id)
        self.store.set(path, reading.to_record())
        return path

    def unit_status(self, unit_id: str) -> UnitStatus:
        self._require_unit(unit_id)
        subscription = self._subscriptions.get(unit_id)
        connection = subscription.connection if subscription else ConnectionState.awaiting_data
        with self._lock:
            snapshot = self._latest.get(unit_id)
        return UnitStatus(
            unit_id=unit_id,
            storage_unit=self.units[unit_id],
            connection=connection,
            snapshot=snapshot,
        )

    def list_units(self) -> List[UnitStatus]:
        return [self.unit_status(unit_id) for unit_id in self.units]

    def lookback_hours(self, hours: Optional[float] = None) -> float:
        return self.default_lookback_hours if hours is None else hours

    def history(self, unit_id: str, hours: Optional[float] = None) -> List[HistoricalPoint]:
        """Points for the unit within ``hours``, or the configured lookback when omitted."""
        self._require_unit(unit_id)
        return self.coordinator.history_for(unit_id).query(self.lookback_hours(hours))

    def alerts(self, unit_id: str) -> List[Alert]:
        self._require_unit(unit_id)
        with self._lock:
            snapshot = self._latest.get(unit_id)
        if snapshot is None:
            return []
        return build_alerts(unit_id, snapshot, self.policy)

    def summary(self) -> FleetSummary:
        with self._lock:
            latest = dict(self._latest)
        return summarize_units(latest)

    def _require_unit(self, unit_id: str) -> None:
        if unit_id not in self.units:
            raise KeyError(f"Storage unit {unit_id!r} is not monitored.")

    def _make_callback(self, unit_id: str):
        def _on_update(snapshot: Optional[StorageSnapshot], event: MonitorEvent) -> None:
            with self._lock:
                if snapshot is None:
                    self._latest.pop(unit_id, None)
                else:
                    self._latest[unit_id] = snapshot
            if snapshot is None:
                logger.info("No live data", extra={"storage_unit": unit_id, "event": event.value})
            else:
                logger.debug(
                    "Snapshot received",
                    extra={
                        "storage_unit": unit_id,
                        "event": event.value,
                        "spoilage_risk": snapshot.spoilage_risk.value,
                    },
                )

        return _on_update


@lru_cache
def build_default_monitor() -> StorageMonitorService:
    """Factory that wires the monitor from settings; invalid thresholds fail here."""
    settings = get_settings()
    thresholds_path = Path(settings.thresholds_path) if settings.thresholds_path else None
    policy = load_policy(thresholds_path)
    store = build_default_database()
    coordinator = IngestionCoordinator(
        store=store,
        policy=policy,
        disconnect_threshold_ms=settings.disconnect_threshold_ms,
        check_interval_ms=settings.staleness_check_interval_ms,
        history_limit=settings.history_limit,
        workers=settings.persistence_workers,
    )
    return StorageMonitorService(
        store=store,
        coordinator=coordinator,
        units=settings.storage_units,
        policy=policy,
        default_lookback_hours=settings.history_lookback_hours,
    )
