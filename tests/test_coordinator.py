"""Tests for the ingestion coordinator and per-unit subscriptions."""

from __future__ import annotations

import logging
import threading
import time
from typing import Iterator, List, Optional, Tuple

import pytest

from app.schemas import ConnectionState, MonitorEvent, ParameterStatus, SpoilageRisk, StorageSnapshot
from datastore.realtime_db import MockRealtimeDatabase
from models.thresholds import DEFAULT_THRESHOLDS
from services.coordinator import IngestionCoordinator, live_path, readings_path
from services.history import history_path

HOT_READING = {
    "temperature": 32,
    "humidity": 60,
    "co2": 500,
    "ammonia": 5,
    "methane": 10,
    "ethylene": 2,
    "h2s": 1,
}

Delivery = Tuple[Optional[StorageSnapshot], MonitorEvent]


class FakeClock:
    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


class Recorder:
    def __init__(self) -> None:
        self.deliveries: List[Delivery] = []
        self._lock = threading.Lock()

    def __call__(self, snapshot: Optional[StorageSnapshot], event: MonitorEvent) -> None:
        with self._lock:
            self.deliveries.append((snapshot, event))

    def events(self) -> List[MonitorEvent]:
        with self._lock:
            return [event for _, event in self.deliveries]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> MockRealtimeDatabase:
    return MockRealtimeDatabase(name="test")


@pytest.fixture
def coordinator(store: MockRealtimeDatabase, clock: FakeClock) -> Iterator[IngestionCoordinator]:
    # Long timer cadence: tests drive staleness checks by hand.
    coordinator = IngestionCoordinator(
        store=store,
        policy=DEFAULT_THRESHOLDS,
        disconnect_threshold_ms=15000,
        check_interval_ms=600_000,
        workers=1,
        clock=clock,
    )
    yield coordinator
    coordinator.shutdown()


def test_subscribe_with_no_data_delivers_absent_snapshot(coordinator, store) -> None:
    recorder = Recorder()

    subscription = coordinator.subscribe("unit-1", recorder, storage_unit="Rice Storage A")

    assert recorder.deliveries == [(None, MonitorEvent.no_data)]
    assert subscription.connection is ConnectionState.awaiting_data
    assert store.subscriber_count(live_path("unit-1")) == 1


def test_reading_is_classified_and_delivered(coordinator, store, clock) -> None:
    recorder = Recorder()
    coordinator.subscribe("unit-1", recorder, storage_unit="Rice Storage A")
    clock.now = 1_000

    store.set(live_path("unit-1"), HOT_READING)

    snapshot, event = recorder.deliveries[-1]
    assert event is MonitorEvent.connected
    assert snapshot is not None
    assert snapshot.spoilage_risk is SpoilageRisk.high
    assert snapshot.recommendations == ["Reduce temperature - activate cooling system"]
    assert snapshot.storage_unit == "Rice Storage A"
    assert snapshot.timestamp == 1_000


def test_controller_payload_gases_are_classified(coordinator, store, clock) -> None:
    recorder = Recorder()
    coordinator.subscribe("unit-1", recorder)
    clock.now = 2_000

    store.set(
        live_path("unit-1"),
        {
            "temperature": 20,
            "humidity": 60,
            "CO2": 1600,
            "ammonia": 5,
            "methane": 10,
            "ethylene": 2,
            "H2S": 25,
            "lastUpdate": 123,
        },
    )

    snapshot, event = recorder.deliveries[-1]
    assert event is MonitorEvent.connected
    assert snapshot is not None
    assert snapshot.gases["co2"].value == 1600
    assert snapshot.gases["co2"].status is ParameterStatus.critical
    assert snapshot.gases["h2s"].value == 25
    assert snapshot.gases["h2s"].status is ParameterStatus.critical
    assert snapshot.spoilage_risk is SpoilageRisk.critical
    assert snapshot.timestamp == 2_000
    assert snapshot.recommendations[0] == "Elevated CO2 - check ventilation system"


def test_reading_without_humidity_is_dropped(coordinator, store, caplog) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)

    with caplog.at_level(logging.WARNING, logger="services.coordinator"):
        store.set(live_path("unit-1"), {"temperature": 20, "CO2": 500})

    assert recorder.events() == [MonitorEvent.no_data]
    assert subscription.connection is ConnectionState.awaiting_data
    records = [r for r in caplog.records if r.getMessage() == "Dropping malformed reading"]
    assert records and records[0].reason == "missing humidity"


def test_accepted_reading_is_persisted(coordinator, store, clock) -> None:
    subscription = coordinator.subscribe("unit-1", Recorder())
    clock.now = 5_000

    store.set(live_path("unit-1"), HOT_READING)
    subscription.wait_for_persistence(timeout=5)

    raw = store.get(f"{readings_path('unit-1')}/5000")
    assert raw["temperature"] == 32.0
    assert raw["timestamp"] == 5_000
    assert store.get(f"{history_path('unit-1')}/5000") == {
        "timestamp": 5_000,
        "temperature": 32.0,
        "humidity": 60.0,
    }
    assert [p.timestamp for p in coordinator.history_for("unit-1").query(1)] == [5_000]


def test_unchanged_readings_are_still_delivered(coordinator, store, caplog) -> None:
    recorder = Recorder()
    coordinator.subscribe("unit-1", recorder)

    with caplog.at_level(logging.INFO, logger="services.coordinator"):
        store.set(live_path("unit-1"), HOT_READING)
        store.set(live_path("unit-1"), HOT_READING)

    snapshots = [s for s, _ in recorder.deliveries if s is not None]
    assert len(snapshots) == 2
    assert snapshots[0] == snapshots[1]
    changes = [r for r in caplog.records if r.getMessage() == "Material change in readings"]
    assert len(changes) == 1


def test_malformed_reading_is_dropped_without_state_change(coordinator, store, clock, caplog) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)

    with caplog.at_level(logging.WARNING, logger="services.coordinator"):
        store.set(live_path("unit-1"), {"humidity": 60})

    assert recorder.events() == [MonitorEvent.no_data]
    assert subscription.state.last_accepted_ms is None
    assert subscription.connection is ConnectionState.awaiting_data
    records = [r for r in caplog.records if r.getMessage() == "Dropping malformed reading"]
    assert records and records[0].reason == "missing temperature"
    assert getattr(records[0], "storage_unit") == "unit-1"


def test_malformed_reading_does_not_keep_feed_alive(coordinator, store, clock) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)
    store.set(live_path("unit-1"), HOT_READING)

    clock.now = 10_000
    store.set(live_path("unit-1"), {"temperature": "n/a"})
    clock.now = 16_000

    assert subscription.check_staleness() is MonitorEvent.disconnected


def test_single_disconnect_between_threshold_and_next_tick(coordinator, store, clock) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)
    store.set(live_path("unit-1"), HOT_READING)

    fired_at = []
    for tick in range(5_000, 60_001, 5_000):
        clock.now = tick
        before = len(recorder.deliveries)
        subscription.check_staleness()
        if len(recorder.deliveries) > before:
            fired_at.append(tick)

    assert fired_at == [20_000]
    assert recorder.deliveries[-1] == (None, MonitorEvent.disconnected)
    assert subscription.connection is ConnectionState.disconnected


def test_unchanged_reading_resets_staleness_timer(coordinator, store, clock) -> None:
    subscription = coordinator.subscribe("unit-1", Recorder())
    store.set(live_path("unit-1"), HOT_READING)

    clock.now = 14_000
    store.set(live_path("unit-1"), HOT_READING)
    clock.now = 20_000

    assert subscription.check_staleness() is None


def test_reading_after_disconnect_reconnects(coordinator, store, clock) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)
    store.set(live_path("unit-1"), HOT_READING)
    clock.now = 20_000
    subscription.check_staleness()

    clock.now = 21_000
    store.set(live_path("unit-1"), HOT_READING)
    store.set(live_path("unit-1"), HOT_READING)

    assert recorder.events() == [
        MonitorEvent.no_data,
        MonitorEvent.connected,
        MonitorEvent.disconnected,
        MonitorEvent.reconnected,
        MonitorEvent.reading,
    ]
    assert recorder.deliveries[3][0] is not None
    assert subscription.connection is ConnectionState.connected


def test_transport_error_delivers_absent_snapshot_and_keeps_subscription(coordinator, store) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)

    store.fail_subscribers(live_path("unit-1"), RuntimeError("read failed"))
    store.set(live_path("unit-1"), HOT_READING)

    assert recorder.events() == [
        MonitorEvent.no_data,
        MonitorEvent.transport_error,
        MonitorEvent.connected,
    ]
    assert subscription.active


def test_persistence_failure_is_logged_not_raised(clock, caplog) -> None:
    class ReadOnlyHistoryStore(MockRealtimeDatabase):
        def set(self, path, value):
            if not path.startswith("storageData"):
                raise OSError("disk full")
            super().set(path, value)

    store = ReadOnlyHistoryStore(name="test")
    coordinator = IngestionCoordinator(
        store=store, policy=DEFAULT_THRESHOLDS, check_interval_ms=600_000, workers=1, clock=clock
    )
    recorder = Recorder()
    try:
        subscription = coordinator.subscribe("unit-1", recorder)
        with caplog.at_level(logging.ERROR, logger="services.coordinator"):
            store.set(live_path("unit-1"), HOT_READING)
            subscription.wait_for_persistence(timeout=5)
    finally:
        coordinator.shutdown()

    assert recorder.events()[-1] is MonitorEvent.connected
    failures = [r for r in caplog.records if r.getMessage() == "History write failed"]
    assert failures and failures[0].reason == "disk full"


def test_callback_failure_does_not_break_store_writes(coordinator, store, caplog) -> None:
    def explode(snapshot, event):
        if snapshot is not None:
            raise RuntimeError("consumer bug")

    coordinator.subscribe("unit-1", explode)

    with caplog.at_level(logging.ERROR, logger="services.coordinator"):
        store.set(live_path("unit-1"), HOT_READING)

    assert store.get(live_path("unit-1"))["temperature"] == 32
    assert any(r.getMessage() == "Subscriber callback failed" for r in caplog.records)


def test_unsubscribe_is_idempotent_and_stops_callbacks(coordinator, store, clock) -> None:
    recorder = Recorder()
    subscription = coordinator.subscribe("unit-1", recorder)
    store.set(live_path("unit-1"), HOT_READING)
    timer = subscription._timer
    assert timer is not None and timer.is_alive()

    subscription.unsubscribe()
    subscription.unsubscribe()
    delivered = len(recorder.deliveries)
    store.set(live_path("unit-1"), HOT_READING)
    clock.now = 60_000

    assert subscription.check_staleness() is None
    assert len(recorder.deliveries) == delivered
    assert not timer.is_alive()
    assert not subscription.active
    assert store.subscriber_count(live_path("unit-1")) == 0


def test_unsubscribe_from_inside_callback(coordinator, store) -> None:
    holder = {}

    def once(snapshot, event):
        if snapshot is not None:
            holder["subscription"].unsubscribe()

    holder["subscription"] = coordinator.subscribe("unit-1", once)
    store.set(live_path("unit-1"), HOT_READING)

    assert not holder["subscription"].active


def test_subscriptions_are_independent(coordinator, store, clock) -> None:
    first, second = Recorder(), Recorder()
    sub_one = coordinator.subscribe("unit-1", first)
    sub_two = coordinator.subscribe("unit-2", second)
    store.set(live_path("unit-1"), HOT_READING)
    store.set(live_path("unit-2"), HOT_READING)

    clock.now = 14_000
    store.set(live_path("unit-2"), HOT_READING)
    clock.now = 20_000
    sub_one.check_staleness()
    sub_two.check_staleness()

    assert sub_one.connection is ConnectionState.disconnected
    assert sub_two.connection is ConnectionState.connected
    sub_one.unsubscribe()
    store.set(live_path("unit-2"), HOT_READING)
    assert second.events()[-1] is MonitorEvent.reading


def test_timer_thread_reports_disconnect_once(store) -> None:
    coordinator = IngestionCoordinator(
        store=store,
        policy=DEFAULT_THRESHOLDS,
        disconnect_threshold_ms=100,
        check_interval_ms=20,
        workers=1,
    )
    recorder = Recorder()
    disconnected = threading.Event()

    def on_update(snapshot, event):
        recorder(snapshot, event)
        if event is MonitorEvent.disconnected:
            disconnected.set()

    try:
        coordinator.subscribe("unit-1", on_update)
        store.set(live_path("unit-1"), HOT_READING)

        assert disconnected.wait(timeout=5)
        time.sleep(0.3)
        assert recorder.events().count(MonitorEvent.disconnected) == 1

        store.set(live_path("unit-1"), HOT_READING)
        assert recorder.events()[-1] is MonitorEvent.reconnected
    finally:
        coordinator.shutdown()


def test_invalid_policy_fails_at_construction(store) -> None:
    partial = dict(list(DEFAULT_THRESHOLDS.items())[:3])

    with pytest.raises(ValueError):
        IngestionCoordinator(store=store, policy=partial)
