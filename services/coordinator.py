"""Ingestion orchestration around live sensor subscriptions."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Event, Lock, RLock, Thread, current_thread
from typing import Callable, Dict, Optional, Set

from app.schemas import ConnectionState, MonitorEvent, StorageSnapshot
from datastore.realtime_db import MockRealtimeDatabase
from models.records import HistoricalPoint, RawReading, parse_raw_reading
from models.thresholds import ThresholdPolicy, validate_policy
from services.change_detector import is_material_change
from services.history import Clock, HistoricalWindowManager, wall_clock_ms
from services.snapshot_builder import SnapshotBuilder
from services.staleness import MonitorState, StalenessMonitor

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Optional[StorageSnapshot], MonitorEvent], None]


def live_path(unit_id: str) -> str:
    return f"storageData/{unit_id}"


def readings_path(unit_id: str) -> str:
    return f"sensorReadings/{unit_id}"


class MonitorSubscription:
    """One monitored storage unit: its state, timer and store listener.

    Store deliveries and staleness ticks are serialized on a re-entrant lock,
    and the consumer callback runs while it is held. Once ``unsubscribe``
    returns no further callbacks are made.
    """

    def __init__(
        self,
        unit_id: str,
        storage_unit: str,
        store: MockRealtimeDatabase,
        builder: SnapshotBuilder,
        history: HistoricalWindowManager,
        callback: SnapshotCallback,
        executor: ThreadPoolExecutor,
        disconnect_threshold_ms: int,
        check_interval_ms: int,
        clock: Clock = wall_clock_ms,
    ) -> None:
        if check_interval_ms <= 0:
            raise ValueError("staleness check interval must be positive")
        self.unit_id = unit_id
        self.storage_unit = storage_unit
        self.store = store
        self.builder = builder
        self.history = history
        self.state = MonitorState()
        self.staleness = StalenessMonitor(self.state, disconnect_threshold_ms)
        self.check_interval_ms = check_interval_ms
        self._callback = callback
        self._executor = executor
        self._clock = clock
        self._lock = RLock()
        self._closed = False
        self._callback_depth = 0
        self._stop = Event()
        self._timer: Optional[Thread] = None
        self._unsubscribe_store: Optional[Callable[[], None]] = None
        self._pending: Set[Future[None]] = set()
        self._pending_lock = Lock()

    @property
    def active(self) -> bool:
        return not self._closed

    @property
    def connection(self) -> ConnectionState:
        return self.state.connection

    def start(self) -> None:
        with self._lock:
            if self._closed or self._timer is not None:
                return
            self._unsubscribe_store = self.store.subscribe(
                live_path(self.unit_id), self._on_record, self._on_error
            )
            self._timer = Thread(
                target=self._run_timer,
                name=f"staleness-{self.unit_id}",
                daemon=True,
            )
            self._timer.start()
        logger.info("Subscribed to storage unit", extra={"storage_unit": self.unit_id})

    def unsubscribe(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stop.set()
            unsubscribe_store, self._unsubscribe_store = self._unsubscribe_store, None
            timer, self._timer = self._timer, None
            # Joining from inside a callback could wait on a tick blocked on this lock.
            joinable = self._callback_depth == 0

        if unsubscribe_store is not None:
            unsubscribe_store()
        if timer is not None and joinable and timer is not current_thread():
            timer.join()
        logger.info("Unsubscribed from storage unit", extra={"storage_unit": self.unit_id})

    def check_staleness(self) -> Optional[MonitorEvent]:
        """Run one staleness evaluation; the timer thread calls this each tick."""
        with self._lock:
            if self._closed:
                return None
            event = self.staleness.check(self._clock())
            if event is None:
                return None
            logger.warning(
                "Sensor feed went silent",
                extra={
                    "storage_unit": self.unit_id,
                    "event": event.value,
                    "elapsed_ms": self._clock() - (self.state.last_accepted_ms or 0),
                },
            )
            self._deliver(None, event)
            return event

    def wait_for_persistence(self, timeout: Optional[float] = None) -> None:
        with self._pending_lock:
            pending = list(self._pending)
        for future in pending:
            future.exception(timeout=timeout)

    def _run_timer(self) -> None:
        interval = self.check_interval_ms / 1000
        while not self._stop.wait(interval):
            self.check_staleness()

    def _on_record(self, record: object) -> None:
        with self._lock:
            if self._closed:
                return
            if record is None:
                self._deliver(None, MonitorEvent.no_data)
                return

            try:
                reading = parse_raw_reading(record)
            except ValueError as exc:
                logger.warning(
                    "Dropping malformed reading",
                    extra={"storage_unit": self.unit_id, "reason": str(exc)},
                )
                return

            now = self._clock()
            event = self.staleness.record_reading(now)
            changed, fingerprint = is_material_change(self.state.last_fingerprint, reading)
            self.state.last_fingerprint = fingerprint
            if changed:
                logger.info(
                    "Material change in readings",
                    extra={"storage_unit": self.unit_id, "fingerprint": fingerprint},
                )
            else:
                logger.debug("Reading unchanged", extra={"storage_unit": self.unit_id})
            if event is not MonitorEvent.reading:
                logger.info("Sensor feed live", extra={"storage_unit": self.unit_id, "event": event.value})

            snapshot = self.builder.build(reading, self.storage_unit, now)
            self._deliver(snapshot, event)
            self._persist_async(reading, snapshot)

    def _on_error(self, error: Exception) -> None:
        with self._lock:
            if self._closed:
                return
            logger.error(
                "Transport read failed",
                extra={"storage_unit": self.unit_id, "reason": str(error)},
            )
            self._deliver(None, MonitorEvent.transport_error)

    def _deliver(self, snapshot: Optional[StorageSnapshot], event: MonitorEvent) -> None:
        self._callback_depth += 1
        try:
            self._callback(snapshot, event)
        except Exception:
            logger.exception(
                "Subscriber callback failed",
                extra={"storage_unit": self.unit_id, "event": event.value},
            )
        finally:
            self._callback_depth -= 1

    def _persist_async(self, reading: RawReading, snapshot: StorageSnapshot) -> None:
        try:
            future = self._executor.submit(self._persist, reading, snapshot)
        except RuntimeError as exc:
            logger.error(
                "Unable to schedule history write",
                extra={"storage_unit": self.unit_id, "reason": str(exc)},
            )
            return
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._clear_pending)

    def _clear_pending(self, future: Future[None]) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _persist(self, reading: RawReading, snapshot: StorageSnapshot) -> None:
        timestamp = snapshot.timestamp
        record = reading.to_record()
        record["timestamp"] = timestamp
        path = f"{readings_path(self.unit_id)}/{timestamp}"
        try:
            self.store.set(path, record)
            self.history.record(
                HistoricalPoint(
                    timestamp=timestamp,
                    temperature=snapshot.temperature.value,
                    humidity=snapshot.humidity.value,
                )
            )
        except Exception as exc:
            logger.error(
                "History write failed",
                extra={"storage_unit": self.unit_id, "path": path, "reason": str(exc)},
            )


class IngestionCoordinator:
    """Creates independent subscriptions sharing one policy and writer pool."""

    def __init__(
        self,
        store: MockRealtimeDatabase,
        policy: ThresholdPolicy,
        disconnect_threshold_ms: int = 15000,
        check_interval_ms: int = 5000,
        history_limit: int = 1000,
        workers: int = 2,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.store = store
        self.builder = SnapshotBuilder(validate_policy(policy))
        self.disconnect_threshold_ms = disconnect_threshold_ms
        self.check_interval_ms = check_interval_ms
        self.history_limit = history_limit
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="history-writer")
        self._clock = clock
        self._subscriptions: Dict[int, MonitorSubscription] = {}
        self._lock = Lock()

    def history_for(self, unit_id: str) -> HistoricalWindowManager:
        return HistoricalWindowManager(
            self.store, unit_id, limit=self.history_limit, clock=self._clock
        )

    def subscribe(
        self,
        unit_id: str,
        callback: SnapshotCallback,
        storage_unit: Optional[str] = None,
    ) -> MonitorSubscription:
        subscription = MonitorSubscription(
            unit_id=unit_id,
            storage_unit=storage_unit or unit_id,
            store=self.store,
            builder=self.builder,
            history=self.history_for(unit_id),
            callback=callback,
            executor=self.executor,
            disconnect_threshold_ms=self.disconnect_threshold_ms,
            check_interval_ms=self.check_interval_ms,
            clock=self._clock,
        )
        with self._lock:
            self._subscriptions = {
                key: existing for key, existing in self._subscriptions.items() if existing.active
            }
            self._subscriptions[id(subscription)] = subscription
        subscription.start()
        return subscription

    def shutdown(self) -> None:
        """Unsubscribe everything, then stop the writer pool."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.unsubscribe()
        self.executor.shutdown(wait=False, cancel_futures=True)
