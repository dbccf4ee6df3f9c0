"""Time-bounded historical series used for trend charts."""

from __future__ import annotations

import logging
import time
from typing import Callable, List

from datastore.realtime_db import MockRealtimeDatabase
from models.records import HistoricalPoint

logger = logging.getLogger(__name__)

MS_PER_HOUR = 3_600_000

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def history_path(unit_id: str) -> str:
    return f"historicalData/{unit_id}"


class HistoricalWindowManager:
    """Appends points for one unit and answers lookback queries.

    The store only caps cardinality; each query re-filters by the lookback
    window and re-sorts, since neither order nor window boundary is
    guaranteed by the store.
    """

    def __init__(
        self,
        store: MockRealtimeDatabase,
        unit_id: str,
        limit: int = 1000,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.store = store
        self.unit_id = unit_id
        self.limit = limit
        self._clock = clock

    def record(self, point: HistoricalPoint) -> None:
        self.store.set(f"{history_path(self.unit_id)}/{point.timestamp}", point.to_record())

    def query(self, lookback_hours: float) -> List[HistoricalPoint]:
        cutoff = self._clock() - lookback_hours * MS_PER_HOUR
        children = self.store.get_children(
            history_path(self.unit_id), order_by="timestamp", limit_to_last=self.limit
        )

        points: List[HistoricalPoint] = []
        for child in children:
            try:
                point = HistoricalPoint(
                    timestamp=int(child["timestamp"]),
                    temperature=float(child["temperature"]),
                    humidity=float(child["humidity"]),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning(
                    "Skipping malformed history entry",
                    extra={"storage_unit": self.unit_id, "reason": "malformed point"},
                )
                continue
            if point.timestamp >= cutoff:
                points.append(point)

        points.sort(key=lambda p: p.timestamp)
        return points
