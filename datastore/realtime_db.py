from __future__ import annotations

import copy
import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from settings import get_settings

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]
ErrorListener = Callable[[Exception], None]


def split_path(path: str) -> Tuple[str, ...]:
    parts = tuple(part for part in path.strip("/").split("/") if part)
    if not parts:
        raise ValueError("Path must contain at least one segment.")
    return parts


def _related(first: Tuple[str, ...], second: Tuple[str, ...]) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    length = min(len(first), len(second))
    return first[:length] == second[:length]


class _Registration:
    __slots__ = ("parts", "listener", "on_error", "active")

    def __init__(self, parts: Tuple[str, ...], listener: Listener, on_error: Optional[ErrorListener]) -> None:
        self.parts = parts
        self.listener = listener
        self.on_error = on_error
        self.active = True


class MockRealtimeDatabase:
    """In-process stand-in for a real-time JSON tree with push subscriptions.

    Values are addressed by slash separated paths. Writing ``None`` removes a
    node. Subscribers receive the current value at their path immediately and
    again after every write at, above or below it. Listeners are invoked on
    the writer's thread, outside the store lock.
    """

    def __init__(self, name: str, persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._root: Dict[str, Any] = {}
        self._registrations: Dict[str, _Registration] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def set(self, path: str, value: Any) -> None:
        parts = split_path(path)
        payload = copy.deepcopy(value)
        with self._lock:
            if payload is None:
                self._remove(parts)
            else:
                node = self._root
                for part in parts[:-1]:
                    child = node.get(part)
                    if not isinstance(child, dict):
                        child = {}
                        node[part] = child
                    node = child
                node[parts[-1]] = payload
            self._persist()
            targets = [r for r in self._registrations.values() if _related(r.parts, parts)]
            deliveries = [(r, copy.deepcopy(self._lookup(r.parts))) for r in targets]

        logger.debug("Wrote value", extra={"path": "/".join(parts)})
        for registration, current in deliveries:
            if registration.active:
                registration.listener(current)

    def get(self, path: str) -> Any:
        parts = split_path(path)
        with self._lock:
            return copy.deepcopy(self._lookup(parts))

    def get_children(
        self,
        path: str,
        order_by: str = "timestamp",
        limit_to_last: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Return object children ordered by ``order_by``, keeping the last N."""
        parts = split_path(path)
        with self._lock:
            node = self._lookup(parts)
            if not isinstance(node, dict):
                return []
            children = [
                copy.deepcopy(child)
                for child in node.values()
                if isinstance(child, dict) and isinstance(child.get(order_by), (int, float))
            ]

        children.sort(key=lambda child: child[order_by])
        if limit_to_last is not None:
            children = children[-limit_to_last:] if limit_to_last > 0 else []
        return children

    def subscribe(
        self,
        path: str,
        listener: Listener,
        on_error: Optional[ErrorListener] = None,
    ) -> Callable[[], None]:
        """Register ``listener`` for ``path``; returns an idempotent unsubscribe."""
        parts = split_path(path)
        registration = _Registration(parts, listener, on_error)
        token = uuid4().hex
        with self._lock:
            self._registrations[token] = registration
            current = copy.deepcopy(self._lookup(parts))

        def unsubscribe() -> None:
            registration.active = False
            with self._lock:
                self._registrations.pop(token, None)

        listener(current)
        return unsubscribe

    def fail_subscribers(self, path: str, error: Exception) -> int:
        """Deliver a read failure to subscribers of ``path``; returns how many."""
        parts = split_path(path)
        with self._lock:
            targets = [
                r for r in self._registrations.values()
                if r.parts == parts and r.on_error is not None
            ]
        for registration in targets:
            if registration.active and registration.on_error is not None:
                registration.on_error(error)
        return len(targets)

    def subscriber_count(self, path: str) -> int:
        parts = split_path(path)
        with self._lock:
            return sum(1 for r in self._registrations.values() if r.parts == parts)

    def _lookup(self, parts: Tuple[str, ...]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node

    def _remove(self, parts: Tuple[str, ...]) -> None:
        node: Any = self._root
        for part in parts[:-1]:
            if not isinstance(node, dict) or part not in node:
                return
            node = node[part]
        if isinstance(node, dict):
            node.pop(parts[-1], None)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        self.persistence_path.write_text(json.dumps(self._root, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            logger.warning(
                "Ignoring unreadable database file",
                extra={"path": str(self.persistence_path)},
            )
            data = {}

        if isinstance(data, dict):
            self._root = data


@lru_cache
def build_default_database(path: Optional[str] = None) -> MockRealtimeDatabase:
    settings = get_settings()
    db_path = settings.db_persistence_path if path is None else path
    persistence = Path(db_path) if db_path else None
    return MockRealtimeDatabase(name="storage-monitor", persistence_path=persistence)
