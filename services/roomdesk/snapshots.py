"""Live collection snapshots.

Subscribers register for a collection (``rooms`` or ``bookings``) and get the
whole collection every time it changes. There is no diffing and no ordering
guarantee across rapid changes: the last snapshot delivered wins.
"""
from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session

from roomdesk import db
from roomdesk.repository import BookingRepository, RoomRepository, room_sort_key

logger = logging.getLogger("roomdesk.snapshots")

Snapshot = List[Dict[str, Any]]
Loader = Callable[[], Snapshot]
Subscriber = Callable[[Snapshot], None]


class SnapshotFeed:
    def __init__(self, loaders: Dict[str, Loader]):
        self._loaders = dict(loaders)
        self._subscribers: Dict[str, List[Subscriber]] = {name: [] for name in loaders}
        self._lock = Lock()

    @property
    def collections(self) -> List[str]:
        return list(self._loaders)

    def subscribe(self, collection: str, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        if collection not in self._loaders:
            raise KeyError(collection)
        with self._lock:
            self._subscribers[collection].append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers[collection]:
                    self._subscribers[collection].remove(callback)

        return unsubscribe

    def subscriber_count(self, collection: str) -> int:
        with self._lock:
            return len(self._subscribers.get(collection, []))

    def load(self, collection: str) -> Optional[Snapshot]:
        # a failed load leaves subscribers on whatever they last saw
        try:
            return self._loaders[collection]()
        except Exception:
            logger.exception("could not load %s snapshot", collection)
            return None

    def refresh(self, collection: str) -> Optional[Snapshot]:
        """Reload ``collection`` and push it; nothing is read when nobody listens."""
        with self._lock:
            targets = list(self._subscribers.get(collection, []))
        if not targets:
            return None
        snapshot = self.load(collection)
        if snapshot is None:
            return None
        for callback in targets:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("%s subscriber failed", collection)
        logger.debug("pushed %s snapshot (%d rows) to %d subscribers",
                     collection, len(snapshot), len(targets))
        return snapshot


def load_rooms() -> Snapshot:
    with Session(db.engine) as s:
        return [r.model_dump(mode="json") for r in RoomRepository(s).list()]


def load_bookings() -> Snapshot:
    with Session(db.engine) as s:
        rows = BookingRepository(s).summaries()
        rows.sort(key=lambda b: room_sort_key(b.room_no))
        return [b.model_dump(mode="json") for b in rows]


feed = SnapshotFeed({"rooms": load_rooms, "bookings": load_bookings})
