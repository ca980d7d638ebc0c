"""Key-value backing stores the synchronizer persists room documents into.

Values are JSON documents. Every store offers get and delete, a listing
of paths under a prefix and ``update``: an atomic read-modify-write of a
single path. Stores that can push changes (the realtime store) also
implement ``subscribe``.
"""

import json
import logging
import threading
from collections import defaultdict
from typing import Callable, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from partycards import db
from partycards.models import RoomEntry

from .errors import StoreError

logger = logging.getLogger(__name__)

# Returned from an update function to leave the stored value untouched.
KEEP = object()


class KeyValueStore:
    supports_subscribe = False

    def get(self, path: str):
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def paths(self, prefix: str = '') -> List[str]:
        raise NotImplementedError

    def update(self, path: str, fn: Callable):
        """Atomically apply ``fn(current) -> new`` to `path`.

        ``new`` of None deletes the path, ``KEEP`` writes nothing. Returns
        the value stored afterwards.
        """
        raise NotImplementedError

    def subscribe(self, path: str, callback: Callable) -> Callable[[], None]:
        raise NotImplementedError(f"{type(self).__name__} cannot push changes")


class PathLocks:
    """Lazily created per-path locks so writes to different rooms never contend."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def lock(self, path: str) -> threading.RLock:
        with self._guard:
            if path not in self._locks:
                self._locks[path] = threading.RLock()
            return self._locks[path]


class MemoryStore(KeyValueStore):
    """In-process store with change notifications.

    Serves as the realtime store for the push backend and as the local
    replica for the peer backend. Values are kept serialized, so readers
    always get an independent copy.
    """
    supports_subscribe = True

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._locks = PathLocks()
        self._subscribers: Dict[str, List[Callable]] = defaultdict(list)
        self._sub_guard = threading.Lock()

    def get(self, path):
        raw = self._data.get(path)
        return json.loads(raw) if raw is not None else None

    def delete(self, path):
        self.update(path, lambda _current: None)

    def paths(self, prefix=''):
        return sorted(p for p in list(self._data.keys()) if p.startswith(prefix))

    def update(self, path, fn):
        # Subscribers are notified under the path lock, so they see writes
        # to one path in commit order.
        with self._locks.lock(path):
            current = self.get(path)
            new = fn(current)
            if new is KEEP:
                return current
            if new is None:
                existed = self._data.pop(path, None) is not None
                if not existed:
                    return None
            else:
                self._data[path] = json.dumps(new, sort_keys=True)
            self._notify(path, new)
        return new

    def subscribe(self, path, callback):
        with self._sub_guard:
            self._subscribers[path].append(callback)

        def _unsubscribe():
            with self._sub_guard:
                callbacks = self._subscribers.get(path, [])
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(path, None)
        return _unsubscribe

    def _notify(self, path, value):
        with self._sub_guard:
            callbacks = list(self._subscribers.get(path, []))
        for cb in callbacks:
            try:
                cb(json.loads(json.dumps(value)) if value is not None else None)
            except Exception:
                logger.warning(f"[store-notify] path={path} subscriber failed", exc_info=True)


class SqlStore(KeyValueStore):
    """Shared store backed by the ``room_entry`` table.

    Each operation runs in its own app context and transaction. Updates
    take a row lock (``SELECT ... FOR UPDATE``) so concurrent writers to the
    same room are serialized by the database; an in-process lock covers
    SQLite, which ignores row locks.
    """

    def __init__(self, app):
        self.app = app
        self._locks = PathLocks()

    def get(self, path):
        with self.app.app_context():
            try:
                entry = RoomEntry.query.filter_by(path=path).first()
                return entry.load() if entry else None
            except SQLAlchemyError as exc:
                raise StoreError(f"read failed for {path}") from exc

    def delete(self, path):
        self.update(path, lambda _current: None)

    def paths(self, prefix=''):
        with self.app.app_context():
            try:
                rows = RoomEntry.query.filter(RoomEntry.path.startswith(prefix)).all()
                return sorted(r.path for r in rows)
            except SQLAlchemyError as exc:
                raise StoreError(f"listing failed for {prefix}") from exc

    def update(self, path, fn):
        with self._locks.lock(path), self.app.app_context():
            try:
                entry = RoomEntry.query.filter_by(path=path).with_for_update().first()
                current = entry.load() if entry else None
                new = fn(current)
                if new is KEEP:
                    db.session.rollback()
                    return current
                if new is None:
                    if entry is not None:
                        db.session.delete(entry)
                else:
                    if entry is None:
                        entry = RoomEntry(path=path)
                    entry.dump(new)
                    db.session.add(entry)
                db.session.commit()
                return new
            except SQLAlchemyError as exc:
                db.session.rollback()
                raise StoreError(f"write failed for {path}") from exc
