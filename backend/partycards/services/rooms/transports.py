"""The three synchronizer transports.

* ``PollingSynchronizer``: room documents live in a shared store (the SQL
  table in production); clients poll ``read``. Leave is explicit, so
  presence pruning is optional.
* ``PushSynchronizer``: room documents live in a realtime store that
  pushes every write to its subscribers.
* ``PeerSynchronizer``: each peer keeps its own copy of the room,
  broadcasts writes to the other peers and mirrors them into a replica
  store that late or missed peers reconcile from.
"""

import json
import logging
import threading
import uuid
from typing import Callable, Dict, Optional

from .errors import ErrorKind, Outcome, StoreError
from .state import GameState, document_version, normalize_room_code
from .stores import KEEP
from .synchronizer import ROOMS_PREFIX, Synchronizer, room_path

logger = logging.getLogger(__name__)


class PollingSynchronizer(Synchronizer):
    transport = 'poll'

    def __init__(self, store, scheduler, track_presence: bool = False, **kwargs):
        super().__init__(store, scheduler, **kwargs)
        self.tracks_presence = track_presence


class PushSynchronizer(Synchronizer):
    transport = 'push'

    def __init__(self, store, scheduler, **kwargs):
        if not store.supports_subscribe:
            raise ValueError(f"{type(store).__name__} cannot push changes")
        super().__init__(store, scheduler, **kwargs)

    def _publish(self, code, state):
        # Subscribers are fed by the store itself.
        pass

    def _view(self, doc) -> Optional[GameState]:
        if doc is None:
            return None
        state = GameState.from_dict(doc)
        self.presence.live_view(state.player_list(), self.clock())
        return state

    def subscribe(self, code, on_change):
        code = normalize_room_code(code)

        def _relay(doc):
            if doc is None:
                self.scheduler.cancel_room(code)
            on_change(self._view(doc))

        return self.store.subscribe(room_path(code), _relay)

    def disconnect(self, code, player_id):
        self._stop_heartbeat(code, player_id)

        def _mark(state, now):
            player = state.player(player_id)
            if player is None or not player.connected:
                return Outcome.success(state=state, applied=False)
            player.connected = False
            return Outcome.success(state=state)

        outcome = self._mutate(code, _mark)
        if outcome.error is ErrorKind.NOT_FOUND:
            return Outcome.success(applied=False)
        return outcome


def _serialize(doc) -> str:
    return json.dumps(doc, sort_keys=True)


class PeerBus:
    """Broadcast channel connecting the peers of one mesh."""

    def __init__(self):
        self._peers = []
        self._guard = threading.Lock()

    def join(self, peer) -> None:
        with self._guard:
            if peer not in self._peers:
                self._peers.append(peer)

    def leave(self, peer) -> None:
        with self._guard:
            if peer in self._peers:
                self._peers.remove(peer)

    def broadcast(self, sender, code, doc) -> None:
        with self._guard:
            peers = [p for p in self._peers if p is not sender]
        for peer in peers:
            try:
                peer.receive(code, doc)
            except Exception:
                logger.warning(f"[peer-broadcast] room={code} peer={peer.peer_id} failed", exc_info=True)


class PeerSynchronizer(Synchronizer):
    """Peer-to-peer transport with a storage-backed replica.

    Without a serializing store, concurrent writes resolve last-write-wins
    on ``(updated_at, revision)``. Two peers finishing within the same
    propagation window may each record themselves as winner locally;
    whichever write carries the later version is the one every peer
    converges on. Broadcasts go out after the room lock is released.
    """
    transport = 'peer'

    def __init__(self, store, scheduler, bus: PeerBus = None, peer_id: str = None, **kwargs):
        super().__init__(store, scheduler, **kwargs)
        self.peer_id = peer_id or uuid.uuid4().hex[:8]
        self.bus = bus or PeerBus()
        self.bus.join(self)
        self._local: Dict[str, dict] = {}
        self._guard = threading.RLock()

    # ---- replica reconciliation ----

    def _read_replica(self, code) -> Optional[dict]:
        return self.store.get(room_path(code))

    def _write_replica(self, code, doc) -> None:
        def _step(current):
            if current is not None and document_version(current) > document_version(doc):
                return KEEP
            return doc
        self.store.update(room_path(code), _step)

    def _reconcile(self, code, doc) -> bool:
        """Adopt `doc` as this peer's copy if it is newer and actually different."""
        with self._room_lock(code):
            with self._guard:
                local = self._local.get(code)
                if doc is None:
                    if local is None:
                        return False
                    self._local.pop(code, None)
                else:
                    if local is not None:
                        if _serialize(local) == _serialize(doc):
                            return False
                        if document_version(doc) < document_version(local):
                            return False
                    self._local[code] = doc
            if doc is None:
                self._on_removed(code)
            else:
                self._publish(code, GameState.from_dict(doc))
        return True

    def receive(self, code, doc) -> bool:
        return self._reconcile(normalize_room_code(code), doc)

    def sync(self, code) -> bool:
        """Pull the replica and republish if it differs from the local copy."""
        code = normalize_room_code(code)
        try:
            doc = self._read_replica(code)
        except StoreError:
            logger.warning(f"[replica-sync] room={code} read failed, keeping local copy")
            return False
        return self._reconcile(code, doc)

    # ---- storage hooks ----

    def _load(self, code):
        self.sync(code)
        with self._guard:
            doc = self._local.get(code)
            return json.loads(_serialize(doc)) if doc is not None else None

    def _apply(self, code, fn):
        with self._guard:
            local = self._local.get(code)
            replica = self._read_replica(code)
            base = local
            if replica is not None and (local is None or document_version(replica) >= document_version(local)):
                base = replica
            new = fn(json.loads(_serialize(base)) if base is not None else None)
            if new is KEEP:
                return base
            if new is None:
                self.store.delete(room_path(code))
                self._local.pop(code, None)
            else:
                self._write_replica(code, new)
                self._local[code] = new
        return new

    def _committed(self, code, doc):
        self.bus.broadcast(self, code, doc)

    def _room_codes(self):
        with self._guard:
            codes = set(self._local.keys())
        try:
            codes.update(p[len(ROOMS_PREFIX):] for p in self.store.paths(ROOMS_PREFIX))
        except StoreError:
            logger.warning("[replica-list] failed, using local rooms only")
        return sorted(codes)

    # ---- contract extensions ----

    def subscribe(self, code, on_change: Callable):
        code = normalize_room_code(code)
        unsubscribe = super().subscribe(code, on_change)
        key = (code, 'replica-sync', self.peer_id)
        self.scheduler.call_every(key, self.poll_interval_ms / 1000.0, lambda: self.sync(code))

        def _unsubscribe():
            unsubscribe()
            with self._listener_guard:
                idle = not self._listeners.get(code)
            if idle:
                self.scheduler.cancel(key)
        return _unsubscribe

    def disconnect(self, code, player_id):
        """Stop heartbeats; a departing host also tears down the replicated room."""
        code = normalize_room_code(code)
        self._stop_heartbeat(code, player_id)
        with self._guard:
            doc = self._local.get(code)
        if doc is not None and doc['room'].get('host_id') == str(player_id):
            self.destroy(code)
            return Outcome.success()
        return Outcome.success(applied=False)

    def close(self) -> None:
        """Leave the mesh and drop every local copy."""
        self.bus.leave(self)
        with self._guard:
            codes = list(self._local.keys())
            self._local.clear()
        for code in codes:
            self.scheduler.cancel((code, 'replica-sync', self.peer_id))
