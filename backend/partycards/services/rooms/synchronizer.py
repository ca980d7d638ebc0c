"""The room synchronization contract shared by every transport.

Callers (HTTP routes, socket handlers, in-process participants) talk only
to a ``Synchronizer``: create, join, read, start, act, leave, subscribe,
plus the presence hooks heartbeat/connect/disconnect. Each transport
decides where the room document lives and how changes reach other
readers; the rules of the game live here and in the lifecycle, progress
and presence modules.

Every mutation is one read-modify-write of a single room document, so
checks such as "only the first finisher wins" are decided and committed
in the same step. Rejections come back as an ``Outcome`` carrying an
``ErrorKind``; they are never raised.
"""

import logging
import threading
import time
from collections import defaultdict
from typing import Callable, List, Optional

from . import lifecycle, progress
from .deck import CARD_MULTIPLICITY
from .errors import ErrorKind, Outcome, StoreError
from .presence import HEARTBEAT_INTERVAL_SEC, PresenceTracker
from .state import (
    GameState, Player, Room, generate_player_id, generate_room_code,
    generate_seed, normalize_room_code,
)
from .stores import KEEP, PathLocks

logger = logging.getLogger(__name__)

ROOMS_PREFIX = 'rooms/'
JANITOR_KEY = ('__janitor__',)

COUNTDOWN_MS = 3000
MAX_PLAYERS = 8
ROOM_TTL_SEC = 24 * 60 * 60
POLL_INTERVAL_MS = 1000


def room_path(code: str) -> str:
    return f"{ROOMS_PREFIX}{code}"


class Synchronizer:
    transport = None
    tracks_presence = True

    def __init__(self, store, scheduler, clock: Callable[[], float] = time.time,
                 presence: PresenceTracker = None, countdown_ms: int = COUNTDOWN_MS,
                 max_players: int = MAX_PLAYERS,
                 heartbeat_interval: float = HEARTBEAT_INTERVAL_SEC,
                 room_ttl: float = ROOM_TTL_SEC,
                 deck_multiplicity: int = CARD_MULTIPLICITY,
                 poll_interval_ms: int = POLL_INTERVAL_MS,
                 retry_delay: float = 1.0, code_attempts: int = 10):
        self.store = store
        self.scheduler = scheduler
        self.clock = clock
        self.presence = presence or PresenceTracker(clock=clock)
        self.countdown_ms = countdown_ms
        self.max_players = max_players
        self.heartbeat_interval = heartbeat_interval
        self.room_ttl = room_ttl
        self.deck_multiplicity = deck_multiplicity
        self.poll_interval_ms = poll_interval_ms
        self.retry_delay = retry_delay
        self.code_attempts = code_attempts
        self._listeners = defaultdict(list)
        self._listener_guard = threading.Lock()
        self._room_locks = PathLocks()

    # ---- storage hooks (overridden by transports) ----

    def _load(self, code: str) -> Optional[dict]:
        return self.store.get(room_path(code))

    def _apply(self, code: str, fn: Callable) -> Optional[dict]:
        """Atomically replace the room document with ``fn(current)``."""
        return self.store.update(room_path(code), fn)

    def _room_codes(self) -> List[str]:
        return [p[len(ROOMS_PREFIX):] for p in self.store.paths(ROOMS_PREFIX)]

    def _committed(self, code: str, doc: Optional[dict]) -> None:
        """Called after a write to `code` has been published, outside the room lock."""

    def _room_lock(self, code: str):
        # Held from commit through publish so listeners see one room's
        # writes in commit order.
        return self._room_locks.lock(code)

    def _publish(self, code: str, state: Optional[GameState]) -> None:
        with self._listener_guard:
            callbacks = list(self._listeners.get(code, []))
        for cb in callbacks:
            try:
                cb(state)
            except Exception:
                logger.warning(f"[publish-error] room={code}", exc_info=True)

    # ---- mutation core ----

    def _mutate(self, code, fn) -> Outcome:
        """Run ``fn(state, now) -> Outcome`` against the current room document.

        The document is written only when the outcome is ok and applied. A
        room left without players is deleted.
        """
        code = normalize_room_code(code)
        now = self.clock()
        result = {}

        def _step(current):
            if current is None:
                result['outcome'] = Outcome.failure(ErrorKind.NOT_FOUND)
                return KEEP
            state = GameState.from_dict(current)
            outcome = fn(state, now)
            result['outcome'] = outcome
            if not (outcome.ok and outcome.applied):
                return KEEP
            state.updated_at = max(now, state.updated_at)
            state.revision += 1
            if not state.players:
                return None
            return state.to_dict()

        with self._room_lock(code):
            try:
                stored = self._apply(code, _step)
            except StoreError:
                logger.warning(f"[store-error] room={code}", exc_info=True)
                return Outcome.failure(ErrorKind.CONFLICT)

            outcome = result['outcome']
            written = outcome.ok and outcome.applied
            if written:
                if stored is None:
                    outcome.state = None
                    self._on_removed(code)
                else:
                    outcome.state = GameState.from_dict(stored)
                    self._publish(code, outcome.state)
        if written:
            self._committed(code, stored)
        return outcome

    def _insert(self, state: GameState) -> bool:
        """Store `state` under its code unless the code is taken, then publish it."""
        state.revision = max(state.revision, 1)
        doc = state.to_dict()
        inserted = []

        def _step(current):
            if current is not None:
                return KEEP
            inserted.append(True)
            return doc

        with self._room_lock(state.code):
            self._apply(state.code, _step)
            if inserted:
                self._publish(state.code, state)
        if inserted:
            self._committed(state.code, doc)
        return bool(inserted)

    def _on_removed(self, code: str) -> None:
        cancelled = self.scheduler.cancel_room(code)
        logger.info(f"[room-removed] room={code} timers_cancelled={cancelled}")
        self._publish(code, None)

    # ---- contract ----

    def create(self, host_name) -> Outcome:
        """Create a room with `host_name` as its host. Value is ``(code, player_id)``."""
        host_name = (host_name or '').strip()
        if not host_name:
            return Outcome.failure(ErrorKind.INVALID_INPUT)
        now = self.clock()
        player_id = generate_player_id()
        for _ in range(self.code_attempts):
            code = generate_room_code()
            state = GameState(
                room=Room(
                    code=code,
                    host_id=player_id,
                    host_name=host_name,
                    seed=generate_seed(),
                    deck_multiplicity=self.deck_multiplicity,
                    created_at=now,
                    last_activity=now,
                ),
                players={player_id: Player(id=player_id, name=host_name, is_host=True, last_seen=now)},
                updated_at=now,
            )
            try:
                created = self._insert(state)
            except StoreError:
                logger.warning(f"[store-error] create room={code}", exc_info=True)
                return Outcome.failure(ErrorKind.CONFLICT)
            if created:
                logger.info(f"[room-created] room={code} host={player_id} transport={self.transport}")
                return Outcome.success(state=state, value=(code, player_id))
            logger.warning(f"[room-code-collision] code={code}")
        return Outcome.failure(ErrorKind.CONFLICT)

    def join(self, code, player_name) -> Outcome:
        player_name = (player_name or '').strip()
        if not player_name:
            return Outcome.failure(ErrorKind.INVALID_INPUT)
        player_id = generate_player_id()

        def _add(state, now):
            if not lifecycle.accepts_players(state):
                return Outcome.failure(ErrorKind.ALREADY_STARTED, state=state)
            if len(state.players) >= self.max_players:
                return Outcome.failure(ErrorKind.FULL, state=state)
            state.players[player_id] = Player(id=player_id, name=player_name, last_seen=now)
            state.touch(now)
            return Outcome.success(state=state, value=player_id)

        outcome = self._mutate(code, _add)
        if outcome.ok:
            logger.info(f"[player-joined] room={outcome.state.code} player={player_id}")
        return outcome

    def read(self, code) -> Optional[GameState]:
        """Current room view, or None if the room does not exist.

        Presence-tracking transports drop players past the removal
        threshold here and delete a room that ends up empty.
        """
        code = normalize_room_code(code)
        doc = self._load(code)
        if doc is None:
            return None
        state = GameState.from_dict(doc)
        if not self.tracks_presence:
            return state
        now = self.clock()
        _live, expired = self.presence.live_view(state.player_list(), now)
        if expired:
            outcome = self._mutate(code, self._prune_expired)
            if outcome.error is ErrorKind.NOT_FOUND:
                return None
            if outcome.ok and outcome.applied:
                if outcome.state is None:
                    return None
                state = outcome.state
            else:
                self.presence.prune(state, now)
        self.presence.live_view(state.player_list(), now)
        return state

    def _prune_expired(self, state, now) -> Outcome:
        pruned = self.presence.prune(state, now)
        return Outcome.success(state=state, value=pruned, applied=bool(pruned))

    def start(self, code, player_id) -> Outcome:
        outcome = self._mutate(
            code, lambda state, now: lifecycle.start(state, player_id, now, self.countdown_ms)
        )
        if outcome.ok:
            self._schedule_countdown(normalize_room_code(code), self.countdown_ms / 1000.0)
        return outcome

    def _schedule_countdown(self, code, delay) -> None:
        self.scheduler.call_later((code, 'countdown'), delay, lambda: self._finish_countdown(code))

    def _finish_countdown(self, code) -> Outcome:
        def _advance(state, now):
            outcome = lifecycle.finish_countdown(state, now)
            if outcome.ok:
                progress.check_empty_deck(state, now)
            return outcome

        outcome = self._mutate(code, _advance)
        if outcome.error is ErrorKind.CONFLICT:
            logger.warning(f"[countdown-retry] room={code} in {self.retry_delay}s")
            self._schedule_countdown(code, self.retry_delay)
        return outcome

    def act(self, code, player_id, action) -> Outcome:
        return self._mutate(
            code, lambda state, now: progress.advance(state, player_id, action, now)
        )

    def leave(self, code, player_id) -> Outcome:
        code = normalize_room_code(code)
        self._stop_heartbeat(code, player_id)

        def _remove(state, now):
            if state.players.pop(str(player_id), None) is None:
                return Outcome.success(state=state, applied=False)
            state.touch(now)
            return Outcome.success(state=state)

        outcome = self._mutate(code, _remove)
        if outcome.error is ErrorKind.NOT_FOUND:
            return Outcome.success(applied=False)
        if outcome.ok and outcome.applied:
            logger.info(f"[player-left] room={code} player={player_id}")
        return outcome

    def subscribe(self, code, on_change: Callable) -> Callable[[], None]:
        """Call ``on_change(state)`` after each change to the room; None once it is removed."""
        code = normalize_room_code(code)
        with self._listener_guard:
            self._listeners[code].append(on_change)

        def _unsubscribe():
            with self._listener_guard:
                callbacks = self._listeners.get(code, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)
                if not callbacks:
                    self._listeners.pop(code, None)
        return _unsubscribe

    # ---- presence ----

    def heartbeat(self, code, player_id) -> Outcome:
        def _touch(state, now):
            if not self.presence.touch(state, player_id, now):
                return Outcome.failure(ErrorKind.NOT_FOUND, state=state)
            return Outcome.success(state=state)
        return self._mutate(code, _touch)

    def _heartbeat_key(self, code, player_id):
        return (normalize_room_code(code), 'heartbeat', str(player_id))

    def connect(self, code, player_id) -> Outcome:
        """Start emitting heartbeats for a participant until `disconnect`."""
        code = normalize_room_code(code)
        outcome = self.heartbeat(code, player_id)
        if outcome.ok:
            self.scheduler.call_every(
                self._heartbeat_key(code, player_id), self.heartbeat_interval,
                lambda: self._beat(code, player_id),
            )
        return outcome

    def _beat(self, code, player_id) -> None:
        outcome = self.heartbeat(code, player_id)
        if outcome.error is ErrorKind.NOT_FOUND:
            self._stop_heartbeat(code, player_id)
        elif not outcome.ok:
            logger.warning(f"[heartbeat-retry] room={code} player={player_id} error={outcome.error.code}")

    def _stop_heartbeat(self, code, player_id) -> bool:
        return self.scheduler.cancel(self._heartbeat_key(code, player_id))

    def disconnect(self, code, player_id) -> Outcome:
        self._stop_heartbeat(code, player_id)
        return Outcome.success(applied=False)

    # ---- room lifetime ----

    def deck(self, code) -> Optional[List[str]]:
        state = self.read(code)
        return state.deck if state else None

    def destroy(self, code) -> bool:
        code = normalize_room_code(code)
        existed = []

        def _step(current):
            if current is None:
                return KEEP
            existed.append(True)
            return None

        with self._room_lock(code):
            self._apply(code, _step)
            if existed:
                self._on_removed(code)
        if existed:
            self._committed(code, None)
        return bool(existed)

    def sweep_expired(self, now: float = None) -> List[str]:
        """Destroy rooms idle for longer than the TTL; returns their codes."""
        now = self.clock() if now is None else now
        expired = []
        for code in self._room_codes():
            doc = self._load(code)
            if doc is None:
                continue
            last_activity = float(doc['room'].get('last_activity') or 0.0)
            if now - last_activity > self.room_ttl and self.destroy(code):
                logger.info(f"[room-expired] room={code} idle={int(now - last_activity)}s")
                expired.append(code)
        return expired

    def start_janitor(self, interval: float) -> bool:
        if not interval or interval <= 0:
            return False

        def _sweep():
            try:
                self.sweep_expired()
            except StoreError:
                logger.warning("[janitor-retry] sweep failed", exc_info=True)

        return self.scheduler.call_every(JANITOR_KEY, interval, _sweep)

    def snapshot(self, code) -> Optional[dict]:
        state = self.read(code)
        return state.snapshot(self.poll_interval_ms) if state else None
