"""Time-driven room tasks: countdown advance, heartbeats, TTL sweeps.

Tasks are keyed by tuples whose first element is the room code, so all
of a room's timers can be cancelled when the room is destroyed. Only one
task may exist per key at a time.
"""

import logging
import threading
import time
from typing import Callable, Dict, Hashable

logger = logging.getLogger(__name__)


class Scheduler:

    def call_later(self, key: Hashable, delay: float, fn: Callable[[], None]) -> bool:
        raise NotImplementedError

    def call_every(self, key: Hashable, interval: float, fn: Callable[[], None]) -> bool:
        raise NotImplementedError

    def cancel(self, key: Hashable) -> bool:
        raise NotImplementedError

    def scheduled(self, key: Hashable) -> bool:
        raise NotImplementedError

    def keys(self):
        raise NotImplementedError

    def cancel_room(self, code: str) -> int:
        """Cancel every task keyed under room `code`; returns how many were cancelled."""
        count = 0
        for key in list(self.keys()):
            if isinstance(key, tuple) and key and key[0] == code:
                count += int(self.cancel(key))
        return count

    def shutdown(self) -> None:
        for key in list(self.keys()):
            self.cancel(key)


class BackgroundScheduler(Scheduler):
    """Runs tasks as Socket.IO background tasks (threads, eventlet or gevent).

    Sleeps in short steps so a cancelled task stops within one `tick`.
    """

    def __init__(self, socketio, tick: float = 0.2):
        self.socketio = socketio
        self.tick = tick
        self._tokens: Dict[Hashable, threading.Event] = {}
        self._guard = threading.Lock()

    def _register(self, key) -> threading.Event:
        with self._guard:
            if key in self._tokens:
                return None
            token = threading.Event()
            self._tokens[key] = token
            return token

    def _release(self, key, token) -> None:
        with self._guard:
            if self._tokens.get(key) is token:
                self._tokens.pop(key, None)

    def _sleep(self, token, delay) -> bool:
        """Sleep up to `delay`; False if the task was cancelled meanwhile."""
        deadline = time.monotonic() + delay
        while not token.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return True
            self.socketio.sleep(min(self.tick, remaining))
        return False

    def _run(self, key, fn) -> None:
        try:
            fn()
        except Exception:
            logger.warning(f"[timer-error] key={key}", exc_info=True)

    def call_later(self, key, delay, fn):
        token = self._register(key)
        if token is None:
            logger.info(f"[timer-skip] key={key} already scheduled")
            return False
        logger.info(f"[timer-set] key={key} delay={delay}s")

        def _worker():
            try:
                if not self._sleep(token, delay):
                    logger.info(f"[timer-abort] key={key} cancelled")
                    return
            finally:
                self._release(key, token)
            logger.info(f"[timer-fire] key={key}")
            self._run(key, fn)

        self.socketio.start_background_task(_worker)
        return True

    def call_every(self, key, interval, fn):
        token = self._register(key)
        if token is None:
            return False
        logger.info(f"[timer-set] key={key} every={interval}s")

        def _worker():
            try:
                while self._sleep(token, interval):
                    self._run(key, fn)
            finally:
                self._release(key, token)

        self.socketio.start_background_task(_worker)
        return True

    def cancel(self, key):
        with self._guard:
            token = self._tokens.pop(key, None)
        if token is None:
            return False
        token.set()
        return True

    def scheduled(self, key):
        with self._guard:
            return key in self._tokens

    def keys(self):
        with self._guard:
            return list(self._tokens.keys())
