"""Presence tracking from heartbeats.

Participants touch their `last_seen` on a short fixed interval. Readers
derive liveness from it with two thresholds: past `disconnected_after`
the player is shown as disconnected, past `remove_after` the player is
pruned from the room.
"""

import logging
import time
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)

DISCONNECTED_AFTER_SEC = 10
REMOVE_AFTER_SEC = 30
HEARTBEAT_INTERVAL_SEC = 5


class PresenceTracker:

    def __init__(self, clock: Callable[[], float] = time.time,
                 disconnected_after: float = DISCONNECTED_AFTER_SEC,
                 remove_after: float = REMOVE_AFTER_SEC):
        if remove_after < disconnected_after:
            raise ValueError('remove_after must not be shorter than disconnected_after')
        self.clock = clock
        self.disconnected_after = disconnected_after
        self.remove_after = remove_after

    def now(self) -> float:
        return self.clock()

    def touch(self, state, player_id, now: float = None) -> bool:
        """Record `now` as the player's last-seen time. False if the player is not in the room."""
        player = state.player(player_id)
        if player is None:
            return False
        player.last_seen = self.now() if now is None else now
        player.connected = True
        return True

    def is_expired(self, player, now: float) -> bool:
        return now - player.last_seen > self.remove_after

    def is_connected(self, player, now: float) -> bool:
        return now - player.last_seen < self.disconnected_after

    def live_view(self, players, now: float = None) -> Tuple[List, List]:
        """Split `players` into (live players annotated with `connected`, expired players)."""
        now = self.now() if now is None else now
        live, expired = [], []
        for p in players:
            if self.is_expired(p, now):
                expired.append(p)
                continue
            p.connected = p.connected and self.is_connected(p, now)
            live.append(p)
        return live, expired

    def prune(self, state, now: float = None) -> List[str]:
        """Drop expired players from `state` in place; returns their ids."""
        live, expired = self.live_view(state.player_list(), now)
        if not expired:
            return []
        state.players = {p.id: p for p in live}
        pruned = [p.id for p in expired]
        logger.info(f"[presence-prune] room={state.code} players={pruned}")
        return pruned
