"""Room lifecycle: waiting -> countdown -> playing -> finished.

Transitions only move forward one step. A finished room is never
recycled; a rematch creates a fresh room.
"""

import logging

from .errors import ErrorKind, Outcome

logger = logging.getLogger(__name__)

WAITING = 'waiting'
COUNTDOWN = 'countdown'
PLAYING = 'playing'
FINISHED = 'finished'

STATUSES = (WAITING, COUNTDOWN, PLAYING, FINISHED)

_NEXT = {
    WAITING: COUNTDOWN,
    COUNTDOWN: PLAYING,
    PLAYING: FINISHED,
}


def can_transition(current: str, target: str) -> bool:
    return _NEXT.get(current) == target


def transition(state, target: str, now: float) -> Outcome:
    """Move `state.room` to `target` if that is the next phase.

    An invalid transition leaves the room untouched and reports
    INVALID_STATE; it is never raised.
    """
    current = state.room.status
    if not can_transition(current, target):
        logger.info(f"[transition-reject] room={state.code} {current} -> {target}")
        return Outcome.failure(ErrorKind.INVALID_STATE, state=state)
    state.room.status = target
    state.touch(now)
    logger.info(f"[transition] room={state.code} {current} -> {target}")
    return Outcome.success(state=state)


def start(state, player_id, now: float, countdown_ms: int) -> Outcome:
    """Host-only waiting -> countdown. Records the countdown deadline."""
    player = state.player(player_id)
    if player is None or not player.is_host:
        return Outcome.failure(ErrorKind.UNAUTHORIZED, state=state)
    result = transition(state, COUNTDOWN, now)
    if result.ok:
        state.room.countdown_end = now + countdown_ms / 1000.0
    return result


def finish_countdown(state, now: float) -> Outcome:
    result = transition(state, PLAYING, now)
    if result.ok:
        state.room.countdown_end = None
    return result


def finish(state, winner, now: float) -> Outcome:
    """playing -> finished with `winner` recorded. A second call is a no-op failure."""
    result = transition(state, FINISHED, now)
    if result.ok:
        state.room.winner_id = winner.id
        state.room.winner_name = winner.name
    return result


def accepts_players(state) -> bool:
    return state.room.status == WAITING
