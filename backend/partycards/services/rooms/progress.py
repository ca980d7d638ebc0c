"""Per-player progress through the shared deck and winner resolution.

A player's cursor only ever moves by one card per action. Both actions
advance the cursor; only a match counts as a completed card. The first
player whose cursor reaches the end of the deck finishes the room.
"""

import logging

from . import lifecycle
from .errors import ErrorKind, Outcome

logger = logging.getLogger(__name__)

MATCH = 'match'
SKIP = 'skip'

ACTION_ALIASES = {
    'match': MATCH,
    'swipe_right': MATCH,
    'skip': SKIP,
    'no_match': SKIP,
    'swipe_left': SKIP,
}


def normalize_action(action):
    return ACTION_ALIASES.get((action or '').strip().lower())


def is_complete(player, threshold: int) -> bool:
    return player.current_card_index >= threshold


def advance(state, player_id, action, now: float) -> Outcome:
    """Apply one action for `player_id`.

    Outside `playing` this is a successful no-op that returns the state
    unchanged (``applied=False``), so a late action after the winner is
    decided never produces a second winner.
    """
    player = state.player(player_id)
    if player is None:
        return Outcome.failure(ErrorKind.NOT_FOUND, state=state)
    kind = normalize_action(action)
    if kind is None:
        return Outcome.failure(ErrorKind.INVALID_INPUT, state=state)
    if state.room.status != lifecycle.PLAYING:
        return Outcome.success(state=state, value=player.current_card_index, applied=False)

    threshold = state.deck_length
    if is_complete(player, threshold):
        return Outcome.success(state=state, value=player.current_card_index, applied=False)

    player.current_card_index += 1
    if kind == MATCH:
        player.cards_completed = min(threshold, player.cards_completed + 1)
    player.last_seen = now
    player.connected = True
    state.touch(now)

    if is_complete(player, threshold):
        finished = lifecycle.finish(state, player, now)
        if finished.ok:
            logger.info(f"[winner] room={state.code} player={player.id} name={player.name}")
    return Outcome.success(state=state, value=player.current_card_index)


def check_empty_deck(state, now: float) -> Outcome:
    """With an empty deck the first player is complete the moment play begins."""
    if state.room.status != lifecycle.PLAYING or state.deck_length > 0:
        return Outcome.success(state=state, applied=False)
    players = state.player_list()
    if not players:
        return Outcome.success(state=state, applied=False)
    return lifecycle.finish(state, players[0], now)
