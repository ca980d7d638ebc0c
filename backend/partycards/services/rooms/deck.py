"""Deterministic deck derivation.

Every participant rebuilds the room's deck from the shared seed instead of
receiving it over the wire. The shuffle therefore uses a self-contained
32-bit linear congruential generator (Numerical Recipes constants) whose
output depends only on the seed, never on `random` or system entropy.
"""

from typing import Callable, Iterable, List

CARD_TYPES = [
    {'id': 'high-five', 'name': 'High Five', 'emoji': '🙏',
     'description': 'Find someone else with a "High Five" card and give them a high five!'},
    {'id': 'dab-me', 'name': 'Dab Me', 'emoji': '💃',
     'description': 'Find someone with a "Dab Me" card and do a synchronized dab!'},
    {'id': 'swap-places', 'name': 'Swap Places', 'emoji': '🔄',
     'description': 'Find your match and physically swap places with them!'},
    {'id': 'kick-it', 'name': 'Kick It', 'emoji': '🦵',
     'description': 'Find your match and do a synchronized leg kick!'},
    {'id': 'awkward-turtle', 'name': 'Awkward Turtle', 'emoji': '🐢',
     'description': 'Find your match and make the awkward turtle gesture together!'},
]

CARD_MULTIPLICITY = 5

_LCG_A = 1664525
_LCG_C = 1013904223
_LCG_M = 2 ** 32


def seeded_random(seed: int) -> Callable[[], float]:
    """Return a generator of floats in [0, 1) fully determined by `seed`."""
    state = int(seed) % _LCG_M

    def _next() -> float:
        nonlocal state
        state = (_LCG_A * state + _LCG_C) % _LCG_M
        return state / _LCG_M

    return _next


def card_ids(catalogue: Iterable[dict] = None) -> List[str]:
    return [c['id'] for c in (CARD_TYPES if catalogue is None else catalogue)]


def generate_deck(seed: int, catalogue=None, multiplicity: int = CARD_MULTIPLICITY) -> List[str]:
    """Build the ordered deck of card ids for `seed`.

    `multiplicity` copies of each catalogue entry are laid out in catalogue
    order, then Fisher-Yates shuffled in place with `seeded_random(seed)`.
    """
    deck = []
    for card_id in card_ids(catalogue):
        deck.extend([card_id] * max(0, multiplicity))

    rng = seeded_random(seed)
    for i in range(len(deck) - 1, 0, -1):
        j = int(rng() * (i + 1))
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def deck_length(catalogue=None, multiplicity: int = CARD_MULTIPLICITY) -> int:
    return len(card_ids(catalogue)) * max(0, multiplicity)


def progress_percent(completed: int, threshold: int) -> float:
    # An empty deck is already complete.
    if threshold <= 0:
        return 100.0
    return min(100.0, (completed / threshold) * 100.0)


def card_type(card_id: str, catalogue=None):
    for c in (CARD_TYPES if catalogue is None else catalogue):
        if c['id'] == card_id:
            return c
    return None
