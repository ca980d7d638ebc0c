"""Room aggregate: the unit the synchronizer reads, mutates and broadcasts."""

import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .deck import CARD_MULTIPLICITY, deck_length, generate_deck, progress_percent

# Uppercase letters and digits minus I, O, 0 and 1.
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 6


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    """Generate a short, shareable room code. Uniqueness is checked by the caller."""
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def normalize_room_code(code) -> str:
    return (code or '').strip().upper()


def generate_player_id() -> str:
    return uuid.uuid4().hex[:12]


def generate_seed() -> int:
    return int(time.time() * 1000)


def document_version(doc) -> Tuple[float, int]:
    """Ordering key of a stored room document: later writes compare greater."""
    if doc is None:
        return (0.0, 0)
    return (float(doc.get('updated_at') or 0.0), int(doc.get('revision') or 0))


@dataclass
class Player:
    id: str
    name: str
    is_host: bool = False
    current_card_index: int = 0
    cards_completed: int = 0
    last_seen: float = 0.0
    connected: bool = True

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'is_host': self.is_host,
            'current_card_index': self.current_card_index,
            'cards_completed': self.cards_completed,
            'last_seen': self.last_seen,
            'connected': self.connected,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data['id'],
            name=data['name'],
            is_host=bool(data.get('is_host', False)),
            current_card_index=int(data.get('current_card_index') or 0),
            cards_completed=int(data.get('cards_completed') or 0),
            last_seen=float(data.get('last_seen') or 0.0),
            connected=bool(data.get('connected', True)),
        )


@dataclass
class Room:
    code: str
    host_id: str
    host_name: str
    seed: int
    status: str = 'waiting'
    deck_multiplicity: int = CARD_MULTIPLICITY
    created_at: float = 0.0
    last_activity: float = 0.0
    winner_id: Optional[str] = None
    winner_name: Optional[str] = None
    countdown_end: Optional[float] = None

    def to_dict(self):
        return {
            'code': self.code,
            'host_id': self.host_id,
            'host_name': self.host_name,
            'seed': self.seed,
            'status': self.status,
            'deck_multiplicity': self.deck_multiplicity,
            'created_at': self.created_at,
            'last_activity': self.last_activity,
            'winner_id': self.winner_id,
            'winner_name': self.winner_name,
            'countdown_end': self.countdown_end,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            code=data['code'],
            host_id=data['host_id'],
            host_name=data.get('host_name') or '',
            seed=int(data['seed']),
            status=data.get('status') or 'waiting',
            deck_multiplicity=int(data.get('deck_multiplicity', CARD_MULTIPLICITY)),
            created_at=float(data.get('created_at') or 0.0),
            last_activity=float(data.get('last_activity') or 0.0),
            winner_id=data.get('winner_id'),
            winner_name=data.get('winner_name'),
            countdown_end=data.get('countdown_end'),
        )


@dataclass
class GameState:
    """Room plus its players, keyed by player id in join order.

    `revision` counts committed writes; with `updated_at` it orders two
    copies of the same room (see `document_version`).
    """
    room: Room
    players: Dict[str, Player] = field(default_factory=dict)
    updated_at: float = 0.0
    revision: int = 0

    @property
    def code(self) -> str:
        return self.room.code

    @property
    def deck(self) -> List[str]:
        return generate_deck(self.room.seed, multiplicity=self.room.deck_multiplicity)

    @property
    def deck_length(self) -> int:
        return deck_length(multiplicity=self.room.deck_multiplicity)

    def player(self, player_id) -> Optional[Player]:
        if player_id is None:
            return None
        return self.players.get(str(player_id))

    def player_list(self) -> List[Player]:
        return list(self.players.values())

    def touch(self, now: float) -> None:
        self.room.last_activity = now

    def to_dict(self):
        return {
            'room': self.room.to_dict(),
            'players': [p.to_dict() for p in self.players.values()],
            'updated_at': self.updated_at,
            'revision': self.revision,
        }

    @classmethod
    def from_dict(cls, data):
        players = {}
        for pd in data.get('players') or []:
            p = Player.from_dict(pd)
            players[p.id] = p
        return cls(
            room=Room.from_dict(data['room']),
            players=players,
            updated_at=float(data.get('updated_at') or 0.0),
            revision=int(data.get('revision') or 0),
        )

    def snapshot(self, poll_interval_ms: Optional[int] = None):
        """Client-facing payload: the stored aggregate plus derived deck progress."""
        threshold = self.deck_length
        payload = self.to_dict()
        payload['deck_length'] = threshold
        for pd in payload['players']:
            pd['progress'] = progress_percent(pd['cards_completed'], threshold)
        if poll_interval_ms is not None:
            payload['poll_interval_ms'] = poll_interval_ms
        return payload
