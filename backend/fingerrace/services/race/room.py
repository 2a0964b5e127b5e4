"""Room document: the shared state of one race, as stored and broadcast."""

import copy
import random
import string
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

WAITING = 'waiting'
RACING = 'racing'
FINISHED = 'finished'
CLOSED = 'closed'

GO = 'go'
STOP = 'stop'
SIGNALS = (GO, STOP)

CODE_LENGTH = 4
CODE_ALPHABET = string.ascii_uppercase + string.digits

AVATARS = ["🚗", "🏍️", "🏃", "🐎", "🚀", "🛹", "🦖", "🐕"]
COLORS = [
    "bg-red-500", "bg-blue-500", "bg-green-500", "bg-yellow-500",
    "bg-purple-500", "bg-pink-500", "bg-orange-500", "bg-teal-500",
]


def normalize_code(code) -> str:
    return (code or '').strip().upper()


def generate_room_code(length: int = CODE_LENGTH, rng=random) -> str:
    """Generate a short room code. Uniqueness is enforced by the store."""
    return ''.join(rng.choices(CODE_ALPHABET, k=length))


def pick_look(avatar_choice) -> tuple:
    """Map an avatar index from the picker to its (avatar, color) pair."""
    try:
        idx = int(avatar_choice or 0)
    except (TypeError, ValueError):
        idx = 0
    return AVATARS[idx % len(AVATARS)], COLORS[idx % len(COLORS)]


@dataclass
class Player:
    name: str
    score: int = 0
    stunned: bool = False
    avatar: str = AVATARS[0]
    color: str = COLORS[0]
    is_host: bool = False

    def to_dict(self):
        return {
            'name': self.name,
            'score': self.score,
            'stunned': self.stunned,
            'avatar': self.avatar,
            'color': self.color,
            'is_host': self.is_host,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            name=data.get('name', ''),
            score=int(data.get('score') or 0),
            stunned=bool(data.get('stunned')),
            avatar=data.get('avatar') or AVATARS[0],
            color=data.get('color') or COLORS[0],
            is_host=bool(data.get('is_host')),
        )


@dataclass
class Room:
    code: str
    host_id: str
    target_score: int
    status: str = WAITING
    signal: str = GO
    winner_name: Optional[str] = None
    players: Dict[str, Player] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    version: int = 0

    @classmethod
    def new(cls, code: str, host_id: str, host: Player, target_score: int) -> 'Room':
        host.is_host = True
        return cls(code=normalize_code(code), host_id=host_id, target_score=target_score,
                   players={host_id: host})

    def copy(self) -> 'Room':
        return copy.deepcopy(self)

    def is_member(self, identity: str) -> bool:
        return identity in self.players

    def assign_host(self, identity: str) -> None:
        """Move the host role, keeping every `is_host` mirror consistent."""
        self.host_id = identity
        for pid, player in self.players.items():
            player.is_host = pid == identity

    def to_document(self):
        """Serializable body stored in the room row (version lives beside it)."""
        return {
            'code': self.code,
            'host_id': self.host_id,
            'status': self.status,
            'signal': self.signal,
            'target_score': self.target_score,
            'winner_name': self.winner_name,
            'players': {pid: p.to_dict() for pid, p in self.players.items()},
            'created_at': self.created_at,
        }

    def to_dict(self):
        data = self.to_document()
        data['version'] = self.version
        return data

    @classmethod
    def from_document(cls, data, version: int = 0) -> 'Room':
        return cls(
            code=data['code'],
            host_id=data.get('host_id') or '',
            target_score=int(data.get('target_score') or 0),
            status=data.get('status') or WAITING,
            signal=data.get('signal') or GO,
            winner_name=data.get('winner_name'),
            players={pid: Player.from_dict(p) for pid, p in (data.get('players') or {}).items()},
            created_at=float(data.get('created_at') or 0.0),
            version=version,
        )
