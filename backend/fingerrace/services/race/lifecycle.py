"""Room lifecycle: create, join, leave, start and reset.

Every operation is a single store transaction so concurrent joins, leaves
and host changes cannot corrupt membership or the host mirror.
"""

import random
from typing import Optional

from flask import current_app

from .errors import GameNotStartable, NameRequired, NotHost, RoomAlreadyExists, RoomNotJoinable
from .room import CLOSED, GO, RACING, WAITING, Player, Room, generate_room_code, normalize_code, pick_look

# Attempts at finding a free room code before giving up
CODE_ATTEMPTS = 20


def clean_name(name, max_length: Optional[int] = None) -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise NameRequired()
    if max_length is None:
        max_length = int(current_app.config.get('NAME_MAX_LENGTH', 15))
    return cleaned[:max_length]


class RoomLifecycleManager:
    def __init__(self, store, rng=None):
        self.store = store
        self.rng = rng

    def create_room(self, identity: str, name, avatar_choice=0) -> Room:
        display = clean_name(name)
        avatar, color = pick_look(avatar_choice)
        target = int(current_app.config.get('TARGET_SCORE', 30))
        last_exc = None
        for _ in range(CODE_ATTEMPTS):
            code = generate_room_code(rng=self.rng or random)
            host = Player(name=display, avatar=avatar, color=color)
            room = Room.new(code, identity, host, target)
            try:
                return self.store.create(code, room)
            except RoomAlreadyExists as exc:
                last_exc = exc
                current_app.logger.info(f"[room-code-taken] code={code}")
        raise last_exc

    def join_room(self, identity: str, code, name, avatar_choice=0) -> Room:
        display = clean_name(name)
        avatar, color = pick_look(avatar_choice)

        def _join(room: Room):
            if room.is_member(identity):
                # Retry after a lost acknowledgement
                return None
            if room.status != WAITING:
                raise RoomNotJoinable()
            room.players[identity] = Player(name=display, avatar=avatar, color=color, is_host=False)
            return room

        room = self.store.transact(normalize_code(code), _join)
        current_app.logger.info(f"[room-join] room={room.code} player={identity} players={len(room.players)}")
        return room

    def leave_room(self, identity: str, code) -> Optional[Room]:
        """Remove `identity` from the room; returns None once the room is gone."""
        code = normalize_code(code)
        handoff = {}

        def _leave(room: Room):
            handoff.clear()
            if not room.is_member(identity):
                return None
            del room.players[identity]
            if not room.players:
                room.status = CLOSED
                return room
            if room.host_id == identity:
                # Deterministic successor: lowest remaining identity
                room.assign_host(min(room.players))
                handoff['to'] = room.host_id
            return room

        room = self.store.transact(code, _leave)
        if room.status == CLOSED:
            current_app.logger.info(f"[room-close] room={code} last_player={identity}")
            self.store.delete(code)
            return None
        if 'to' in handoff:
            current_app.logger.info(f"[host-transfer] room={code} from={identity} to={handoff['to']}")
        current_app.logger.info(f"[room-leave] room={code} player={identity} players={len(room.players)}")
        return room

    def start_game(self, identity: str, code) -> Room:
        def _start(room: Room):
            if room.host_id != identity:
                raise NotHost()
            if room.status == RACING:
                return None
            if room.status != WAITING:
                raise GameNotStartable()
            room.status = RACING
            room.signal = GO
            return room

        room = self.store.transact(normalize_code(code), _start)
        current_app.logger.info(f"[race-start] room={room.code} host={identity} players={len(room.players)}")
        return room

    def reset_game(self, identity: str, code) -> Room:
        def _reset(room: Room):
            if room.host_id != identity:
                raise NotHost()
            already_reset = (
                room.status == WAITING and room.signal == GO and not room.winner_name
                and all(p.score == 0 and not p.stunned for p in room.players.values())
            )
            if already_reset:
                return None
            for player in room.players.values():
                player.score = 0
                player.stunned = False
            room.status = WAITING
            room.signal = GO
            room.winner_name = None
            return room

        room = self.store.transact(normalize_code(code), _reset)
        current_app.logger.info(f"[race-reset] room={room.code} host={identity}")
        return room

