"""Tap resolution: the per-tap transition applied inside a room transaction."""

from flask import current_app

from .errors import RoomNotFound
from .room import FINISHED, RACING, STOP, Room

# Points lost for tapping on a stop signal
TAP_PENALTY = 3

IGNORED = 'ignored'
RECOVERED = 'recovered'
PENALIZED = 'penalized'
ADVANCED = 'advanced'
WON = 'won'


def resolve_tap(room: Room, identity: str, penalty: int = TAP_PENALTY, late: bool = False) -> str:
    """Apply one tap by `identity` to `room` in place and return the outcome.

    `late` marks a retried tap whose first attempt saw the race still
    running: if another player won in between, the tap still lands as a
    plain move but can no longer win.
    """
    player = room.players.get(identity)
    if player is None:
        return IGNORED
    if room.status != RACING and not (late and room.status == FINISHED):
        return IGNORED

    if player.stunned:
        player.stunned = False
        return RECOVERED

    if room.signal == STOP:
        player.score = max(0, player.score - penalty)
        player.stunned = True
        return PENALIZED

    player.score += 1
    if player.score >= room.target_score:
        player.score = room.target_score
        if room.status == RACING and not room.winner_name:
            room.status = FINISHED
            room.winner_name = player.name
            return WON
    return ADVANCED


def submit_tap(store, identity: str, code) -> str:
    """Resolve a tap transactionally. Stale or unknown rooms resolve to `ignored`."""
    outcome = {'value': IGNORED, 'saw_racing': False}

    def _apply(room: Room):
        late = outcome['saw_racing']
        outcome['saw_racing'] = late or room.status == RACING
        outcome['value'] = resolve_tap(room, identity, late=late)
        return None if outcome['value'] == IGNORED else room

    try:
        room = store.transact(code, _apply)
    except RoomNotFound:
        return IGNORED
    if outcome['value'] == WON:
        current_app.logger.info(f"[race-won] room={room.code} winner={identity} name={room.winner_name}")
    return outcome['value']

