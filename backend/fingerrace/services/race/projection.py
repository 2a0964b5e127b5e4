from typing import Optional

from .room import CLOSED, FINISHED, RACING, WAITING, Room

MENU = 'menu'
LOBBY = 'lobby'
RACE = 'racing'
PODIUM = 'finished'

_SCREENS = {WAITING: LOBBY, RACING: RACE, FINISHED: PODIUM}


def screen_for(room: Optional[Room], identity: str) -> str:
    if room is None or room.status == CLOSED or not room.is_member(identity):
        return MENU
    return _SCREENS.get(room.status, MENU)


def project_room(room: Optional[Room], identity: str, error: Optional[str] = None) -> dict:
    """Read-only view of a room snapshot for one player.

    Clients render this as is; it never feeds back into the room.
    """
    screen = screen_for(room, identity)
    view = {'screen': screen, 'error': error}
    if screen == MENU:
        view.update({'code': None, 'is_host': False, 'me': None, 'leaderboard': []})
        return view

    target = room.target_score or 1
    ranked = sorted(room.players.items(), key=lambda item: (-item[1].score, item[1].name, item[0]))
    leaderboard = []
    for pid, player in ranked:
        entry = player.to_dict()
        entry['id'] = pid
        entry['is_me'] = pid == identity
        entry['progress'] = min(100.0, player.score * 100.0 / target)
        leaderboard.append(entry)

    me = room.players[identity].to_dict()
    me['id'] = identity
    view.update({
        'code': room.code,
        'version': room.version,
        'status': room.status,
        'signal': room.signal,
        'target_score': room.target_score,
        'winner_name': room.winner_name,
        'is_host': room.host_id == identity,
        'me': me,
        'leaderboard': leaderboard,
    })
    return view
