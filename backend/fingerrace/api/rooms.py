from flask import Blueprint, jsonify, request
from fingerrace.identity import get_or_create_identity
from fingerrace.services.race.errors import RaceError, RoomNotFound
from fingerrace.services.race.projection import project_room
from fingerrace.services.race.room import normalize_code
from fingerrace.services.race.session import sessions
from fingerrace.services.race.store import room_store


rooms = Blueprint('rooms', __name__)


@rooms.errorhandler(RaceError)
def handle_race_error(exc):
    return jsonify(exc.to_dict()), exc.status_code


def _session():
    return sessions.get(get_or_create_identity())


@rooms.route('/create', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    session = _session()
    room = session.create_room(data.get('name'), data.get('avatar', 0))
    return jsonify({
        'code': room.code,
        'room': room.to_dict(),
        'view': session.view,
    }), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    session = _session()
    room = session.join_room(data.get('code'), data.get('name'), data.get('avatar', 0))
    return jsonify({'room': room.to_dict(), 'view': session.view})


@rooms.route('/<string:code>/leave', methods=['POST'])
def leave_room(code):
    session = _session()
    session.leave_room(code)
    return jsonify({'view': session.view})


@rooms.route('/<string:code>/start', methods=['POST'])
def start_game(code):
    session = _session()
    room = session.start_game(code)
    return jsonify({'room': room.to_dict(), 'view': session.view})


@rooms.route('/<string:code>/reset', methods=['POST'])
def reset_game(code):
    session = _session()
    room = session.reset_game(code)
    return jsonify({'room': room.to_dict(), 'view': session.view})


@rooms.route('/<string:code>/tap', methods=['POST'])
def tap(code):
    session = _session()
    outcome = session.submit_tap(code)
    return jsonify({'outcome': outcome, 'view': session.view})


@rooms.route('/<string:code>/state', methods=['GET'])
def get_room_state(code):
    identity = get_or_create_identity()
    code = normalize_code(code)
    room = room_store.get(code)
    if room is None:
        raise RoomNotFound(code)
    return jsonify({'room': room.to_dict(), 'view': project_room(room, identity)})
