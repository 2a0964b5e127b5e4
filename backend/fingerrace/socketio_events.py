from flask_socketio import join_room, leave_room, emit
from flask_login import current_user
from fingerrace import socketio
from fingerrace.services.race.room import normalize_code
from fingerrace.services.race.session import sessions
from fingerrace.services.race.store import room_store


def _room_channel(code: str) -> str:
    return f"room:{code}"


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    # Membership is not touched on disconnect; the player stays in the room
    # and resynchronizes when the socket comes back.
    pass


def handle_join_room(data):
    code = normalize_code((data or {}).get('code'))
    if not code:
        emit('error', {'message': 'code is required'})
        return
    join_room(_room_channel(code))
    emit('joined', {'room': _room_channel(code)})

    # Resume: push the latest snapshot straight away
    room = None
    if current_user.is_authenticated:
        session = sessions.find(current_user.get_id())
        if session is not None and session.code == code:
            room = session.resync()
    if room is None:
        room = room_store.get(code)
    emit('room_state', {'code': code, 'room': room.to_dict() if room else None})


def handle_leave_room(data):
    code = normalize_code((data or {}).get('code'))
    if not code:
        emit('error', {'message': 'code is required'})
        return
    leave_room(_room_channel(code))
    emit('left', {'room': _room_channel(code)})


def handle_ping(data):
    emit('pong', data or {})


def broadcast_room_state(code, room) -> None:
    """Store watcher: fan every committed snapshot out to the room's sockets."""
    # Use socketio.emit since this may be called from a background task
    socketio.emit(
        'room_state',
        {'code': code, 'room': room.to_dict() if room else None},
        to=_room_channel(code),
        namespace='/ws',
    )


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers and the store broadcaster.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    room_store.watch(broadcast_room_state)

    # Primary namespace
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('disconnect', handle_disconnect, namespace='/ws')
    socketio.on_event('join_room', handle_join_room, namespace='/ws')
    socketio.on_event('leave_room', handle_leave_room, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('disconnect', handle_disconnect, namespace='/')
        socketio.on_event('join_room', handle_join_room, namespace='/')
        socketio.on_event('leave_room', handle_leave_room, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
