"""Typed failures surfaced by the race engine.

Each error carries the HTTP status the API layer renders it with, so routes
never have to map exceptions by hand.
"""


class RaceError(Exception):
    status_code = 400
    message = 'Race error'

    def __init__(self, message=None):
        super().__init__(message or self.message)
        self.message = message or self.message

    @property
    def name(self) -> str:
        return type(self).__name__

    def to_dict(self):
        return {'error': self.name, 'message': self.message}


class NameRequired(RaceError):
    status_code = 400
    message = 'A player name is required'


class RoomNotFound(RaceError):
    status_code = 404
    message = 'Room not found'

    def __init__(self, code=None):
        super().__init__(f'Room {code} not found' if code else None)
        self.code = code


class RoomNotJoinable(RaceError):
    status_code = 409
    message = 'This race has already started'


class GameNotStartable(RaceError):
    status_code = 409
    message = 'Reset the room before starting a new race'


class NotHost(RaceError):
    status_code = 403
    message = 'Only the host may do that'


class RoomAlreadyExists(RaceError):
    status_code = 409
    message = 'Room code already in use'


class ConflictExhausted(RaceError):
    status_code = 503
    message = 'Could not save the room, please retry'


class StoreUnavailable(RaceError):
    status_code = 503
    message = 'Connection to the room store was lost'
