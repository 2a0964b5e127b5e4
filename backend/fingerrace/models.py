from fingerrace import db
from flask_login import UserMixin
import json
import time

from fingerrace.services.race.room import Room


class DeviceIdentity(UserMixin):
    """Anonymous per-device identity. Nothing is persisted; the id is the token."""

    def __init__(self, identity):
        self.id = identity


class RoomRecord(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(4), unique=True, nullable=False, index=True)
    # Denormalized from the document so maintenance queries can filter on it
    status = db.Column(db.String(16), nullable=False, default='waiting')
    version = db.Column(db.Integer, nullable=False, default=1)
    document = db.Column(db.Text, nullable=False)  # JSON-encoded room document
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    updated_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_room(self) -> Room:
        return Room.from_document(json.loads(self.document), version=self.version)

    @classmethod
    def from_room(cls, room: Room) -> 'RoomRecord':
        now = time.time()
        return cls(
            code=room.code,
            status=room.status,
            version=1,
            document=json.dumps(room.to_document()),
            created_at=room.created_at,
            updated_at=now,
        )
