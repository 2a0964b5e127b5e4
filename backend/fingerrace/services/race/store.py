"""Room store: one versioned document per room, backed by the `room` table.

All shared state changes go through `transact`, an optimistic
compare-and-swap on the row's `version` column. Every committed snapshot is
pushed to the room's subscribers (and to store-wide watchers such as the
Socket.IO broadcaster) in version order.
"""

import json
import threading
import time
from typing import Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError

from fingerrace import db
from fingerrace.models import RoomRecord
from .errors import ConflictExhausted, RaceError, RoomAlreadyExists, RoomNotFound, StoreUnavailable
from .room import Room, normalize_code

OnChange = Callable[[str, Optional[Room]], None]


class Subscription:
    """A subscriber callback plus the last version it has seen per room.

    Older snapshots are dropped, so a subscriber may miss intermediate
    states but never sees them out of order.
    """

    def __init__(self, store: 'RoomStore', code: Optional[str], callback: OnChange):
        self.store = store
        self.code = code
        self.callback = callback
        self.active = True
        self._seen: Dict[str, int] = {}
        self._lock = threading.RLock()

    def deliver(self, code: str, room: Optional[Room]) -> None:
        with self._lock:
            if not self.active:
                return
            if room is not None:
                if room.version <= self._seen.get(code, 0):
                    return
                self._seen[code] = room.version
            else:
                self._seen.pop(code, None)
            self.callback(code, room)

    def cancel(self) -> None:
        self.active = False
        self.store._discard(self)

    __call__ = cancel


class RoomStore:
    def __init__(self, app=None):
        self._lock = threading.RLock()
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._watchers: List[Subscription] = []
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        with self._lock:
            self._subscriptions = {}
            self._watchers = []
        app.extensions['room_store'] = self

    # ---- reads and writes ----

    def get(self, code) -> Optional[Room]:
        code = normalize_code(code)
        try:
            record = self._load(code)
            room = record.to_room() if record else None
            db.session.rollback()
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[store-unavailable] op=get room={code} error={exc}")
            raise StoreUnavailable() from exc
        return room

    def create(self, code, room: Room) -> Room:
        code = normalize_code(code)
        room.code = code
        db.session.add(RoomRecord.from_room(room))
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise RoomAlreadyExists() from exc
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[store-unavailable] op=create room={code} error={exc}")
            raise StoreUnavailable() from exc
        room.version = 1
        current_app.logger.info(f"[room-create] room={code} host={room.host_id}")
        self._fanout(code, room.copy())
        return room

    def transact(self, code, mutate: Callable[[Room], Optional[Room]]) -> Room:
        """Read-modify-write the room with automatic retry on write conflicts.

        `mutate` receives a private copy of the current room and returns the
        room to commit, or None to abort without writing (the current
        snapshot is then returned). It may be called several times.
        """
        code = normalize_code(code)
        attempts = max(1, int(current_app.config.get('MAX_TRANSACTION_ATTEMPTS', 5)))
        backoff = int(current_app.config.get('TRANSACTION_BACKOFF_MS', 25)) / 1000.0
        unavailable = None
        for attempt in range(1, attempts + 1):
            try:
                record = self._load(code)
                if record is None:
                    raise RoomNotFound(code)
                current = record.to_room()
                proposed = mutate(current.copy())
                if proposed is None:
                    db.session.rollback()
                    return current
                committed = self._compare_and_swap(code, current.version, proposed)
                unavailable = None
            except RaceError:
                db.session.rollback()
                raise
            except OperationalError as exc:
                db.session.rollback()
                unavailable = exc
                committed = None
                current_app.logger.warning(f"[store-unavailable] op=transact room={code} attempt={attempt} error={exc}")
            if committed is not None:
                self._fanout(code, committed.copy())
                return committed
            if unavailable is None:
                current_app.logger.info(f"[tx-conflict] room={code} attempt={attempt}/{attempts}")
            if backoff and attempt < attempts:
                time.sleep(backoff * attempt)
        if unavailable is not None:
            raise StoreUnavailable() from unavailable
        current_app.logger.warning(f"[tx-exhausted] room={code} attempts={attempts}")
        raise ConflictExhausted()

    def delete(self, code) -> None:
        code = normalize_code(code)
        try:
            RoomRecord.query.filter_by(code=code).delete(synchronize_session=False)
            db.session.commit()
        except OperationalError as exc:
            db.session.rollback()
            current_app.logger.warning(f"[store-unavailable] op=delete room={code} error={exc}")
            raise StoreUnavailable() from exc
        current_app.logger.info(f"[room-delete] room={code}")
        self._fanout(code, None)
        with self._lock:
            subs = self._subscriptions.pop(code, [])
        for sub in subs:
            sub.active = False

    def purge(self, older_than: float) -> int:
        """Delete every room created before the given epoch timestamp."""
        codes = [r.code for r in RoomRecord.query.filter(RoomRecord.created_at < older_than).all()]
        db.session.rollback()
        for code in codes:
            self.delete(code)
        return len(codes)

    # ---- change notification ----

    def subscribe(self, code, on_change: OnChange) -> Subscription:
        """Push every committed snapshot of one room (None once deleted).

        Returns the subscription; calling it unsubscribes.
        """
        code = normalize_code(code)
        sub = Subscription(self, code, on_change)
        with self._lock:
            self._subscriptions.setdefault(code, []).append(sub)
        return sub

    def watch(self, on_change: OnChange) -> Subscription:
        """Push committed snapshots of every room."""
        sub = Subscription(self, None, on_change)
        with self._lock:
            self._watchers.append(sub)
        return sub

    def subscriber_count(self, code) -> int:
        with self._lock:
            return len(self._subscriptions.get(normalize_code(code), []))

    # ---- internals ----

    def _load(self, code: str) -> Optional[RoomRecord]:
        return RoomRecord.query.populate_existing().filter_by(code=code).first()

    def _compare_and_swap(self, code: str, expected: int, proposed: Room) -> Optional[Room]:
        # `expected` is the version read at the start of this attempt
        proposed.code = code
        updated = RoomRecord.query.filter_by(code=code, version=expected).update({
            'document': json.dumps(proposed.to_document()),
            'status': proposed.status,
            'version': expected + 1,
            'updated_at': time.time(),
        }, synchronize_session=False)
        if updated != 1:
            db.session.rollback()
            return None
        db.session.commit()
        proposed.version = expected + 1
        return proposed

    def _fanout(self, code: str, room: Optional[Room]) -> None:
        with self._lock:
            targets = list(self._subscriptions.get(code, [])) + list(self._watchers)
        for sub in targets:
            try:
                sub.deliver(code, room)
            except Exception:
                current_app.logger.exception(f"[fanout-error] room={code}")

    def _discard(self, sub: Subscription) -> None:
        with self._lock:
            if sub.code is None:
                if sub in self._watchers:
                    self._watchers.remove(sub)
                return
            subs = self._subscriptions.get(sub.code)
            if subs and sub in subs:
                subs.remove(sub)
                if not subs:
                    self._subscriptions.pop(sub.code, None)


room_store = RoomStore()
