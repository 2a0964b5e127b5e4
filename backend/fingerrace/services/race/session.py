"""Per-player sessions.

A `PlayerSession` is one client's side of the race: it runs that player's
operations, follows the room through a store subscription, keeps the
player's projected view, and owns the Signal Scheduler while the player is
host of a racing room. Scheduler handoff is decided here: on every snapshot
a session starts its loop if it is host of a racing room and has none, and
cancels any loop it owns otherwise.
"""

import threading
from typing import Dict, Optional

from flask import current_app

from .errors import RaceError, RoomNotFound
from .lifecycle import RoomLifecycleManager
from .projection import project_room
from .room import CLOSED, RACING, Room, normalize_code
from .scheduler import SignalScheduler
from .taps import submit_tap


class PlayerSession:
    def __init__(self, app, store, identity: str):
        self.app = app
        self.store = store
        self.identity = identity
        self.lifecycle = RoomLifecycleManager(store)
        self.code: Optional[str] = None
        self.room: Optional[Room] = None
        self.error: Optional[str] = None
        self.view = project_room(None, identity)
        self.scheduler: Optional[SignalScheduler] = None
        self.on_release = None
        self._subscription = None
        self._lock = threading.RLock()

    # ---- client operations ----

    def create_room(self, name, avatar_choice=0) -> Room:
        room = self._surface(lambda: self.lifecycle.create_room(self.identity, name, avatar_choice))
        self._enter(room)
        return room

    def join_room(self, code, name, avatar_choice=0) -> Room:
        room = self._surface(lambda: self.lifecycle.join_room(self.identity, code, name, avatar_choice))
        self._enter(room)
        return room

    def leave_room(self, code=None) -> None:
        code = normalize_code(code) or self.code
        if not code:
            return
        if self.scheduler is not None and self.scheduler.code == code:
            self._stop_scheduler()
        try:
            self._surface(lambda: self.lifecycle.leave_room(self.identity, code))
        except RoomNotFound:
            current_app.logger.info(f"[room-leave] room={code} player={self.identity} already gone")
        finally:
            if code == self.code:
                self._detach()
                with self._lock:
                    self.room = None
                    self.view = project_room(None, self.identity)
                self._release()

    def start_game(self, code=None) -> Room:
        code = normalize_code(code) or self.code
        room = self._surface(lambda: self.lifecycle.start_game(self.identity, code))
        self._apply(room)
        return room

    def reset_game(self, code=None) -> Room:
        code = normalize_code(code) or self.code
        room = self._surface(lambda: self.lifecycle.reset_game(self.identity, code))
        self._stop_scheduler()
        self._apply(room)
        return room

    def submit_tap(self, code=None) -> str:
        code = normalize_code(code) or self.code
        return self._surface(lambda: submit_tap(self.store, self.identity, code))

    def resync(self) -> Optional[Room]:
        """Re-read the room after a reconnect and rebuild the view from it."""
        if not self.code:
            return None
        code = self.code
        room = self._surface(lambda: self.store.get(code))
        if room is not None and self._subscription is None:
            self._attach(code)
        self._apply(room, force=True)
        return room

    # ---- snapshot handling ----

    def _on_change(self, code: str, room: Optional[Room]) -> None:
        if code != self.code:
            return
        self._apply(room)

    def _enter(self, room: Room) -> None:
        # A player is in one room at a time; leaving the previous one hands
        # its host role and signal loop to someone still there
        previous = self.code
        self._attach(room.code)
        try:
            if previous and previous != room.code:
                self.leave_room(previous)
        finally:
            self._apply(room)

    def _apply(self, room: Optional[Room], force: bool = False) -> None:
        with self._lock:
            if (
                room is not None and self.room is not None and not force
                and room.code == self.room.code and room.version < self.room.version
            ):
                return
            self.room = room
            gone = room is None or room.status == CLOSED or not room.is_member(self.identity)
            if gone:
                self._stop_scheduler()
                self._detach()
                self.room = None
                self.view = project_room(None, self.identity, self.error)
            else:
                self.error = None
                self.view = project_room(room, self.identity)
                self._reconcile_scheduler(room)
        if gone:
            self._release()

    def _reconcile_scheduler(self, room: Room) -> None:
        should_run = room.status == RACING and room.host_id == self.identity
        current = self.scheduler
        if not should_run:
            self._stop_scheduler()
            return
        if current is not None and current.active and current.code == room.code:
            return
        if current is not None:
            current.cancel()
        self.scheduler = SignalScheduler(self.app, self.store, room.code, self.identity).start()

    def _stop_scheduler(self) -> None:
        with self._lock:
            if self.scheduler is not None:
                self.scheduler.cancel()
                self.scheduler = None

    # ---- subscription plumbing ----

    def _attach(self, code: str) -> None:
        with self._lock:
            if self.code == code and self._subscription is not None:
                return
            self._detach()
            self.code = code
            self._subscription = self.store.subscribe(code, self._on_change)

    def _detach(self) -> None:
        with self._lock:
            if self._subscription is not None:
                self._subscription.cancel()
                self._subscription = None
            self.code = None

    def _release(self) -> None:
        if self.on_release is not None and self.code is None and self.scheduler is None:
            self.on_release(self)

    def _surface(self, operation):
        try:
            return operation()
        except RaceError as exc:
            with self._lock:
                self.error = exc.message
                self.view = project_room(self.room, self.identity, exc.message)
            self._release()
            raise


class SessionRegistry:
    """In-memory map of identity -> PlayerSession for one app.

    A session stays registered while its player is in a room and is dropped
    once the player has no room left.
    """

    def __init__(self, app=None, store=None):
        self._sessions: Dict[str, PlayerSession] = {}
        self._lock = threading.RLock()
        self.store = store
        if app is not None:
            self.init_app(app, store)

    def init_app(self, app, store=None) -> None:
        with self._lock:
            stale = list(self._sessions.values())
            self._sessions = {}
        for session in stale:
            session._stop_scheduler()
        if store is not None:
            self.store = store
        app.extensions['race_sessions'] = self

    def get(self, identity: str) -> PlayerSession:
        with self._lock:
            session = self._sessions.get(identity)
            if session is None:
                session = PlayerSession(current_app._get_current_object(), self.store, identity)
                session.on_release = self._on_release
                self._sessions[identity] = session
            return session

    def find(self, identity: str) -> Optional[PlayerSession]:
        with self._lock:
            return self._sessions.get(identity)

    def _on_release(self, session: PlayerSession) -> None:
        with self._lock:
            if self._sessions.get(session.identity) is session:
                del self._sessions[session.identity]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def active_schedulers(self, code) -> list:
        code = normalize_code(code)
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.scheduler for s in sessions if s.scheduler is not None and s.scheduler.active and s.scheduler.code == code]


sessions = SessionRegistry()
