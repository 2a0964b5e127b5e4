import random
import threading

from fingerrace import socketio
from .errors import RaceError, RoomNotFound
from .room import RACING, SIGNALS, STOP, Room


class SignalScheduler:
    """Host-only loop flipping the room's traffic light on random dwell times.

    - One instance per (room, host); owned by the host's player session
    - Cancelled through `cancel()`; the token is checked before every write
      and interrupts the dwell wait
    - Every write re-checks inside the transaction that the room is still
      racing and still hosted by `host_id`, and ends the loop otherwise
    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    """

    def __init__(self, app, store, code: str, host_id: str, rng=None):
        self.app = app
        self.store = store
        self.code = code
        self.host_id = host_id
        self.rng = rng or random.Random()
        self.writes = 0
        self.finished = False
        self._cancelled = threading.Event()
        self._task = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.finished

    def start(self) -> 'SignalScheduler':
        cfg = self.app.config
        if cfg.get('TESTING') and not cfg.get('ENABLE_SCHEDULER_IN_TESTS'):
            self.app.logger.info(f"[signal-skip] room={self.code} host={self.host_id} testing")
            return self
        self.app.logger.info(f"[signal-start] room={self.code} host={self.host_id}")
        self._task = socketio.start_background_task(self._worker)
        return self

    def cancel(self) -> None:
        if not self._cancelled.is_set():
            self.app.logger.info(f"[signal-cancel] room={self.code} host={self.host_id}")
        self._cancelled.set()

    def next_signal(self):
        """Pick the next light and how long it stays on (seconds)."""
        cfg = self.app.config
        signal = self.rng.choice(SIGNALS)
        if signal == STOP:
            low, high = cfg.get('SIGNAL_STOP_MIN_MS', 800), cfg.get('SIGNAL_STOP_MAX_MS', 1800)
        else:
            low, high = cfg.get('SIGNAL_GO_MIN_MS', 1500), cfg.get('SIGNAL_GO_MAX_MS', 2700)
        return signal, self.rng.uniform(low, high) / 1000.0

    def write_signal(self, signal: str) -> bool:
        """Write one signal value. Returns False when the loop must stop."""
        if self.cancelled:
            return False
        allowed = {'ok': False}

        def _set(room: Room):
            allowed['ok'] = room.status == RACING and room.host_id == self.host_id and not self.cancelled
            if not allowed['ok']:
                return None
            room.signal = signal
            return room

        try:
            room = self.store.transact(self.code, _set)
        except RoomNotFound:
            self.app.logger.info(f"[signal-abort] room={self.code} gone")
            return False
        if not allowed['ok']:
            self.app.logger.info(
                f"[signal-abort] room={self.code} host={self.host_id} status={room.status} room_host={room.host_id}"
            )
            return False
        self.writes += 1
        self.app.logger.info(f"[signal-set] room={self.code} signal={signal} version={room.version}")
        return True

    def run(self) -> None:
        try:
            while not self.cancelled:
                signal, dwell = self.next_signal()
                if not self.write_signal(signal):
                    break
                if self._wait(dwell):
                    break
        finally:
            self.finished = True

    def _wait(self, delay: float) -> bool:
        """Sleep for the dwell; True if cancelled meanwhile."""
        hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        if hb <= 0:
            return self._cancelled.wait(delay)
        slept = 0.0
        while slept < delay:
            step = min(hb, delay - slept)
            if self._cancelled.wait(step):
                return True
            slept += step
            self.app.logger.info(f"[signal-heartbeat] room={self.code} remaining={max(0.0, delay - slept):.1f}s")
        return False

    def _worker(self) -> None:
        with self.app.app_context():
            try:
                self.run()
            except RaceError as exc:
                # Transient store failure; the session restarts a loop on its next snapshot
                self.app.logger.warning(f"[signal-error] room={self.code} error={exc.name}: {exc.message}")
            except Exception:
                self.app.logger.exception(f"[signal-error] room={self.code} host={self.host_id} unexpected failure")

