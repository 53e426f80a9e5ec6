import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from gridstrike.schemas import TimerKind

TimerKey = Tuple[str, TimerKind]
TimerCallback = Callable[[int], None]


@dataclass
class _Armed:
    generation: int
    delay: float
    callback: TimerCallback
    handle: Optional[threading.Timer] = None


class TimerService:
    """Build/turn timers per match.

    Arming a timer cancels the pending one of the same kind and bumps its generation.
    The callback receives the generation it was armed with; the owner compares it with
    ``is_current`` under the match lock so a late fire never races a newer timer.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._armed: Dict[TimerKey, _Armed] = {}
        self._generation: Dict[TimerKey, int] = {}

    def arm(self, match_id: str, kind: TimerKind, delay: float, callback: TimerCallback) -> int:
        key = (match_id, kind)
        with self._lock:
            old = self._armed.pop(key, None)
            gen = self._generation.get(key, 0) + 1
            self._generation[key] = gen
            armed = _Armed(generation=gen, delay=delay, callback=callback)
            self._armed[key] = armed
        if old is not None:
            self._stop(old)
        self._start(key, armed)
        return gen

    def cancel(self, match_id: str, kind: Optional[TimerKind] = None) -> None:
        kinds: tuple[TimerKind, ...] = (kind,) if kind else ("build", "turn")
        stopped = []
        with self._lock:
            for k in kinds:
                key = (match_id, k)
                if key in self._generation:
                    self._generation[key] += 1
                old = self._armed.pop(key, None)
                if old is not None:
                    stopped.append(old)
        for old in stopped:
            self._stop(old)

    def is_current(self, match_id: str, kind: TimerKind, generation: int) -> bool:
        with self._lock:
            return self._generation.get((match_id, kind)) == generation

    def pending(self, match_id: str, kind: TimerKind) -> bool:
        with self._lock:
            return (match_id, kind) in self._armed

    def forget(self, match_id: str) -> None:
        self.cancel(match_id)
        with self._lock:
            for k in ("build", "turn"):
                self._generation.pop((match_id, k), None)

    def _fired(self, key: TimerKey, armed: _Armed) -> None:
        with self._lock:
            if self._armed.get(key) is armed:
                del self._armed[key]
        armed.callback(armed.generation)

    # --- backend hooks ---
    def _start(self, key: TimerKey, armed: _Armed) -> None:
        t = threading.Timer(armed.delay, self._fired, args=(key, armed))
        t.daemon = True
        armed.handle = t
        t.start()

    def _stop(self, armed: _Armed) -> None:
        if armed.handle is not None:
            armed.handle.cancel()


class ManualTimers(TimerService):
    """Timers that only fire when told to. Used by tests and by servers with timers disabled."""

    def _start(self, key: TimerKey, armed: _Armed) -> None:
        pass

    def _stop(self, armed: _Armed) -> None:
        pass

    def delay_of(self, match_id: str, kind: TimerKind) -> Optional[float]:
        with self._lock:
            armed = self._armed.get((match_id, kind))
            return armed.delay if armed else None

    def fire(self, match_id: str, kind: TimerKind) -> bool:
        key = (match_id, kind)
        with self._lock:
            armed = self._armed.get(key)
        if armed is None:
            return False
        self._fired(key, armed)
        return True
