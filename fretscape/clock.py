from __future__ import annotations

import heapq
import itertools
import threading
import time
import traceback
from collections import deque
from typing import Callable, Deque, Dict, List, Optional, Tuple


Callback = Callable[[], None]
FrameCallback = Callable[[float], None]

DEFAULT_FPS = 60.0


class IntervalClock:
    """Repeating callback on a daemon thread.

    Deadlines advance by a fixed interval from the first one, so a late tick
    does not push later ticks back. Callbacks run under the shared lock.
    """

    def __init__(self, interval_ms: float, handler: Callback, lock: threading.RLock):
        self.handler = handler
        self._lock = lock
        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._jitter_ms: Deque[float] = deque(maxlen=512)
        self._metrics_lock = threading.Lock()
        self._interval = interval_ms / 1000.0

    def start(self):
        if self._t and self._t.is_alive():
            return
        self._stop.clear()
        self._t = threading.Thread(target=self._run, daemon=True)
        self._t.start()

    def stop(self):
        # No join: the caller may hold the lock the clock thread waits on
        self._stop.set()

    def _run(self):
        next_call = time.monotonic() + self._interval
        while not self._stop.is_set():
            now = time.monotonic()
            if now >= next_call:
                jitter_ms = max(0.0, (now - next_call) * 1000.0)
                with self._metrics_lock:
                    self._jitter_ms.append(jitter_ms)
                    interval = self._interval
                next_call += interval
                with self._lock:
                    if self._stop.is_set():
                        break
                    try:
                        self.handler()
                    except Exception:
                        # Keep ticking after a failed beat
                        traceback.print_exc()
            else:
                time.sleep(min(0.002, max(0.0, next_call - now)))

    def _percentile(self, values: List[float], pct: float) -> float:
        if not values:
            return 0.0
        xs = sorted(values)
        k = (len(xs) - 1) * pct
        f = int(k)
        c = min(f + 1, len(xs) - 1)
        if f == c:
            return xs[f]
        d0 = xs[f] * (c - k)
        d1 = xs[c] * (k - f)
        return d0 + d1

    def get_metrics(self) -> dict:
        with self._metrics_lock:
            samples = list(self._jitter_ms)
        return {
            "jitterMsP95": round(self._percentile(samples, 0.95), 3),
            "jitterMsP99": round(self._percentile(samples, 0.99), 3),
        }


class _Timeout:
    def __init__(self, scheduler: "ThreadScheduler", delay_ms: float, callback: Callback):
        self.cancelled = False
        self._scheduler = scheduler
        self._callback = callback
        self._timer = threading.Timer(max(0.0, delay_ms) / 1000.0, self._fire)
        self._timer.daemon = True

    def _fire(self):
        with self._scheduler.lock:
            if self.cancelled:
                return
            self.cancelled = True
            try:
                self._callback()
            except Exception:
                traceback.print_exc()

    def start(self):
        self._timer.start()

    def cancel(self):
        self.cancelled = True
        self._timer.cancel()


class ThreadScheduler:
    """Wall-clock scheduler. All callbacks are serialized under `lock`.

    Code calling into the board from another thread (e.g. a WS handler)
    holds the same lock, so every mutation runs one at a time.
    """

    def __init__(self, fps: float = DEFAULT_FPS):
        self.lock = threading.RLock()
        self.frame_ms = 1000.0 / float(fps)
        self._clocks: List[IntervalClock] = []

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0

    def set_interval(self, interval_ms: float, callback: Callback) -> IntervalClock:
        clock = IntervalClock(interval_ms, callback, self.lock)
        clock.start()
        self._clocks = [c for c in self._clocks if not c._stop.is_set()] + [clock]
        return clock

    def clear_interval(self, handle: IntervalClock) -> None:
        handle.stop()

    def call_later(self, delay_ms: float, callback: Callback) -> _Timeout:
        t = _Timeout(self, delay_ms, callback)
        t.start()
        return t

    def cancel(self, handle: _Timeout) -> None:
        handle.cancel()

    def request_frame(self, callback: FrameCallback) -> _Timeout:
        return self.call_later(self.frame_ms, lambda: callback(self.now_ms()))

    def cancel_frame(self, handle: _Timeout) -> None:
        handle.cancel()

    def get_metrics(self) -> dict:
        live = [c for c in self._clocks if not c._stop.is_set()]
        return live[-1].get_metrics() if live else {}


class ManualScheduler:
    """Virtual-time scheduler: nothing runs until advance() is called."""

    def __init__(self, start_ms: float = 0.0, fps: float = DEFAULT_FPS):
        self.lock = threading.RLock()
        self.frame_ms = 1000.0 / float(fps)
        self._now = float(start_ms)
        self._ids = itertools.count(1)
        self._seq = itertools.count()
        # handle -> (interval_ms or None, callback)
        self._entries: Dict[int, Tuple[Optional[float], Callback]] = {}
        self._queue: List[Tuple[float, int, int]] = []

    def now_ms(self) -> float:
        return self._now

    def _push(self, due: float, handle: int) -> None:
        heapq.heappush(self._queue, (due, next(self._seq), handle))

    def set_interval(self, interval_ms: float, callback: Callback) -> int:
        handle = next(self._ids)
        self._entries[handle] = (float(interval_ms), callback)
        self._push(self._now + interval_ms, handle)
        return handle

    def call_later(self, delay_ms: float, callback: Callback) -> int:
        handle = next(self._ids)
        self._entries[handle] = (None, callback)
        self._push(self._now + max(0.0, delay_ms), handle)
        return handle

    def cancel(self, handle: int) -> None:
        self._entries.pop(handle, None)

    clear_interval = cancel
    cancel_frame = cancel

    def request_frame(self, callback: FrameCallback) -> int:
        return self.call_later(self.frame_ms, lambda: callback(self._now))

    def pending(self) -> int:
        return len(self._entries)

    def advance(self, ms: float) -> None:
        """Move virtual time forward, running everything that falls due."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, handle = heapq.heappop(self._queue)
            entry = self._entries.get(handle)
            if entry is None:
                continue
            self._now = due
            interval, callback = entry
            if interval is None:
                del self._entries[handle]
            else:
                self._push(due + interval, handle)
            with self.lock:
                callback()
        self._now = target

    def get_metrics(self) -> dict:
        return {}
