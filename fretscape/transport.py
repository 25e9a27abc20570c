from __future__ import annotations

import traceback
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from fretscape.beat_plan import BeatPlan, PlanContext, build_beat_plan
from fretscape.drums import DrumEngine
from fretscape.lattice import Point
from fretscape.tempo_map import DEFAULT_BPM, beat_period_ms, clamp_bpm
from fretscape.voices import ToneSynth


StateListener = Callable[[bool], None]
FrameListener = Callable[["PlaybackFrame"], None]


@dataclass(frozen=True)
class PlaybackFrame:
    """Visual state for one display frame between two beats."""

    beat_index: int
    progress: float  # 0..1 through the current beat
    pulse: float  # 1 at the beat, decaying to 0
    from_cells: Tuple[Point, ...]
    to_cells: Tuple[Point, ...]

    def positions(self) -> List[Point]:
        """Interpolated marker positions; extra sources follow the last target."""
        if not self.from_cells or not self.to_cells:
            return list(self.from_cells)
        out: List[Point] = []
        p = self.progress
        for k, a in enumerate(self.from_cells):
            b = self.to_cells[min(k, len(self.to_cells) - 1)]
            out.append((a[0] + (b[0] - a[0]) * p, a[1] + (b[1] - a[1]) * p))
        return out


def _endpoint_cells(plan: BeatPlan) -> Tuple[Point, ...]:
    if plan.note_cells:
        return plan.note_cells
    if plan.anchor_cell is not None:
        return (plan.anchor_cell,)
    return ()


class Transport:
    """Beat clock, audio dispatch and visual interpolation for a progression.

    The transport owns at most one clock handle and one animation handle at a
    time; start() and stop() are the only places that create or clear them.
    `context` is called on every tick so geometry and pattern edits made
    during playback are picked up on the next beat.
    """

    def __init__(
        self,
        scheduler: Any,
        context: Callable[[], PlanContext],
        synth: ToneSynth,
        drums: Optional[DrumEngine] = None,
        bpm: int = DEFAULT_BPM,
    ):
        self.scheduler = scheduler
        self.context = context
        self.synth = synth
        self.drums = drums
        self.bpm = clamp_bpm(bpm, DEFAULT_BPM)
        self.is_playing = False
        self.beat_index = 0
        self._clock_handle = None
        self._frame_handle = None
        self._beat_start_ms = 0.0
        self._current_beat = 0
        self._from_cells: Tuple[Point, ...] = ()
        self._to_cells: Tuple[Point, ...] = ()
        self._state_listeners: List[StateListener] = []
        self._frame_listeners: List[FrameListener] = []
        self.last_plan: Optional[BeatPlan] = None

    # --- Subscriptions ---
    def subscribe(self, callback: StateListener) -> Callable[[], None]:
        self._state_listeners.append(callback)
        return lambda: self._state_listeners.remove(callback) if callback in self._state_listeners else None

    def on_frame(self, callback: FrameListener) -> Callable[[], None]:
        self._frame_listeners.append(callback)
        return lambda: self._frame_listeners.remove(callback) if callback in self._frame_listeners else None

    def _notify(self) -> None:
        for cb in list(self._state_listeners):
            try:
                cb(self.is_playing)
            except Exception:
                traceback.print_exc()

    def _publish(self, frame: PlaybackFrame) -> None:
        for cb in list(self._frame_listeners):
            try:
                cb(frame)
            except Exception:
                traceback.print_exc()

    # --- Control ---
    @property
    def period_ms(self) -> float:
        return beat_period_ms(self.bpm)

    def start(self) -> bool:
        """Begin playback from beat 0. False when no chord root resolves."""
        ctx = self.context()
        if not ctx.has_path():
            return False
        self._clear_handles()
        self.beat_index = 0
        if self.drums is not None:
            self.drums.reset()
        self.is_playing = True
        self._tick()
        self._clock_handle = self.scheduler.set_interval(self.period_ms, self._tick)
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
        self._notify()
        return True

    def stop(self) -> None:
        was_playing = self.is_playing
        self._clear_handles()
        self.is_playing = False
        self.beat_index = 0
        self._from_cells = ()
        self._to_cells = ()
        self.last_plan = None
        if self.drums is not None:
            self.drums.stop()
        if was_playing:
            self._notify()

    def set_bpm(self, bpm: object) -> int:
        """Clamp and apply a tempo. While playing only the clock restarts."""
        self.bpm = clamp_bpm(bpm, self.bpm)
        if self.is_playing:
            if self._clock_handle is not None:
                self.scheduler.clear_interval(self._clock_handle)
            self._clock_handle = self.scheduler.set_interval(self.period_ms, self._tick)
        return self.bpm

    def _clear_handles(self) -> None:
        if self._clock_handle is not None:
            self.scheduler.clear_interval(self._clock_handle)
            self._clock_handle = None
        if self._frame_handle is not None:
            self.scheduler.cancel_frame(self._frame_handle)
            self._frame_handle = None

    # --- Clock ---
    def _tick(self) -> None:
        if not self.is_playing:
            return
        ctx = self.context()
        i = self.beat_index
        plan = build_beat_plan(ctx, i)
        upcoming = build_beat_plan(ctx, i + 1)
        period_sec = self.period_ms / 1000.0

        for ev in plan.note_events:
            delay = ev.delay * period_sec
            if ev.cell is None:
                if self.drums is not None:
                    self.drums.trigger("slap", delay)
                continue
            self.synth.play_note(ctx.frame.cell_semitone(ev.cell), delay, ev.duration * period_sec, ev.sustain_hold)
        if self.drums is not None:
            self.drums.play_beat(i % 4)

        self.last_plan = plan
        self._from_cells = _endpoint_cells(plan)
        self._to_cells = _endpoint_cells(upcoming)
        self._current_beat = i
        self._beat_start_ms = self.scheduler.now_ms()
        self.beat_index = i + 1

    # --- Animation ---
    def current_frame(self, now_ms: Optional[float] = None) -> Optional[PlaybackFrame]:
        if not self._from_cells:
            return None
        now = self.scheduler.now_ms() if now_ms is None else now_ms
        progress = max(0.0, min(1.0, (now - self._beat_start_ms) / self.period_ms))
        return PlaybackFrame(
            beat_index=self._current_beat,
            progress=progress,
            pulse=1.0 - progress,
            from_cells=self._from_cells,
            to_cells=self._to_cells,
        )

    def _on_frame(self, now_ms: float) -> None:
        self._frame_handle = None
        frame = self.current_frame(now_ms)
        if frame is None or not self.is_playing:
            return
        self._publish(frame)
        self._frame_handle = self.scheduler.request_frame(self._on_frame)
