from __future__ import annotations

import traceback
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from fretscape import drag
from fretscape.beat_plan import PlanContext
from fretscape.clock import ThreadScheduler
from fretscape.drag import DragState, Dragging, Idle, PendingCopy
from fretscape.drums import DrumEngine
from fretscape.lattice import (
    CANVAS_HEIGHT_CW,
    CANVAS_WIDTH_CW,
    V1,
    V2,
    Brick,
    LatticeFrame,
    Placement,
    Point,
)
from fretscape.patterns import BASS_RUN_MODES, DEFAULT_MODE, parse_riff, parse_strum
from fretscape.shapes import progression_path
from fretscape.tempo_map import DEFAULT_BPM
from fretscape.theory import DegreeToken, key_to_pc, parse_degrees
from fretscape.transport import PlaybackFrame, Transport
from fretscape.view import NoGesture, TwoFingerGesture, ViewTransform, begin_two_finger, fit_cell_width, update_two_finger, wheel_factor
from fretscape.voices import MidoVoiceSink, ToneSynth, VoiceSink


RenderHook = Callable[[Optional[PlaybackFrame]], None]

MIDDLE_BUTTON = 1


class Fretscape:
    """Brick board plus progression playback.

    Pointer entry points take canvas pixel coordinates; everything else is in
    cell-width units. Callers on other threads (e.g. the WS server) must hold
    `scheduler.lock` while calling in.
    """

    def __init__(
        self,
        scheduler: Any = None,
        voice_sink: Optional[VoiceSink] = None,
        drum_engine: Optional[DrumEngine] = None,
        width_cw: float = CANVAS_WIDTH_CW,
        height_cw: float = CANVAS_HEIGHT_CW,
        key: str = "A",
        bpm: int = DEFAULT_BPM,
    ):
        self.scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self.voice_sink = voice_sink if voice_sink is not None else MidoVoiceSink()
        self.synth = ToneSynth(self.voice_sink, key=key)
        self.key = key if key_to_pc(key) is not None else "A"
        self.drums = drum_engine
        self.frame = LatticeFrame(width_cw=width_cw, height_cw=height_cw)
        self.view = ViewTransform()
        self.drag_state: DragState = Idle()
        self.gesture: Any = NoGesture()
        self._hold_handle = None
        self._pan_last: Optional[Point] = None
        self._use_five_by_one = False
        self.progression: Tuple[DegreeToken, ...] = ()
        self.mode = DEFAULT_MODE
        self._strum: Optional[Tuple[str, str, str, str]] = None
        self._riff: Tuple = ()
        self._render_hooks: List[RenderHook] = []
        self.transport = Transport(self.scheduler, self.plan_context, self.synth, self.drums, bpm)
        self.transport.on_frame(self.render)

    # --- Bricks ---
    @property
    def placements(self) -> Tuple[Placement, ...]:
        return self.frame.placements

    def add_brick(self, brick: Optional[Brick] = None, x_cw: float = 0.0, y_cw: float = 0.0) -> Placement:
        placement = Placement(brick if brick is not None else Brick(), float(x_cw), float(y_cw))
        self.frame = self.frame.with_placements(self.frame.placements + (placement,))
        self.render()
        return placement

    def clear_bricks(self) -> None:
        self.stop_progression_playback()
        self._cancel_hold()
        self.drag_state = Idle()
        self.frame = self.frame.with_placements(())
        self.render()

    # --- Settings ---
    def set_key(self, key: str) -> bool:
        if not self.synth.set_key(key):
            return False
        self.key = key
        return True

    def _set_orientation(self, **changes: bool) -> None:
        # A drag in flight is committed before the frame flips under it
        self._finish_drag()
        self.frame = replace(self.frame, orientation=replace(self.frame.orientation, **changes))
        self.render()

    def set_left_handed(self, left_handed: bool) -> None:
        self._set_orientation(left_handed=bool(left_handed))

    def set_vertical_mirrored(self, mirrored: bool) -> None:
        self._set_orientation(vertical_mirrored=bool(mirrored))

    def set_drag_constraint_slope(self, use_five_by_one: bool) -> None:
        """False selects the 2x2 slope (2,-2), True the 5x1 slope (5,1)."""
        self._use_five_by_one = bool(use_five_by_one)

    @property
    def constraint_vector(self) -> Point:
        return self.frame.orientation.reflect(V2 if self._use_five_by_one else V1)

    def set_drum_engine(self, engine: Optional[DrumEngine]) -> None:
        self.drums = engine
        self.transport.drums = engine

    def set_riff_pattern(self, pattern: Any) -> None:
        self._riff = parse_riff(pattern)

    def set_strum_pattern(self, pattern: Any) -> None:
        self._strum = parse_strum(pattern)

    def set_progression_playback_mode(self, mode: str) -> bool:
        """Switch bass-run mode. Playback stops if the mode changes mid-play."""
        if mode not in BASS_RUN_MODES:
            return False
        if mode != self.mode and self.transport.is_playing:
            self.transport.stop()
        self.mode = mode
        return True

    def set_progression_bpm(self, bpm: object) -> int:
        return self.transport.set_bpm(bpm)

    @property
    def bpm(self) -> int:
        return self.transport.bpm

    # --- Progression ---
    def apply_chord_progression(self, progression: Any) -> bool:
        """Accepts {"degrees": [...]} or a plain list; malformed degrees are skipped."""
        degrees = progression.get("degrees", []) if isinstance(progression, dict) else progression
        if isinstance(degrees, str) or not isinstance(degrees, (list, tuple)):
            degrees = []
        self.progression = tuple(parse_degrees(degrees))
        has_path = self.has_progression_path()
        if not has_path:
            self.stop_progression_playback()
        self.render()
        return has_path

    def plan_context(self) -> PlanContext:
        return PlanContext(
            frame=self.frame,
            progression=self.progression,
            mode=self.mode,
            strum=self._strum,
            riff=self._riff,
        )

    def progression_path(self) -> List[Point]:
        return progression_path(self.frame, self.progression)

    def has_progression_path(self) -> bool:
        return bool(self.progression_path())

    # --- Playback ---
    def is_progression_playback_active(self) -> bool:
        return self.transport.is_playing

    def start_progression_playback(self) -> bool:
        return self.transport.start()

    def stop_progression_playback(self) -> None:
        self.transport.stop()
        self.render()

    def on_progression_playback_state_change(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Notify on start/stop. The callback gets the new is_playing flag; returns an unsubscribe."""
        return self.transport.subscribe(callback)

    # --- Render hooks ---
    def on_render(self, callback: RenderHook) -> Callable[[], None]:
        self._render_hooks.append(callback)

        def unsubscribe() -> None:
            if callback in self._render_hooks:
                self._render_hooks.remove(callback)

        return unsubscribe

    def render(self, playback: Optional[PlaybackFrame] = None) -> None:
        if playback is None and self.transport.is_playing:
            playback = self.transport.current_frame()
        for cb in list(self._render_hooks):
            try:
                cb(playback)
            except Exception:
                traceback.print_exc()

    # --- View ---
    def resize(self, container_w: float, container_h: float) -> None:
        cw = fit_cell_width(container_w, container_h, self.frame.width_cw, self.frame.height_cw)
        self.view = self.view.with_cell_width(cw)
        self.render()

    def wheel(self, delta_y: float, px: float, py: float) -> None:
        self.view = self.view.zoom_at(wheel_factor(delta_y), px, py)
        self.render()

    # --- Pointer input ---
    def _apply(self, transition: drag.Transition) -> None:
        self.drag_state, placements = transition
        if placements is not self.frame.placements:
            self.frame = self.frame.with_placements(placements)

    def _cancel_hold(self) -> None:
        if self._hold_handle is not None:
            self.scheduler.cancel(self._hold_handle)
            self._hold_handle = None

    def _finish_drag(self) -> None:
        self._cancel_hold()
        if not isinstance(self.drag_state, Idle):
            self._apply(drag.cancel(self.drag_state, self.frame))

    def _on_hold(self) -> None:
        self._hold_handle = None
        if not isinstance(self.drag_state, PendingCopy):
            return
        self._apply(drag.hold_elapsed(self.drag_state, self.frame, self.constraint_vector))
        self.render()

    def pointer_down(self, px: float, py: float, button: int = 0, immediate: bool = False) -> bool:
        """Press on the canvas. Returns True when a brick was hit."""
        if button == MIDDLE_BUTTON:
            self._pan_last = (px, py)
            return False
        if button != 0 or isinstance(self.gesture, TwoFingerGesture):
            return False
        self._finish_drag()
        point = self.view.screen_to_world(px, py)
        self._apply(drag.press(self.frame, point, self.scheduler.now_ms(), self.constraint_vector, immediate))
        if isinstance(self.drag_state, PendingCopy):
            self._hold_handle = self.scheduler.call_later(drag.HOLD_COPY_MS, self._on_hold)
        self.render()
        return not isinstance(self.drag_state, Idle)

    def pointer_move(self, px: float, py: float) -> None:
        if self._pan_last is not None:
            self.view = self.view.pan_by(px - self._pan_last[0], py - self._pan_last[1])
            self._pan_last = (px, py)
            self.render()
            return
        if isinstance(self.drag_state, Idle):
            return
        self._apply(drag.move(self.drag_state, self.frame, self.view.screen_to_world(px, py)))
        if isinstance(self.drag_state, Idle):
            self._cancel_hold()
        if isinstance(self.drag_state, Dragging):
            self.render()

    def pointer_up(self) -> None:
        if self._pan_last is not None:
            self._pan_last = None
            return
        was_dragging = isinstance(self.drag_state, Dragging)
        self._cancel_hold()
        self._apply(drag.release(self.drag_state, self.frame))
        if was_dragging:
            self.render()

    pointer_cancel = pointer_up

    def two_finger_start(self, p0: Point, p1: Point) -> None:
        self._finish_drag()
        self._pan_last = None
        self.gesture = begin_two_finger(self.view, p0, p1)

    def two_finger_move(self, p0: Point, p1: Point) -> None:
        if not isinstance(self.gesture, TwoFingerGesture):
            return
        self.view = update_two_finger(self.view, self.gesture, p0, p1)
        self.render()

    def two_finger_end(self, remaining: Optional[Sequence[Point]] = None) -> None:
        """Touches lifted. With two or more still down the gesture re-anchors."""
        if remaining is not None and len(remaining) >= 2:
            self.gesture = begin_two_finger(self.view, remaining[0], remaining[1])
            return
        self.gesture = NoGesture()

    # --- Snapshot ---
    def get_state(self) -> Dict[str, Any]:
        orientation = self.frame.orientation
        return {
            "transport": "playing" if self.transport.is_playing else "stopped",
            "beatIndex": self.transport.beat_index,
            "bpm": self.transport.bpm,
            "mode": self.mode,
            "key": self.key,
            "leftHanded": orientation.left_handed,
            "verticalMirrored": orientation.vertical_mirrored,
            "dragConstraint": "5x1" if self._use_five_by_one else "2x2",
            "strum": list(self._strum) if self._strum else None,
            "riffNotes": len(self._riff),
            "progression": [t.text for t in self.progression],
            "path": [list(p) for p in self.progression_path()],
            "bricks": [{"x": p.x_cw, "y": p.y_cw} for p in self.frame.placements],
            "drumPattern": self.drums.selected_pattern if self.drums is not None else "",
        }
