from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple, Union

from fretscape.lattice import LatticeFrame, Placement, Point, hit_test, project_drag, snap_to_lattice


HOLD_COPY_MS = 1000.0
COPY_MOVE_TOLERANCE_CW = 0.35


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class PendingCopy:
    source_index: int
    press_point: Point
    pressed_ms: float

    def due(self, now_ms: float) -> bool:
        return now_ms - self.pressed_ms >= HOLD_COPY_MS


@dataclass(frozen=True)
class DragSession:
    anchor: Point  # snapped origin-cell position the line runs through
    offset: Point  # pointer minus origin cell at press time
    vector: Point


@dataclass(frozen=True)
class Dragging:
    item_index: int
    session: DragSession


DragState = Union[Idle, PendingCopy, Dragging]
Transition = Tuple[DragState, Tuple[Placement, ...]]


def _snap_origin(frame: LatticeFrame, placement: Placement) -> Placement:
    offset = placement.brick.origin_offset(frame.orientation)
    origin = placement.origin_cell(frame.orientation)
    snapped = snap_to_lattice(frame.basis, origin, offset, frame.bounds_for(placement.brick))
    return placement.with_origin_at(snapped, frame.orientation)


def _begin_drag(frame: LatticeFrame, source_index: int, point: Point, vector: Point) -> Transition:
    src = frame.placements[source_index]
    copy = Placement(src.brick.clone(), src.x_cw, src.y_cw)
    origin = copy.origin_cell(frame.orientation)
    offset = (point[0] - origin[0], point[1] - origin[1])
    placements = frame.placements + (copy,)
    frame = frame.with_placements(placements)
    copy = _snap_origin(frame, copy)
    index = len(placements) - 1
    placements = placements[:index] + (copy,)
    session = DragSession(anchor=copy.origin_cell(frame.orientation), offset=offset, vector=vector)
    state = Dragging(item_index=index, session=session)
    return move(state, frame.with_placements(placements), point)


def press(frame: LatticeFrame, point: Point, now_ms: float, vector: Point, immediate: bool = False) -> Transition:
    """Pointer down at a world point while Idle."""
    idx = hit_test(frame.placements, point[0], point[1])
    if idx < 0:
        return Idle(), frame.placements
    if immediate:
        return _begin_drag(frame, idx, point, vector)
    return PendingCopy(source_index=idx, press_point=point, pressed_ms=now_ms), frame.placements


def hold_elapsed(state: DragState, frame: LatticeFrame, vector: Point) -> Transition:
    """The copy timer fired: clone the pressed placement and start dragging it."""
    if not isinstance(state, PendingCopy) or state.source_index >= len(frame.placements):
        return state, frame.placements
    return _begin_drag(frame, state.source_index, state.press_point, vector)


def move(state: DragState, frame: LatticeFrame, point: Point) -> Transition:
    if isinstance(state, PendingCopy):
        drift = math.hypot(point[0] - state.press_point[0], point[1] - state.press_point[1])
        if drift > COPY_MOVE_TOLERANCE_CW:
            return Idle(), frame.placements
        return state, frame.placements
    if isinstance(state, Dragging):
        s = state.session
        desired = (point[0] - s.offset[0], point[1] - s.offset[1])
        pos = project_drag(s.anchor, s.vector, desired)
        placements = list(frame.placements)
        placements[state.item_index] = placements[state.item_index].with_origin_at(pos, frame.orientation)
        return state, tuple(placements)
    return state, frame.placements


def release(state: DragState, frame: LatticeFrame) -> Transition:
    """Pointer up or cancel. A drag in progress is re-snapped where it stands."""
    if isinstance(state, Dragging):
        placements = list(frame.placements)
        placements[state.item_index] = _snap_origin(frame, placements[state.item_index])
        return Idle(), tuple(placements)
    return Idle(), frame.placements


cancel = release
