from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Tuple

from fretscape.lattice import Point


MIN_VIEW_SCALE = 0.5
MAX_VIEW_SCALE = 4.0
DEFAULT_CELL_WIDTH_PX = 80.0
WHEEL_ZOOM_RATE = 0.0015


def clamp_scale(scale: float) -> float:
    return max(MIN_VIEW_SCALE, min(MAX_VIEW_SCALE, float(scale)))


def wheel_factor(delta_y: float) -> float:
    """Negative deltaY zooms in; positive zooms out."""
    return math.exp(-float(delta_y) * WHEEL_ZOOM_RATE)


def fit_cell_width(container_w: float, container_h: float, width_cw: float, height_cw: float) -> float:
    """Pixels per cell so the whole canvas fits the container (letterboxed)."""
    if container_w <= 0 or container_h <= 0:
        return DEFAULT_CELL_WIDTH_PX
    return min(container_w / width_cw, container_h / height_cw)


@dataclass(frozen=True)
class ViewTransform:
    """Canvas pixels <-> world cell-width units, with zoom and pan.

    screen = pan + world_px * scale, world_px = world_cw * cell_width
    """

    cell_width: float = DEFAULT_CELL_WIDTH_PX
    scale: float = 1.0
    pan_x: float = 0.0
    pan_y: float = 0.0

    def screen_to_world(self, px: float, py: float) -> Point:
        scale = self.scale or 1.0
        wx = (px - self.pan_x) / scale
        wy = (py - self.pan_y) / scale
        return (wx / self.cell_width, wy / self.cell_width)

    def world_to_screen(self, x_cw: float, y_cw: float) -> Point:
        return (
            self.pan_x + x_cw * self.cell_width * self.scale,
            self.pan_y + y_cw * self.cell_width * self.scale,
        )

    def zoom_at(self, factor: float, px: float, py: float) -> "ViewTransform":
        """Zoom around a canvas point, keeping the world point under it fixed."""
        if not factor or factor <= 0:
            return self
        next_scale = clamp_scale(self.scale * factor)
        if abs(next_scale - self.scale) < 1e-6:
            return self
        world_x = (px - self.pan_x) / self.scale
        world_y = (py - self.pan_y) / self.scale
        return replace(
            self,
            scale=next_scale,
            pan_x=px - world_x * next_scale,
            pan_y=py - world_y * next_scale,
        )

    def pan_by(self, dx: float, dy: float) -> "ViewTransform":
        return replace(self, pan_x=self.pan_x + dx, pan_y=self.pan_y + dy)

    def with_cell_width(self, cell_width: float) -> "ViewTransform":
        return replace(self, cell_width=float(cell_width))


@dataclass(frozen=True)
class NoGesture:
    pass


@dataclass(frozen=True)
class TwoFingerGesture:
    start_distance: float
    start_scale: float
    anchor_x: float
    anchor_y: float


def _center_and_distance(p0: Point, p1: Point) -> Tuple[Point, float]:
    center = ((p0[0] + p1[0]) / 2.0, (p0[1] + p1[1]) / 2.0)
    dist = math.hypot(p1[0] - p0[0], p1[1] - p0[1])
    return center, (dist if dist > 1e-6 else 1.0)


def begin_two_finger(view: ViewTransform, p0: Point, p1: Point) -> TwoFingerGesture:
    center, dist = _center_and_distance(p0, p1)
    return TwoFingerGesture(
        start_distance=dist,
        start_scale=view.scale,
        anchor_x=(center[0] - view.pan_x) / view.scale,
        anchor_y=(center[1] - view.pan_y) / view.scale,
    )


def update_two_finger(view: ViewTransform, gesture: TwoFingerGesture, p0: Point, p1: Point) -> ViewTransform:
    """Pinch zoom about the gesture anchor plus pan following the touch center."""
    center, dist = _center_and_distance(p0, p1)
    next_scale = clamp_scale(gesture.start_scale * dist / gesture.start_distance)
    return replace(
        view,
        scale=next_scale,
        pan_x=center[0] - gesture.anchor_x * next_scale,
        pan_y=center[1] - gesture.anchor_y * next_scale,
    )
