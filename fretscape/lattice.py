from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterator, Optional, Sequence, Tuple


Point = Tuple[float, float]

# Canvas extents in cell-width units
CANVAS_WIDTH_CW = 25
CANVAS_HEIGHT_CW = 15

# Lattice step vectors (right-handed, non-mirrored convention)
V1: Point = (2.0, -2.0)
V2: Point = (5.0, 1.0)

DRAG_SNAP_RADIUS_CW = 0.5
SNAP_MAX_RINGS = 20

DEFAULT_CELLS: Tuple[Tuple[str, ...], ...] = (
    ("7", "b7", "6", "b6", "5"),
    ("3", "b3", "2", "b2", "1"),
    ("6", "b6", "5", "b5", "4"),
)
ORIGIN_LABEL = "1"
FALLBACK_ORIGIN_OFFSET = (2, 1)


@dataclass(frozen=True)
class Orientation:
    """Handedness and vertical mirroring of the fretspace.

    Fretspace x grows by one semitone per step; fretspace y steps to the next
    string (+5 semitones). Under the right-handed convention a +x fretspace
    step moves left on screen; left-handed flips that. Vertical mirroring
    flips the sign of y.
    """

    left_handed: bool = False
    vertical_mirrored: bool = False

    def to_world_delta(self, fx: float, fy: float) -> Point:
        dx = fx if self.left_handed else -fx
        dy = -fy if self.vertical_mirrored else fy
        return float(dx), float(dy)

    def to_fret_delta(self, dx: float, dy: float) -> Point:
        fx = dx if self.left_handed else -dx
        fy = -dy if self.vertical_mirrored else dy
        return float(fx), float(fy)

    def reflect(self, v: Point) -> Point:
        x, y = v
        return (-x if self.left_handed else x, -y if self.vertical_mirrored else y)


@dataclass(frozen=True)
class Brick:
    """A rectangular group of labelled cells. Labels are scale degrees."""

    cells: Tuple[Tuple[str, ...], ...] = DEFAULT_CELLS

    @property
    def width(self) -> int:
        return len(self.cells[0]) if self.cells else 0

    @property
    def height(self) -> int:
        return len(self.cells)

    def clone(self) -> "Brick":
        return Brick(tuple(tuple(row) for row in self.cells))

    def display_pos(self, col: int, row: int, orientation: Orientation) -> Tuple[int, int]:
        """Map a canonical (col,row) to its displayed offset inside the brick."""
        c = self.width - 1 - col if orientation.left_handed else col
        r = self.height - 1 - row if orientation.vertical_mirrored else row
        return c, r

    def origin_offset(self, orientation: Orientation = Orientation()) -> Tuple[int, int]:
        for r, row in enumerate(self.cells):
            for c, label in enumerate(row):
                if label == ORIGIN_LABEL:
                    return self.display_pos(c, r, orientation)
        return self.display_pos(FALLBACK_ORIGIN_OFFSET[0], FALLBACK_ORIGIN_OFFSET[1], orientation)

    def labelled_cells(self) -> Iterator[Tuple[int, int, str]]:
        """Yield (col, row, label) in canonical row-major order."""
        for r, row in enumerate(self.cells):
            for c, label in enumerate(row):
                yield c, r, label


@dataclass(frozen=True)
class Placement:
    brick: Brick
    x_cw: float
    y_cw: float

    def cell_world(self, col: int, row: int, orientation: Orientation = Orientation()) -> Point:
        c, r = self.brick.display_pos(col, row, orientation)
        return (self.x_cw + c, self.y_cw + r)

    def origin_cell(self, orientation: Orientation = Orientation()) -> Point:
        col, row = self.brick.origin_offset(orientation)
        return (self.x_cw + col, self.y_cw + row)

    def with_origin_at(self, origin: Point, orientation: Orientation = Orientation()) -> "Placement":
        col, row = self.brick.origin_offset(orientation)
        return replace(self, x_cw=origin[0] - col, y_cw=origin[1] - row)

    def contains(self, x_cw: float, y_cw: float) -> bool:
        return (
            self.x_cw <= x_cw < self.x_cw + self.brick.width
            and self.y_cw <= y_cw < self.y_cw + self.brick.height
        )


def hit_test(placements: Sequence[Placement], x_cw: float, y_cw: float) -> int:
    """Return the index of the topmost placement under (x,y), or -1."""
    for i in range(len(placements) - 1, -1, -1):
        if placements[i].contains(x_cw, y_cw):
            return i
    return -1


@dataclass(frozen=True)
class Bounds:
    """Allowed top-left range for a placement of a given footprint."""

    max_x: int
    max_y: int

    @classmethod
    def for_brick(cls, brick: Brick, width_cw: float = CANVAS_WIDTH_CW, height_cw: float = CANVAS_HEIGHT_CW) -> "Bounds":
        return cls(max_x=int(math.floor(width_cw - brick.width)), max_y=int(math.floor(height_cw - brick.height)))

    def contains_origin(self, origin: Point, origin_offset: Tuple[int, int]) -> bool:
        tl_x = origin[0] - origin_offset[0]
        tl_y = origin[1] - origin_offset[1]
        return 0 <= tl_x <= self.max_x and 0 <= tl_y <= self.max_y


@dataclass(frozen=True)
class LatticeBasis:
    """P = origin + a*v1 + b*v2."""

    origin: Point
    v1: Point = V1
    v2: Point = V2

    @classmethod
    def from_placements(
        cls,
        placements: Sequence[Placement],
        orientation: Orientation = Orientation(),
        width_cw: float = CANVAS_WIDTH_CW,
        height_cw: float = CANVAS_HEIGHT_CW,
    ) -> "LatticeBasis":
        if placements:
            origin = placements[0].origin_cell(orientation)
        else:
            origin = (width_cw / 2.0, height_cw / 2.0)
        return cls(origin=origin, v1=orientation.reflect(V1), v2=orientation.reflect(V2))

    @property
    def det(self) -> float:
        return self.v1[0] * self.v2[1] - self.v1[1] * self.v2[0]

    def to_lattice(self, point: Point) -> Point:
        dx = point[0] - self.origin[0]
        dy = point[1] - self.origin[1]
        det = self.det
        a = (dx * self.v2[1] - dy * self.v2[0]) / det
        b = (self.v1[0] * dy - self.v1[1] * dx) / det
        return a, b

    def to_world(self, a: float, b: float) -> Point:
        return (
            self.origin[0] + a * self.v1[0] + b * self.v2[0],
            self.origin[1] + a * self.v1[1] + b * self.v2[1],
        )

    # Reduced basis {v1, v2 - v1}: orthogonal for the fretspace vectors, so
    # rounding its coordinates gives the true nearest lattice point.
    @property
    def reduced(self) -> Point:
        return (self.v2[0] - self.v1[0], self.v2[1] - self.v1[1])

    def _to_reduced(self, point: Point) -> Point:
        w = self.reduced
        dx = point[0] - self.origin[0]
        dy = point[1] - self.origin[1]
        det = self.v1[0] * w[1] - self.v1[1] * w[0]
        c = (dx * w[1] - dy * w[0]) / det
        e = (self.v1[0] * dy - self.v1[1] * dx) / det
        return c, e

    def _from_reduced(self, c: int, e: int) -> Point:
        # c*v1 + e*(v2 - v1) == (c - e)*v1 + e*v2
        return self.to_world(c - e, e)

    def nearest(self, point: Point) -> Tuple[int, int]:
        """Integer (a, b) of the lattice point closest to point."""
        c, e = self._to_reduced(point)
        rc, re_ = int(round(c)), int(round(e))
        return rc - re_, re_


@dataclass(frozen=True)
class LatticeFrame:
    """Placements plus orientation: everything the geometry needs for one call."""

    placements: Tuple[Placement, ...] = ()
    orientation: Orientation = Orientation()
    width_cw: float = CANVAS_WIDTH_CW
    height_cw: float = CANVAS_HEIGHT_CW

    @property
    def basis(self) -> LatticeBasis:
        return LatticeBasis.from_placements(self.placements, self.orientation, self.width_cw, self.height_cw)

    @property
    def reference(self) -> Optional[Placement]:
        return self.placements[0] if self.placements else None

    def with_placements(self, placements: Sequence[Placement]) -> "LatticeFrame":
        return replace(self, placements=tuple(placements))

    def bounds_for(self, brick: Brick) -> Bounds:
        return Bounds.for_brick(brick, self.width_cw, self.height_cw)

    def fret_offset(self, cell: Point, fx: float, fy: float) -> Point:
        dx, dy = self.orientation.to_world_delta(fx, fy)
        return (cell[0] + dx, cell[1] + dy)

    def cell_semitone(self, cell: Point) -> int:
        """Semitone distance of a world cell from the lattice origin."""
        origin = self.basis.origin
        fx, fy = self.orientation.to_fret_delta(cell[0] - origin[0], cell[1] - origin[1])
        return int(round(fx + 5 * fy))


def snap_to_lattice(
    basis: LatticeBasis,
    point: Point,
    origin_offset: Tuple[int, int],
    bounds: Bounds,
    max_rings: int = SNAP_MAX_RINGS,
) -> Point:
    """Snap an origin-cell position to the nearest in-bounds lattice point.

    Rings are searched outward from the nearest lattice point. Once an
    in-bounds candidate is found, outer rings are still scanned while they
    could hold a closer one. When nothing in-bounds turns up within
    max_rings the nearest point is returned as is.
    """
    a0, b0 = basis.nearest(point)
    best = basis.to_world(a0, b0)
    if bounds.contains_origin(best, origin_offset):
        return best
    c0, e0 = a0 + b0, b0
    w = basis.reduced
    step = min(math.hypot(*basis.v1), math.hypot(*w))
    best_d = math.inf
    for r in range(max_rings):
        # Every point on ring r lies at least (r - 0.5) steps away
        if best_d < math.inf and ((r - 0.5) * step) ** 2 > best_d:
            return best
        for di in range(-r, r + 1):
            for dj in range(-r, r + 1):
                if abs(di) != r and abs(dj) != r:
                    continue
                pos = basis._from_reduced(c0 + di, e0 + dj)
                if not bounds.contains_origin(pos, origin_offset):
                    continue
                d = (pos[0] - point[0]) ** 2 + (pos[1] - point[1]) ** 2
                if d < best_d:
                    best_d = d
                    best = pos
    return best


def project_drag(start: Point, vector: Point, target: Point, snap_radius: float = DRAG_SNAP_RADIUS_CW) -> Point:
    """Project target onto the line start + t*vector, snapping t near integers."""
    vx, vy = vector
    len_sq = vx * vx + vy * vy
    if len_sq == 0:
        return start
    t = ((target[0] - start[0]) * vx + (target[1] - start[1]) * vy) / len_sq
    k = round(t)
    if abs(t - k) * math.sqrt(len_sq) <= snap_radius:
        t = float(k)
    return (start[0] + t * vx, start[1] + t * vy)
