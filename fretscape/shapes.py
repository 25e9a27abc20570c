"""Chord shapes on the lattice.

A chord occurrence resolves to three world cells (root, third, fifth). The
root is looked up among the reference placement's labels; when no label
matches, a fretspace offset with the right semitone distance is applied to
the lattice origin instead. Third and fifth then follow one of the voicing
strategies below.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from fretscape.lattice import LatticeFrame, Placement, Point
from fretscape.theory import DegreeToken, label_to_semitone


class VoicingStrategy(Enum):
    DEFAULT = "default"
    ESHAPE_513 = "eshape513"
    CSHAPE_1351 = "cshape1351"


@dataclass(frozen=True)
class ChordShape:
    root: Point
    third: Point
    fifth: Point

    def cell(self, role: str) -> Point:
        return {"root": self.root, "third": self.third, "fifth": self.fifth}[role]


# Number of bottom rows searched for roots (the progression guide rows)
GUIDE_ROWS = 2
FALLBACK_Y_RANGE = range(-3, 4)

MAJOR_THIRD_OFFSET = (-1, 1)
MINOR_THIRD_OFFSET = (-2, 1)
FIFTH_BELOW_OFFSET = (0, -1)
CSHAPE_FIFTH_OFFSET = (-3, 2)


def fallback_offset(semitone: int) -> Tuple[int, int]:
    """Fretspace (fx, fy) reaching a semitone with the fewest steps.

    Searches x - 5y == semitone with y counted upward, minimizing |x| + 2|y|.
    """
    best: Optional[Tuple[int, int]] = None
    best_cost = math.inf
    for y in FALLBACK_Y_RANGE:
        x = semitone + 5 * y
        cost = abs(x) + 2 * abs(y)
        if cost < best_cost:
            best_cost = cost
            best = (x, -y)
    return best  # type: ignore[return-value]


def _guide_rows(placement: Placement) -> range:
    h = placement.brick.height
    return range(max(0, h - GUIDE_ROWS), h)


def find_label(placement: Placement, semitone: int, rows: Optional[Iterable[int]] = None) -> Optional[Tuple[int, int]]:
    """First (col, row) in row-major order whose label has this semitone."""
    allowed = set(rows) if rows is not None else None
    for col, row, label in placement.brick.labelled_cells():
        if allowed is not None and row not in allowed:
            continue
        if label_to_semitone(label) == semitone:
            return col, row
    return None


def locate_root(frame: LatticeFrame, semitone: int) -> Optional[Tuple[Point, Optional[Tuple[int, int]]]]:
    """World cell for a root semitone, plus its (col,row) when found on a label."""
    ref = frame.reference
    if ref is None:
        return None
    hit = find_label(ref, semitone, _guide_rows(ref))
    if hit is not None:
        return ref.cell_world(hit[0], hit[1], frame.orientation), hit
    fx, fy = fallback_offset(semitone)
    return frame.fret_offset(frame.basis.origin, fx, fy), None


def root_cell(frame: LatticeFrame, token: DegreeToken) -> Optional[Point]:
    found = locate_root(frame, token.semitone)
    return found[0] if found else None


def progression_path(frame: LatticeFrame, tokens: Iterable[DegreeToken]) -> List[Point]:
    """Root cells of every resolvable chord, in order (the visual guide)."""
    out: List[Point] = []
    for tok in tokens:
        cell = root_cell(frame, tok)
        if cell is not None:
            out.append(cell)
    return out


def _third_offset(token: DegreeToken) -> Tuple[int, int]:
    return MAJOR_THIRD_OFFSET if token.third_interval == 4 else MINOR_THIRD_OFFSET


def _nearest_same_register(frame: LatticeFrame, semitone: int, near: Point) -> Optional[Point]:
    ref = frame.reference
    best: Optional[Point] = None
    best_d = math.inf
    for col, row, label in ref.brick.labelled_cells():
        if label_to_semitone(label) != semitone:
            continue
        cell = ref.cell_world(col, row, frame.orientation)
        if abs(cell[1] - near[1]) > 1:
            continue
        d = math.hypot(cell[0] - near[0], cell[1] - near[1])
        if d < best_d:
            best_d = d
            best = cell
    return best


def _resolve_default(frame: LatticeFrame, token: DegreeToken) -> Optional[ChordShape]:
    found = locate_root(frame, token.semitone)
    if found is None:
        return None
    root, hit = found
    ref = frame.reference
    if hit is not None and hit[1] > 0:
        fifth = ref.cell_world(hit[0], hit[1] - 1, frame.orientation)
    else:
        fifth = frame.fret_offset(root, *FIFTH_BELOW_OFFSET)
    third = _nearest_same_register(frame, token.third_semitone, root)
    if third is None:
        third = frame.fret_offset(root, *_third_offset(token))
    return ChordShape(root=root, third=third, fifth=fifth)


def _resolve_eshape(frame: LatticeFrame, token: DegreeToken) -> Optional[ChordShape]:
    root = root_cell(frame, token)
    if root is None:
        return None
    return ChordShape(
        root=root,
        third=frame.fret_offset(root, *_third_offset(token)),
        fifth=frame.fret_offset(root, *FIFTH_BELOW_OFFSET),
    )


def _resolve_cshape(frame: LatticeFrame, token: DegreeToken) -> Optional[ChordShape]:
    root = root_cell(frame, token)
    if root is None:
        return None
    return ChordShape(
        root=root,
        third=frame.fret_offset(root, *_third_offset(token)),
        fifth=frame.fret_offset(root, *CSHAPE_FIFTH_OFFSET),
    )


_RESOLVERS: Dict[VoicingStrategy, Callable[[LatticeFrame, DegreeToken], Optional[ChordShape]]] = {
    VoicingStrategy.DEFAULT: _resolve_default,
    VoicingStrategy.ESHAPE_513: _resolve_eshape,
    VoicingStrategy.CSHAPE_1351: _resolve_cshape,
}


def resolve_shape(frame: LatticeFrame, token: DegreeToken, strategy: VoicingStrategy = VoicingStrategy.DEFAULT) -> Optional[ChordShape]:
    return _RESOLVERS[strategy](frame, token)
