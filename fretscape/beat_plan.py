"""Per-beat note planning.

For an absolute beat index the planner resolves the current chord's shape
and produces the notes to trigger during that beat. Event sources, first
non-empty one wins: a riff, a strum pattern, then the bass-run mode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from fretscape.lattice import LatticeFrame, Point
from fretscape.patterns import (
    BEATS_PER_CHORD,
    DEFAULT_MODE,
    MODE_STRATEGY,
    STROKE_GAP_BEATS,
    RiffNote,
    StrumStrike,
    bass_run_steps,
    strum_timeline,
)
from fretscape.shapes import ChordShape, VoicingStrategy, progression_path, resolve_shape
from fretscape.theory import DegreeToken


@dataclass(frozen=True)
class NoteEvent:
    cell: Optional[Point]  # None for a percussive slap
    delay: float  # fraction of a beat, [0, 1)
    duration: float  # beats
    sustain_hold: bool = False

    @property
    def kind(self) -> str:
        return "slap" if self.cell is None else "note"


@dataclass(frozen=True)
class BeatPlan:
    beat_index: int
    chord_index: int
    beat_in_chord: int
    note_cells: Tuple[Point, ...] = ()
    note_events: Tuple[NoteEvent, ...] = ()
    anchor_cell: Optional[Point] = None
    shape: Optional[ChordShape] = None


@dataclass(frozen=True)
class PlanContext:
    """Everything a plan depends on, captured fresh for each call."""

    frame: LatticeFrame
    progression: Tuple[DegreeToken, ...] = ()
    mode: str = DEFAULT_MODE
    strum: Optional[Tuple[str, str, str, str]] = None
    riff: Tuple[RiffNote, ...] = ()
    stroke_gap: float = STROKE_GAP_BEATS
    _timeline: List[StrumStrike] = field(default_factory=list, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.strum is not None:
            self._timeline.extend(strum_timeline(self.strum, self.stroke_gap))

    @property
    def strategy(self) -> VoicingStrategy:
        # Strumming always voices the full triad
        if self.strum is not None:
            return VoicingStrategy.CSHAPE_1351
        return MODE_STRATEGY.get(self.mode, VoicingStrategy.DEFAULT)

    def has_path(self) -> bool:
        return bool(progression_path(self.frame, self.progression))

    def shape_for_chord(self, chord_index: int) -> Optional[ChordShape]:
        if not self.progression:
            return None
        token = self.progression[chord_index % len(self.progression)]
        return resolve_shape(self.frame, token, self.strategy)

    def strikes_in_beat(self, beat_in_chord: int) -> List[StrumStrike]:
        return [s for s in self._timeline if beat_in_chord <= s.time < beat_in_chord + 1]


def _riff_events(ctx: PlanContext, shape: ChordShape, beat_in_chord: int) -> List[NoteEvent]:
    out: List[NoteEvent] = []
    for note in ctx.riff:
        if note.beat == beat_in_chord:
            cell = ctx.frame.fret_offset(shape.root, note.fx, note.fy)
            out.append(NoteEvent(cell=cell, delay=0.0, duration=1.0))
    return out


def _strum_events(ctx: PlanContext, shape: ChordShape, beat_in_chord: int) -> List[NoteEvent]:
    out: List[NoteEvent] = []
    for s in ctx.strikes_in_beat(beat_in_chord):
        cell = shape.cell(s.role) if s.role else None
        out.append(NoteEvent(cell=cell, delay=s.time - beat_in_chord, duration=s.duration))
    return out


def _bass_events(ctx: PlanContext, shape: ChordShape, beat_in_chord: int) -> List[NoteEvent]:
    step = bass_run_steps(ctx.mode)[beat_in_chord]
    if step.role is None:
        return []
    return [NoteEvent(cell=shape.cell(step.role), delay=0.0, duration=float(step.duration), sustain_hold=step.duration > 1)]


def build_beat_plan(ctx: PlanContext, beat_index: int) -> BeatPlan:
    chord_index = beat_index // BEATS_PER_CHORD
    beat_in_chord = beat_index % BEATS_PER_CHORD
    shape = ctx.shape_for_chord(chord_index)
    if shape is None:
        return BeatPlan(beat_index=beat_index, chord_index=chord_index, beat_in_chord=beat_in_chord)

    # A source that leaves this beat empty hands it to the next one
    events: List[NoteEvent] = []
    if ctx.riff:
        events = _riff_events(ctx, shape, beat_in_chord)
    if not events and ctx.strum is not None:
        events = _strum_events(ctx, shape, beat_in_chord)
    if not events:
        events = _bass_events(ctx, shape, beat_in_chord)

    cells: List[Point] = []
    for ev in events:
        if ev.cell is not None and ev.cell not in cells:
            cells.append(ev.cell)

    if cells:
        anchor: Optional[Point] = cells[0]
    else:
        upcoming = ctx.shape_for_chord((beat_index + 1) // BEATS_PER_CHORD)
        anchor = upcoming.root if upcoming is not None else shape.root

    return BeatPlan(
        beat_index=beat_index,
        chord_index=chord_index,
        beat_in_chord=beat_in_chord,
        note_cells=tuple(cells),
        note_events=tuple(events),
        anchor_cell=anchor,
        shape=shape,
    )
