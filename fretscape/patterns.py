from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fretscape.shapes import VoicingStrategy


BEATS_PER_CHORD = 4
STROKE_GAP_BEATS = 0.05

# Per-mode token for each beat of a chord
BASS_RUN_MODES: Dict[str, Tuple[str, str, str, str]] = {
    "root": ("root", "hold", "root", "hold"),
    "root5th": ("root", "fifth", "root", "fifth"),
    "arpeggio135": ("root", "third", "fifth", "third"),
    "eshape513": ("fifth", "root", "third", "root"),
    "cshape1351": ("root", "third", "fifth", "root"),
}
DEFAULT_MODE = "root"

MODE_STRATEGY: Dict[str, VoicingStrategy] = {
    "root": VoicingStrategy.DEFAULT,
    "root5th": VoicingStrategy.DEFAULT,
    "arpeggio135": VoicingStrategy.DEFAULT,
    "eshape513": VoicingStrategy.ESHAPE_513,
    "cshape1351": VoicingStrategy.CSHAPE_1351,
}

DOWN_ORDER = ("root", "third", "fifth")
UP_ORDER = ("fifth", "third", "root")


@dataclass(frozen=True)
class BassStep:
    role: Optional[str]  # root/third/fifth, or None for rest/hold
    duration: int = 1  # beats, including following holds


def bass_run_steps(mode: str) -> Tuple[BassStep, ...]:
    """Resolve a mode's tokens; a note absorbs the holds that follow it."""
    tokens = BASS_RUN_MODES.get(mode, BASS_RUN_MODES[DEFAULT_MODE])
    steps: List[BassStep] = []
    for i, tok in enumerate(tokens):
        if tok in ("rest", "hold"):
            steps.append(BassStep(role=None, duration=1))
            continue
        dur = 1
        for nxt in tokens[i + 1:]:
            if nxt != "hold":
                break
            dur += 1
        steps.append(BassStep(role=tok, duration=dur))
    return tuple(steps)


# --- Riffs ---
@dataclass(frozen=True)
class RiffNote:
    beat: int
    fx: int
    fy: int


_RIFF_RE = re.compile(r"^\(\s*([+-]?\d+)\s*,\s*([0-9-]{4})\s*\)$")


def parse_riff_line(text: object) -> List[RiffNote]:
    """'(y,x0x1x2x3)': one fretspace row, one x digit or '-' rest per beat."""
    if not isinstance(text, str):
        return []
    m = _RIFF_RE.match(text.strip())
    if not m:
        return []
    fy = int(m.group(1))
    out: List[RiffNote] = []
    for beat, ch in enumerate(m.group(2)):
        if ch == "-":
            continue
        out.append(RiffNote(beat=beat, fx=int(ch), fy=fy))
    return out


def parse_riff(pattern: Any) -> Tuple[RiffNote, ...]:
    """Accepts a riff dict with 'notes', a list of lines, or None."""
    if pattern is None:
        return ()
    lines = pattern.get("notes", []) if isinstance(pattern, dict) else pattern
    if isinstance(lines, str) or not isinstance(lines, (list, tuple)):
        return ()
    notes: List[RiffNote] = []
    for line in lines:
        notes.extend(parse_riff_line(line))
    notes.sort(key=lambda n: n.beat)
    return tuple(notes)


# --- Strums ---
STRUM_CHARS = set("dus-")


def parse_strum(pattern: Any) -> Optional[Tuple[str, str, str, str]]:
    """Accepts a strum dict with 'beats', a 4-item list, or None.

    A beat token with characters outside d/u/s/- contributes nothing.
    """
    if pattern is None:
        return None
    beats = pattern.get("beats") if isinstance(pattern, dict) else pattern
    if not isinstance(beats, (list, tuple)) or len(beats) != BEATS_PER_CHORD:
        return None
    out: List[str] = []
    for tok in beats:
        s = tok.strip().lower() if isinstance(tok, str) else ""
        out.append(s if s and set(s) <= STRUM_CHARS else "-")
    return out[0], out[1], out[2], out[3]


@dataclass(frozen=True)
class StrumStrike:
    time: float  # beats from bar start
    role: Optional[str]  # None for a slap
    duration: float


def strum_timeline(beats: Iterable[str], stroke_gap: float = STROKE_GAP_BEATS) -> List[StrumStrike]:
    """Expand beat tokens into individual string onsets across the bar.

    Each token is split into equal sub-steps. A stroke spreads its strings
    stroke_gap apart, compressed so the last string lands before the next
    action; notes ring until that next action.
    """
    actions: List[Tuple[float, str]] = []
    for b, tok in enumerate(beats):
        n = len(tok)
        for k, ch in enumerate(tok):
            if ch in "dus":
                actions.append((b + k / n, ch))
    strikes: List[StrumStrike] = []
    for i, (t, ch) in enumerate(actions):
        next_t = actions[i + 1][0] if i + 1 < len(actions) else float(BEATS_PER_CHORD)
        window = next_t - t
        if ch == "s":
            strikes.append(StrumStrike(time=t, role=None, duration=window))
            continue
        order = DOWN_ORDER if ch == "d" else UP_ORDER
        gap = min(stroke_gap, window / len(order))
        for j, role in enumerate(order):
            onset = t + j * gap
            strikes.append(StrumStrike(time=onset, role=role, duration=next_t - onset))
    return strikes
