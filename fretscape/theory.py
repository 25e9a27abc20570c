from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union


MAJOR_SCALE = (0, 2, 4, 5, 7, 9, 11)
# Diatonic third above each scale degree: 4 = major, 3 = minor/diminished
THIRD_BY_DEGREE = (4, 3, 3, 4, 4, 3, 3)

ROMAN_TO_INDEX = {"I": 0, "II": 1, "III": 2, "IV": 3, "V": 4, "VI": 5, "VII": 6}

_DEGREE_RE = re.compile(r"^([#b]*)((?i:VII|VI|V|IV|III|II|I))(.*)$")
_QUALITY_RE = re.compile(r"^(?:maj7|M7|m7|m|6|7|9|dim7?|°7?|o7?|ø7?|aug|\+|sus[24])?$")
_LABEL_RE = re.compile(r"^([#b]*)([1-7])$")


@dataclass(frozen=True)
class DegreeToken:
    text: str
    index: int  # 0..6
    accidental: int  # net semitones from leading #/b
    minor_case: bool
    quality: str = ""

    @property
    def semitone(self) -> int:
        return (MAJOR_SCALE[self.index] + self.accidental) % 12

    @property
    def third_interval(self) -> int:
        return THIRD_BY_DEGREE[self.index]

    @property
    def third_semitone(self) -> int:
        return (self.semitone + self.third_interval) % 12


def _accidental(run: str) -> int:
    return sum(1 if ch == "#" else -1 for ch in run)


def parse_degree(text: object) -> Optional[DegreeToken]:
    """Parse a roman-numeral degree like 'bVII', 'vi' or 'V7'. None if malformed."""
    if not isinstance(text, str):
        return None
    s = text.strip()
    m = _DEGREE_RE.match(s)
    if not m:
        return None
    run, numeral, quality = m.group(1), m.group(2), m.group(3)
    if not (numeral.isupper() or numeral.islower()):
        return None
    if not _QUALITY_RE.match(quality):
        return None
    return DegreeToken(
        text=s,
        index=ROMAN_TO_INDEX[numeral.upper()],
        accidental=_accidental(run),
        minor_case=numeral.islower(),
        quality=quality,
    )


def parse_degrees(items: Iterable[object]) -> List[DegreeToken]:
    """Parse a progression, skipping malformed tokens."""
    out: List[DegreeToken] = []
    for item in items or []:
        tok = parse_degree(item)
        if tok is not None:
            out.append(tok)
    return out


def _as_token(token: Union[str, DegreeToken]) -> Optional[DegreeToken]:
    return token if isinstance(token, DegreeToken) else parse_degree(token)


def degree_to_semitone(token: Union[str, DegreeToken]) -> Optional[int]:
    tok = _as_token(token)
    return tok.semitone if tok else None


def third_semitone_for_degree(token: Union[str, DegreeToken]) -> Optional[int]:
    tok = _as_token(token)
    return tok.third_semitone if tok else None


def label_to_semitone(label: object) -> Optional[int]:
    """Semitone of a cell label such as '1', 'b3' or '#4'."""
    if not isinstance(label, str):
        return None
    m = _LABEL_RE.match(label.strip())
    if not m:
        return None
    return (MAJOR_SCALE[int(m.group(2)) - 1] + _accidental(m.group(1))) % 12


def key_to_pc(key: str) -> int | None:
    if not isinstance(key, str) or len(key) < 1:
        return None
    k = key.strip()
    if not k:
        return None
    letter = k[0].upper()
    if letter not in "CDEFGAB":
        return None
    accidental = 0
    if len(k) >= 2 and k[1] in ("#", "b"):
        accidental = 1 if k[1] == "#" else -1
    base = {"C": 0, "D": 2, "E": 4, "F": 5, "G": 7, "A": 9, "B": 11}[letter]
    return (base + accidental) % 12
