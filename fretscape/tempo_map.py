from __future__ import annotations

MIN_BPM = 60
MAX_BPM = 200
DEFAULT_BPM = 100


def clamp_bpm(bpm: object, current: int = DEFAULT_BPM) -> int:
    """Clamp requested BPM into 60..200. Non-numeric input keeps current."""
    try:
        b = float(bpm)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return int(current)
    if b != b:  # NaN
        return int(current)
    return int(round(max(MIN_BPM, min(MAX_BPM, b))))


def beat_period_ms(bpm: float) -> float:
    return 60000.0 / float(bpm)


def beats_to_seconds(beats: float, bpm: float) -> float:
    return float(beats) * 60.0 / float(bpm)
