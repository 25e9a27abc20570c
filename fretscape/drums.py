from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from fretscape.voices import DRUM_CHANNEL, VoiceSink


# General MIDI percussion notes and one-shot lengths (seconds)
DRUM_VOICES: Dict[str, tuple] = {
    "kick": (36, 0.18),
    "snare": (38, 0.15),
    "hat": (42, 0.06),
    "ding": (53, 0.26),
    "click": (37, 0.04),
    "slap": (39, 0.08),
}

DRUM_ALIASES = {"hh": "hat", "ch": "hat", "bd": "kick", "sd": "snare"}

DRUM_VELOCITY = {"kick": 115, "snare": 105, "hat": 80, "ding": 90, "click": 70, "slap": 100}


def parse_beat_tokens(beat: Any) -> List[str]:
    """Comma-separated drum letters, whitespace ignored, empty parts dropped."""
    if not isinstance(beat, str):
        return []
    normalized = re.sub(r"\s+", "", beat)
    return [p for p in normalized.split(",") if p]


class DrumEngine:
    """Plays one beat of the selected drum pattern at a time.

    Dataset shape: {"key": {letter: voice}, "patterns": [{id, name, beats: [4]}]}.
    """

    def __init__(self, sink: VoiceSink, channel: int = DRUM_CHANNEL):
        self.sink = sink
        self.channel = channel
        self._drum_key: Dict[str, str] = {}
        self._patterns: List[Dict[str, Any]] = []
        self._pattern_by_id: Dict[str, Dict[str, Any]] = {}
        self._selected_id = ""
        self.beats_played = 0

    def set_drumbeats(self, drumbeats: Optional[Dict[str, Any]]) -> None:
        drumbeats = drumbeats if isinstance(drumbeats, dict) else {}
        key_map = drumbeats.get("key") or {}
        patterns = drumbeats.get("patterns") or []
        self._drum_key = {}
        if isinstance(key_map, dict):
            for k, v in key_map.items():
                self._drum_key[str(k)] = str(v or "").strip().lower()
        self._patterns = []
        self._pattern_by_id = {}
        for p in patterns if isinstance(patterns, list) else []:
            if not isinstance(p, dict):
                continue
            beats = p.get("beats")
            if not isinstance(p.get("id"), str) or not isinstance(p.get("name"), str):
                continue
            if not isinstance(beats, list) or len(beats) != 4:
                continue
            normalized = {"id": p["id"], "name": p["name"], "beats": [str(b or "") for b in beats]}
            self._patterns.append(normalized)
            self._pattern_by_id[normalized["id"]] = normalized
        if not self._selected_id or self._selected_id not in self._pattern_by_id:
            self._selected_id = self._patterns[0]["id"] if self._patterns else ""

    def get_patterns(self) -> List[Dict[str, str]]:
        return [{"id": p["id"], "name": p["name"]} for p in self._patterns]

    def set_selected_pattern(self, pattern_id: Optional[str]) -> None:
        """Select a pattern by id. An empty or unknown id disables drums."""
        if not pattern_id or pattern_id not in self._pattern_by_id:
            self._selected_id = ""
            return
        self._selected_id = pattern_id

    @property
    def selected_pattern(self) -> str:
        return self._selected_id

    def has_selected_pattern(self) -> bool:
        return bool(self._selected_id) and self._selected_id in self._pattern_by_id

    def reset(self) -> None:
        self.beats_played = 0

    def stop(self) -> None:
        # One-shot voices decay on their own
        pass

    def voice_for(self, letter: str) -> str:
        name = self._drum_key.get(letter, letter).strip().lower()
        return DRUM_ALIASES.get(name, name)

    def play_beat(self, beat_index: int) -> None:
        if not self.has_selected_pattern():
            return
        pattern = self._pattern_by_id[self._selected_id]
        tokens = parse_beat_tokens(pattern["beats"][beat_index % 4])
        self.beats_played += 1
        for letter in tokens:
            self.trigger(self.voice_for(letter))

    def trigger(self, name: str, delay_sec: float = 0.0) -> bool:
        """Sound one voice by name. Unknown names are ignored."""
        name = DRUM_ALIASES.get(name, name)
        spec = DRUM_VOICES.get(name)
        if spec is None:
            return False
        note, length = spec
        try:
            self.sink.voice(self.channel, note, DRUM_VELOCITY.get(name, 100), delay_sec, length)
        except Exception:
            return False
        return True
