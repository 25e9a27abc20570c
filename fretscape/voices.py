from __future__ import annotations

import threading
from typing import List, Optional, Tuple

from fretscape.theory import key_to_pc


# C3; semitone offsets are relative to the key's tonic in this octave
BASE_PITCH = 48
TONE_CHANNEL = 0
DRUM_CHANNEL = 9
DEFAULT_VELOCITY = 100
GATE_RATIO = 0.9


class VoiceSink:
    """Abstract voice output: a note sounding from delay_sec for length_sec."""

    def voice(self, channel: int, pitch: int, velocity: int, delay_sec: float, length_sec: float) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def panic(self) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class VirtualVoiceSink(VoiceSink):
    """Captures voices for tests and demos.

    Records tuples (channel, pitch, velocity, delay_sec, length_sec).
    """

    def __init__(self) -> None:
        self.voices: List[Tuple[int, int, int, float, float]] = []
        self.panics = 0

    def voice(self, channel: int, pitch: int, velocity: int, delay_sec: float, length_sec: float) -> None:
        self.voices.append((int(channel), int(pitch), int(velocity), float(delay_sec), float(length_sec)))

    def panic(self) -> None:
        self.panics += 1

    def pitches(self, channel: Optional[int] = None) -> List[int]:
        return [v[1] for v in self.voices if channel is None or v[0] == channel]


def open_mido_output(name_filter: Optional[str] = None):
    """Open a Mido output port with safe fallbacks.

    - If mido/rtmidi are unavailable or the system MIDI stack is inaccessible,
      return a dummy object exposing `.send()`.
    - If a specific port is requested but not found, also fall back to dummy.
    Dummy outputs carry `dummy = True` so callers can report silence once.
    """
    def _dummy_out():
        class _DummyOut:
            dummy = True

            def send(self, *_args, **_kwargs):
                pass
        return _DummyOut()

    try:
        import mido
    except Exception:
        return _dummy_out()

    try:
        names = mido.get_output_names()
    except Exception:
        # Accessing system MIDI may raise in sandboxed environments
        return _dummy_out()
    if name_filter:
        names = [n for n in names if name_filter in n]
    if not names:
        return _dummy_out()
    try:
        return mido.open_output(names[0])
    except Exception:
        return _dummy_out()


class MidoVoiceSink(VoiceSink):
    """Voices as note_on/note_off pairs on a mido output.

    The port is opened on first use. A missing backend is detected once and
    every later voice is a silent no-op.
    """

    def __init__(self, port_filter: Optional[str] = None, out_port=None):
        self.port_filter = port_filter
        self.out = out_port
        self.unavailable = False
        self._send_lock = threading.Lock()

    def _get_out(self):
        if self.unavailable:
            return None
        if self.out is None:
            self.out = open_mido_output(self.port_filter)
            if getattr(self.out, "dummy", False):
                self.unavailable = True
                print(f"[midi] no output port matching {self.port_filter!r}; voices are silent", flush=True)
                return None
            print(f"[midi] opened {getattr(self.out, 'name', 'output')}", flush=True)
        return self.out

    def _send(self, kind: str, channel: int, pitch: int, velocity: int) -> None:
        import mido

        out = self._get_out()
        if out is None:
            return
        with self._send_lock:
            try:
                out.send(mido.Message(kind, note=int(pitch), velocity=int(velocity), channel=int(channel)))
            except Exception:
                pass

    def _at(self, delay_sec: float, fn, *args) -> None:
        if delay_sec <= 0:
            fn(*args)
            return
        t = threading.Timer(delay_sec, fn, args=args)
        t.daemon = True
        t.start()

    def voice(self, channel: int, pitch: int, velocity: int, delay_sec: float, length_sec: float) -> None:
        if self._get_out() is None:
            return
        delay = max(0.0, float(delay_sec))
        self._at(delay, self._send, "note_on", channel, pitch, velocity)
        self._at(delay + max(0.0, float(length_sec)), self._send, "note_off", channel, pitch, 0)

    def panic(self) -> None:
        import mido

        out = self._get_out()
        if out is None:
            return
        with self._send_lock:
            # Send All Notes Off across all channels
            for ch in range(16):
                # Sustain off
                out.send(mido.Message("control_change", control=64, value=0, channel=ch))
                # All Sound Off (120) then All Notes Off (123)
                out.send(mido.Message("control_change", control=120, value=0, channel=ch))
                out.send(mido.Message("control_change", control=123, value=0, channel=ch))


class ToneSynth:
    """Pitched voice: semitone offsets from the key tonic to MIDI notes."""

    def __init__(self, sink: VoiceSink, channel: int = TONE_CHANNEL, key: str = "A", velocity: int = DEFAULT_VELOCITY):
        self.sink = sink
        self.channel = channel
        self.velocity = velocity
        self.key_pc = key_to_pc(key) or 0

    def set_key(self, key: str) -> bool:
        pc = key_to_pc(key)
        if pc is None:
            return False
        self.key_pc = pc
        return True

    def pitch_for(self, semitone_offset: int) -> int:
        return max(0, min(127, BASE_PITCH + self.key_pc + int(semitone_offset)))

    def play_note(self, semitone_offset: int, delay_sec: float = 0.0, duration_sec: float = 0.5, sustain_hold: bool = False) -> None:
        # Held notes ring for their whole span; others leave a short gap
        gate = duration_sec if sustain_hold else duration_sec * GATE_RATIO
        try:
            self.sink.voice(self.channel, self.pitch_for(semitone_offset), self.velocity, delay_sec, gate)
        except Exception:
            pass
