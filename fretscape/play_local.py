from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from typing import List, Optional

from fretscape.datasets import ValidationError, entries, find_by_id, load_dataset
from fretscape.patterns import BASS_RUN_MODES, BEATS_PER_CHORD
from fretscape.server import build_board
from fretscape.tempo_map import DEFAULT_BPM


def _split(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [p.strip() for p in text.split(",")]


def _pick(path: Optional[str], kind: str, ident: Optional[str]):
    if not path:
        return None
    data = load_dataset(path, kind)
    items = entries(data, kind)
    if ident:
        found = find_by_id(items, ident)
        if found is None:
            raise SystemExit(f"error: no {kind} entry with id {ident!r} in {path}")
        return found
    return items[0] if items else None


def run(args: argparse.Namespace) -> int:
    drumbeats = load_dataset(args.drumbeats, "drumbeats") if args.drumbeats else None
    board = build_board(args.port, args.bpm, args.mode, args.key, drumbeats)
    if board.drums is not None and args.drum_pattern is not None:
        board.drums.set_selected_pattern(args.drum_pattern)

    progression = _pick(args.progressions, "progressions", args.id)
    degrees = _split(args.degrees) or (progression or {}).get("degrees", [])
    if args.strum:
        board.set_strum_pattern(_split(args.strum))
    elif args.strums:
        board.set_strum_pattern(_pick(args.strums, "strums", args.strum_id))
    if args.riff:
        board.set_riff_pattern(args.riff)
    elif args.riffs:
        board.set_riff_pattern(_pick(args.riffs, "riffs", args.riff_id))

    lock = board.scheduler.lock
    with lock:
        if not board.apply_chord_progression({"degrees": degrees}):
            print(f"[play] no playable chords in {degrees!r}", file=sys.stderr)
            return 1
        print(f"[play] key={board.key} bpm={board.bpm} mode={board.mode} chords={' '.join(t.text for t in board.progression)}", flush=True)

    total_beats: Optional[int] = None
    if args.loops and args.loops > 0:
        total_beats = args.loops * len(board.progression) * BEATS_PER_CHORD
    done = threading.Event()

    def on_beat(_frame):
        if total_beats is not None and board.transport.beat_index >= total_beats:
            done.set()

    board.on_render(on_beat)
    board.on_progression_playback_state_change(lambda playing: None if playing else done.set())

    def shutdown(*_):
        with lock:
            board.stop_progression_playback()
        board.voice_sink.panic()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    with lock:
        board.start_progression_playback()

    def metrics_printer():
        while not done.is_set():
            m = board.scheduler.get_metrics()
            print(f"[metrics] beat={board.transport.beat_index} jitter_p95={m.get('jitterMsP95', 0)}ms p99={m.get('jitterMsP99', 0)}ms", flush=True)
            time.sleep(1.0)

    if args.metrics:
        threading.Thread(target=metrics_printer, daemon=True).start()

    done.wait()
    with lock:
        board.stop_progression_playback()
    # Let the last voices ring out
    time.sleep(60.0 / board.bpm)
    print("[play] done", flush=True)
    return 0


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Play a chord progression over the Fretscape lattice via MIDI")
    ap.add_argument("--degrees", help="Comma-separated degrees, e.g. 'I,V,vi,IV'")
    ap.add_argument("--progressions", help="Path to progressions dataset JSON")
    ap.add_argument("--id", help="Progression id within the dataset (default: first)")
    ap.add_argument("--port", help="Substring to match MIDI port")
    ap.add_argument("--bpm", type=float, default=float(DEFAULT_BPM))
    ap.add_argument("--mode", choices=sorted(BASS_RUN_MODES), default="root")
    ap.add_argument("--key", default="A")
    ap.add_argument("--strum", help="Four comma-separated strum tokens, e.g. 'd,du,s,-'")
    ap.add_argument("--strums", help="Path to strums dataset JSON")
    ap.add_argument("--strum-id")
    ap.add_argument("--riff", action="append", help="Riff line '(y,x0x1x2x3)'; repeatable")
    ap.add_argument("--riffs", help="Path to riffs dataset JSON")
    ap.add_argument("--riff-id")
    ap.add_argument("--drumbeats", help="Path to drumbeats dataset JSON")
    ap.add_argument("--drum-pattern", help="Drum pattern id (default: first; '' disables)")
    ap.add_argument("--loops", type=int, default=1, help="Number of passes through the progression. 0 = infinite")
    ap.add_argument("--metrics", action="store_true", help="Print beat clock jitter once per second")
    args = ap.parse_args(argv)
    try:
        return run(args)
    except (FileNotFoundError, ValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
