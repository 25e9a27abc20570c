from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from fretscape.voices import MidoVoiceSink


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Silence every Fretscape voice still ringing on a MIDI output")
    ap.add_argument("--port", help="Substring to match MIDI port, as given to the server or player (default: first available)")
    args = ap.parse_args(argv)
    # Same lazy port lookup the board uses for its voices
    sink = MidoVoiceSink(args.port)
    sink.panic()
    if sink.unavailable:
        print("[panic] no MIDI output to silence", file=sys.stderr)
        return 1
    print(f"[panic] sustain off, all sound off, all notes off on 16 channels of {getattr(sink.out, 'name', 'output')}", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
