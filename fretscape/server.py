from __future__ import annotations

import argparse
import asyncio
import json
import os
import signal
import time
import traceback
from typing import Any, Dict, Optional, Set, Tuple

from fretscape.board import Fretscape
from fretscape.clock import ThreadScheduler
from fretscape.datasets import KINDS, ValidationError, entries, find_by_id, load_dataset
from fretscape.drums import DrumEngine
from fretscape.lattice import Brick
from fretscape.tempo_map import DEFAULT_BPM
from fretscape.voices import MidoVoiceSink


PROTOCOL = 1
STATE_POLL_SEC = 0.02

Reply = Tuple[str, Dict[str, Any]]


def _msg(kind: str, payload: Optional[Dict[str, Any]] = None, req_id: Any = None) -> str:
    obj: Dict[str, Any] = {"type": kind, "ts": time.time()}
    if req_id is not None:
        obj["id"] = req_id
    if payload is not None:
        obj["payload"] = payload
    return json.dumps(obj)


def _ok(**extra: Any) -> Reply:
    return "ack", dict(ok=True, **extra)


def _fail(error: str, **extra: Any) -> Reply:
    return "error", dict(ok=False, error=error, **extra)


def _resolve(library: Dict[str, Any], kind: str, params: Dict[str, Any], inline_key: str) -> Tuple[bool, Any]:
    """Pick an inline pattern or a dataset entry by id. (False, None) if the id is unknown."""
    if inline_key in params:
        return True, params
    ident = params.get("id")
    if ident is None:
        return True, None
    found = find_by_id(entries(library.get(kind), kind), ident)
    return found is not None, found


def handle_command(board: Fretscape, obj: Dict[str, Any], library: Optional[Dict[str, Any]] = None) -> Reply:
    """Apply one client command. Caller holds board.scheduler.lock."""
    library = library or {}
    t = obj.get("type")
    params = obj.get("payload") if isinstance(obj.get("payload"), dict) else obj

    if t == "play":
        if board.is_progression_playback_active():
            return _ok(playing=True)
        if not board.start_progression_playback():
            return _fail("no_progression_path")
        return _ok(playing=True)
    if t == "stop":
        board.stop_progression_playback()
        return _ok(playing=False)
    if t == "setBpm":
        return _ok(bpm=board.set_progression_bpm(params.get("bpm")))
    if t == "setMode":
        if not board.set_progression_playback_mode(str(params.get("mode", ""))):
            return _fail("unknown_mode")
        return _ok(mode=board.mode)
    if t == "setKey":
        if not board.set_key(str(params.get("key", ""))):
            return _fail("unknown_key")
        return _ok(key=board.key)
    if t == "setStrum":
        found, pattern = _resolve(library, "strums", params, "beats")
        if not found:
            return _fail("unknown_id", id=params.get("id"))
        board.set_strum_pattern(pattern)
        return _ok()
    if t == "setRiff":
        found, pattern = _resolve(library, "riffs", params, "notes")
        if not found:
            return _fail("unknown_id", id=params.get("id"))
        board.set_riff_pattern(pattern)
        return _ok()
    if t == "setDrumPattern":
        if board.drums is None:
            return _fail("no_drum_engine")
        board.drums.set_selected_pattern(params.get("id"))
        return _ok(selected=board.drums.selected_pattern)
    if t == "setLeftHanded":
        board.set_left_handed(bool(params.get("value")))
        return _ok()
    if t == "setVerticalMirrored":
        board.set_vertical_mirrored(bool(params.get("value")))
        return _ok()
    if t == "setDragConstraint":
        board.set_drag_constraint_slope(str(params.get("slope", "2x2")) == "5x1")
        return _ok()
    if t == "applyProgression":
        found, progression = _resolve(library, "progressions", params, "degrees")
        if not found or progression is None:
            return _fail("unknown_id", id=params.get("id"))
        return _ok(hasPath=board.apply_chord_progression(progression))
    if t == "addBrick":
        try:
            x = float(params.get("x", 0))
            y = float(params.get("y", 0))
        except (TypeError, ValueError):
            return _fail("invalid_position")
        board.add_brick(Brick(), x, y)
        return _ok(count=len(board.placements))
    if t == "clearBricks":
        board.clear_bricks()
        return _ok(count=0)
    return _fail("unknown_type", type=t)


async def serve_ws(board: Fretscape, host: str, port: int, library: Optional[Dict[str, Any]] = None):
    try:
        import websockets  # type: ignore
    except Exception:
        print("[ws] websockets not installed; cannot start Fretscape WS")
        return

    clients: Set[Any] = set()
    lock = board.scheduler.lock

    def snapshot() -> Dict[str, Any]:
        with lock:
            return board.get_state()

    async def broadcast(obj_text: str):
        if not clients:
            return
        await asyncio.gather(*[c.send(obj_text) for c in list(clients)], return_exceptions=True)

    async def state_task():
        # Push state on every playback change and once per beat
        last: Optional[Tuple[str, int]] = None
        while True:
            await asyncio.sleep(STATE_POLL_SEC)
            try:
                state = snapshot()
                key = (state["transport"], state["beatIndex"])
                if key != last:
                    last = key
                    await broadcast(_msg("state", state))
            except Exception:
                traceback.print_exc()

    async def handler(ws, *maybe_path):
        try:
            ra = getattr(ws, "remote_address", None)
            print(f"[ws] client connected: {ra}", flush=True)
        except Exception:
            pass
        clients.add(ws)
        await ws.send(_msg("hello", {"protocol": PROTOCOL, "datasets": sorted(library or {})}))
        await ws.send(_msg("state", snapshot()))
        try:
            async for message in ws:
                try:
                    obj = json.loads(message)
                except Exception:
                    continue
                if not isinstance(obj, dict):
                    continue
                t = obj.get("type")
                req_id = obj.get("id")
                print(f"[ws] recv type={t}", flush=True)
                if t == "ping":
                    await ws.send(_msg("pong", req_id=req_id))
                    continue
                if t == "getState":
                    await ws.send(_msg("state", snapshot(), req_id=req_id))
                    continue
                try:
                    with lock:
                        kind, payload = handle_command(board, obj, library)
                except Exception as e:
                    traceback.print_exc()
                    kind, payload = "error", {"ok": False, "error": "exception", "details": str(e)}
                await ws.send(_msg(kind, payload, req_id=req_id))
                await ws.send(_msg("state", snapshot()))
        finally:
            clients.discard(ws)

    async with websockets.serve(handler, host, port):
        print(f"[ws] Fretscape listening on ws://{host}:{port}", flush=True)
        poller = asyncio.create_task(state_task())
        try:
            await asyncio.Future()
        finally:
            poller.cancel()


def load_library(paths: Dict[str, Optional[str]]) -> Dict[str, Any]:
    library: Dict[str, Any] = {}
    for kind, path in paths.items():
        if not path:
            continue
        try:
            library[kind] = load_dataset(path, kind)
        except ValidationError as e:
            print(f"[ws] skipping invalid {kind} dataset {path}:", flush=True)
            for err in e.errors:
                print(f" - {err}", flush=True)
            continue
        print(f"[ws] loaded {len(entries(library.get(kind), kind))} {kind} from {path}", flush=True)
    return library


def build_board(port_filter: Optional[str], bpm: float, mode: str, key: str, drumbeats: Any = None) -> Fretscape:
    sink = MidoVoiceSink(port_filter)
    drums = DrumEngine(sink)
    if drumbeats is not None:
        drums.set_drumbeats(drumbeats)
    board = Fretscape(scheduler=ThreadScheduler(), voice_sink=sink, drum_engine=drums, key=key, bpm=int(bpm))
    board.set_progression_playback_mode(mode)
    board.add_brick(Brick(), 10, 6)
    return board


def main():
    ap = argparse.ArgumentParser(description="Fretscape WS server (state + transport control)")
    ap.add_argument("--port", help="Substring to match MIDI port")
    ap.add_argument("--bpm", type=float, default=float(DEFAULT_BPM))
    ap.add_argument("--mode", default="root")
    ap.add_argument("--key", default="A")
    ap.add_argument("--ws-host", default="127.0.0.1")
    ap.add_argument("--ws-port", type=int, default=8765)
    for kind in KINDS:
        ap.add_argument(f"--{kind}", help=f"Path to {kind} dataset JSON")
    args = ap.parse_args()

    library = load_library({kind: getattr(args, kind) for kind in KINDS})
    board = build_board(args.port, args.bpm, args.mode, args.key, library.get("drumbeats"))

    def shutdown(*_):
        try:
            with board.scheduler.lock:
                board.stop_progression_playback()
        except Exception:
            pass
        print("[ws] shutting down")
        os._exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        asyncio.run(serve_ws(board, args.ws_host, args.ws_port, library))
    except KeyboardInterrupt:
        shutdown()


if __name__ == "__main__":
    main()
