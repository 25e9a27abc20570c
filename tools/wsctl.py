from __future__ import annotations

import argparse
import asyncio
import json


def build_command(cmd: str, args: argparse.Namespace) -> dict:
    if cmd == "play":
        return {"type": "play"}
    if cmd == "stop":
        return {"type": "stop"}
    if cmd == "bpm":
        return {"type": "setBpm", "payload": {"bpm": float(args.bpm)}}
    if cmd == "mode":
        return {"type": "setMode", "payload": {"mode": args.mode}}
    if cmd == "key":
        return {"type": "setKey", "payload": {"key": args.key}}
    if cmd == "progression":
        if args.id:
            return {"type": "applyProgression", "payload": {"id": args.id}}
        return {"type": "applyProgression", "payload": {"degrees": [d.strip() for d in args.degrees.split(",")]}}
    if cmd == "strum":
        if args.off:
            return {"type": "setStrum", "payload": {"id": None}}
        if args.id:
            return {"type": "setStrum", "payload": {"id": args.id}}
        return {"type": "setStrum", "payload": {"beats": [b.strip() for b in args.beats.split(",")]}}
    if cmd == "brick":
        return {"type": "addBrick", "payload": {"x": float(args.x), "y": float(args.y)}}
    return {"type": "getState"}


async def run(url: str, cmd: str, args: argparse.Namespace):
    import websockets  # type: ignore

    async with websockets.connect(url) as ws:
        # Read initial hello/state
        for _ in range(2):
            await ws.recv()
        await ws.send(json.dumps(dict(build_command(cmd, args), id=1)))
        # Print next few messages
        for _ in range(3):
            try:
                msg = await asyncio.wait_for(ws.recv(), timeout=2.0)
                print(msg)
            except asyncio.TimeoutError:
                break


def main():
    ap = argparse.ArgumentParser(description="Simple WS controller for the Fretscape server")
    ap.add_argument("--url", default="ws://127.0.0.1:8765")
    sub = ap.add_subparsers(dest="cmd", required=True)
    sub.add_parser("state")
    sub.add_parser("play")
    sub.add_parser("stop")
    p_bpm = sub.add_parser("bpm"); p_bpm.add_argument("--bpm", required=True)
    p_mode = sub.add_parser("mode"); p_mode.add_argument("--mode", required=True)
    p_key = sub.add_parser("key"); p_key.add_argument("--key", required=True)
    p_prog = sub.add_parser("progression"); p_prog.add_argument("--degrees", default="I,V,vi,IV"); p_prog.add_argument("--id")
    p_strum = sub.add_parser("strum"); p_strum.add_argument("--beats", default="d,du,d,du"); p_strum.add_argument("--id"); p_strum.add_argument("--off", action="store_true")
    p_brick = sub.add_parser("brick"); p_brick.add_argument("--x", required=True); p_brick.add_argument("--y", required=True)
    args = ap.parse_args()
    asyncio.run(run(args.url, args.cmd, args))


if __name__ == "__main__":
    main()
