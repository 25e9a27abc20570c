from __future__ import annotations

import argparse
import json
import os
import re
import sys
from typing import Any, Callable, Dict, List, Optional

from fretscape.theory import parse_degree


KINDS = ("progressions", "riffs", "strums", "drumbeats")

_RIFF_LINE_RE = re.compile(r"^\(\s*[+-]?\d+\s*,\s*[0-9-]{4}\s*\)$")
_STRUM_TOKEN_RE = re.compile(r"^[dus-]+$")


class ValidationError(Exception):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def _err(errors: List[str], path: str, msg: str) -> None:
    errors.append(f"{path}: {msg}")


def _items(data: Any, kind: str) -> Optional[List[Any]]:
    """A dataset is a bare list or an object holding the list under its kind."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict) and isinstance(data.get(kind), list):
        return data[kind]
    return None


def _check_entry_header(errors: List[str], path: str, item: Any, seen: set) -> bool:
    if not isinstance(item, dict):
        _err(errors, path, "must be an object")
        return False
    ident = item.get("id")
    if not isinstance(ident, str) or not ident:
        _err(errors, f"{path}/id", "required non-empty string")
    elif ident in seen:
        _err(errors, f"{path}/id", f"duplicate id '{ident}'")
    else:
        seen.add(ident)
    if not isinstance(item.get("name"), str):
        _err(errors, f"{path}/name", "required string")
    return True


def validate_progressions(data: Any) -> List[str]:
    """Entries {id, name, degrees: ["I", "bVII", "vi", ...]}."""
    errors: List[str] = []
    items = _items(data, "progressions")
    if items is None:
        _err(errors, "/", "expected a list of progressions")
        return errors
    seen: set = set()
    for i, item in enumerate(items):
        path = f"/{i}"
        if not _check_entry_header(errors, path, item, seen):
            continue
        degrees = item.get("degrees")
        if not isinstance(degrees, list) or not degrees:
            _err(errors, f"{path}/degrees", "required non-empty array")
            continue
        for j, d in enumerate(degrees):
            if parse_degree(d) is None:
                _err(errors, f"{path}/degrees/{j}", f"unrecognized degree {d!r}")
    return errors


def validate_riffs(data: Any) -> List[str]:
    """Entries {id, name, notes: ["(y,x0x1x2x3)", ...]}."""
    errors: List[str] = []
    items = _items(data, "riffs")
    if items is None:
        _err(errors, "/", "expected a list of riffs")
        return errors
    seen: set = set()
    for i, item in enumerate(items):
        path = f"/{i}"
        if not _check_entry_header(errors, path, item, seen):
            continue
        notes = item.get("notes")
        if not isinstance(notes, list):
            _err(errors, f"{path}/notes", "required array")
            continue
        for j, line in enumerate(notes):
            if not isinstance(line, str) or not _RIFF_LINE_RE.match(line.strip()):
                _err(errors, f"{path}/notes/{j}", "must look like '(y,x0x1x2x3)' with digits or '-'")
    return errors


def validate_strums(data: Any) -> List[str]:
    """Entries {id, name, beats: [4 tokens of d/u/s/-]}."""
    errors: List[str] = []
    items = _items(data, "strums")
    if items is None:
        _err(errors, "/", "expected a list of strums")
        return errors
    seen: set = set()
    for i, item in enumerate(items):
        path = f"/{i}"
        if not _check_entry_header(errors, path, item, seen):
            continue
        beats = item.get("beats")
        if not isinstance(beats, list) or len(beats) != 4:
            _err(errors, f"{path}/beats", "required array of 4 tokens")
            continue
        for j, tok in enumerate(beats):
            if not isinstance(tok, str) or not _STRUM_TOKEN_RE.match(tok.strip().lower()):
                _err(errors, f"{path}/beats/{j}", "token must use only d, u, s or -")
    return errors


def validate_drumbeats(data: Any) -> List[str]:
    """Object {key: {letter: voice}, patterns: [{id, name, beats: [4 strings]}]}."""
    errors: List[str] = []
    if not isinstance(data, dict):
        _err(errors, "/", "expected an object with 'key' and 'patterns'")
        return errors
    key = data.get("key")
    if not isinstance(key, dict) or not all(isinstance(k, str) and isinstance(v, str) for k, v in key.items()):
        _err(errors, "/key", "string→string map required")
    patterns = data.get("patterns")
    if not isinstance(patterns, list):
        _err(errors, "/patterns", "required array")
        return errors
    seen: set = set()
    for i, item in enumerate(patterns):
        path = f"/patterns/{i}"
        if not _check_entry_header(errors, path, item, seen):
            continue
        beats = item.get("beats")
        if not isinstance(beats, list) or len(beats) != 4 or not all(isinstance(b, str) for b in beats):
            _err(errors, f"{path}/beats", "required array of 4 comma-joined strings")
    return errors


VALIDATORS: Dict[str, Callable[[Any], List[str]]] = {
    "progressions": validate_progressions,
    "riffs": validate_riffs,
    "strums": validate_strums,
    "drumbeats": validate_drumbeats,
}


def load_json(path: str) -> Any:
    if not os.path.exists(path):
        raise FileNotFoundError(f"dataset file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_dataset(path: str, kind: str) -> Any:
    """Load and validate one dataset file. Raises ValidationError when invalid."""
    data = load_json(path)
    errors = VALIDATORS[kind](data)
    if errors:
        raise ValidationError(errors)
    return data


def entries(data: Any, kind: str) -> List[Dict[str, Any]]:
    if kind == "drumbeats":
        return list(data.get("patterns", [])) if isinstance(data, dict) else []
    return list(_items(data, kind) or [])


def find_by_id(items: List[Dict[str, Any]], ident: Optional[str]) -> Optional[Dict[str, Any]]:
    if not ident:
        return None
    for item in items:
        if isinstance(item, dict) and item.get("id") == ident:
            return item
    return None


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Validate a Fretscape dataset JSON file")
    ap.add_argument("path", help="Path to dataset JSON file")
    ap.add_argument("--kind", choices=KINDS, required=True)
    args = ap.parse_args(argv)

    try:
        data = load_json(args.path)
    except Exception as e:
        print(f"error: failed to read {args.path}: {e}", file=sys.stderr)
        return 2

    errors = VALIDATORS[args.kind](data)
    if errors:
        print(f"invalid {args.kind}:")
        for e in errors:
            print(f" - {e}")
        return 1
    print(f"ok: {len(entries(data, args.kind))} {args.kind}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
