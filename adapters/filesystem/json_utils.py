from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import orjson

from domain.errors import SchemaError


def parse_json_text(text: str | bytes, source: str = "<input>") -> dict[str, Any]:
    try:
        data = orjson.loads(text)
    except orjson.JSONDecodeError as exc:
        msg = f"{source}: invalid JSON ({exc})"
        raise SchemaError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{source}: expected a JSON object, got {type(data).__name__}"
        raise SchemaError(msg)
    return data


def load_json(path: Path) -> dict[str, Any]:
    return parse_json_text(path.read_bytes(), str(path))


def dump_json_bytes(payload: Any) -> bytes:
    try:
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2)
    except TypeError:
        return json.dumps(payload, ensure_ascii=True, indent=2).encode("utf-8")


def write_bytes_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_bytes(content)
    tmp_path.replace(path)


def write_json_atomic(path: Path, payload: Any) -> None:
    write_bytes_atomic(path, dump_json_bytes(payload))
