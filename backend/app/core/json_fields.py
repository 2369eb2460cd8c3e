from __future__ import annotations

import json
from typing import Any


def dumps_compact(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def loads_dict(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("JSON payload must be an object")
    return data


def loads_list(raw: str | None) -> list[Any]:
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError:
        return []
    return data if isinstance(data, list) else []


def loads_int_list(raw: str | None) -> list[int]:
    values: list[int] = []
    for item in loads_list(raw):
        try:
            values.append(int(item))
        except (TypeError, ValueError):
            continue
    return values
