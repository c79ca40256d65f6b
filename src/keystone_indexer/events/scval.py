"""Decode Soroban ScVals in their JSON form into native Python values.

Soroban RPC returns topics and values as XDR; with ``xdrFormat: "json"``
each ScVal becomes a single-key object such as ``{"symbol": "RoleGrant"}``,
``{"address": "GABC..."}``, ``{"u64": "1700000000"}`` or
``{"vec": [...]}``. Values that are already native pass through unchanged.
"""

from typing import Any

from ..exceptions import EventDecodeError

_STRING_KEYS = frozenset({"symbol", "string", "address", "sym", "str"})
_INTEGER_KEYS = frozenset(
    {"u32", "i32", "u64", "i64", "u128", "i128", "u256", "i256", "timepoint", "duration"}
)


def to_native(value: Any) -> Any:
    """Convert one ScVal to str / int / bool / list / dict / None.

    Raises:
        EventDecodeError: If *value* is an object that is not a recognised
            ScVal shape.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [to_native(item) for item in value]
    if not isinstance(value, dict):
        raise EventDecodeError(f"unsupported ScVal type {type(value).__name__}", value)

    if len(value) != 1:
        raise EventDecodeError("ScVal object must have exactly one key", value)

    key, inner = next(iter(value.items()))

    if key in _STRING_KEYS:
        return str(inner)
    if key in _INTEGER_KEYS:
        return _to_int(inner, key)
    if key == "bool":
        if not isinstance(inner, bool):
            raise EventDecodeError("bool ScVal must hold true/false", value)
        return inner
    if key == "void":
        return None
    if key == "bytes":
        return str(inner)
    if key == "vec":
        if inner is None:
            return []
        if not isinstance(inner, list):
            raise EventDecodeError("vec ScVal must hold a list", value)
        return [to_native(item) for item in inner]
    if key == "map":
        return _map_to_native(inner)

    raise EventDecodeError(f"unknown ScVal kind '{key}'", value)


def _to_int(inner: Any, kind: str) -> int:
    # 128/256-bit values may come as {"hi": .., "lo": ..} parts
    if isinstance(inner, dict) and "hi" in inner and "lo" in inner:
        return (int(inner["hi"]) << 64) + int(inner["lo"])
    if isinstance(inner, bool):
        raise EventDecodeError(f"{kind} ScVal holds a boolean", inner)
    try:
        return int(inner)
    except (TypeError, ValueError):
        raise EventDecodeError(f"{kind} ScVal is not an integer", inner)


def _map_to_native(inner: Any) -> dict[Any, Any]:
    if inner is None:
        return {}
    if not isinstance(inner, list):
        raise EventDecodeError("map ScVal must hold a list of entries", inner)
    result: dict[Any, Any] = {}
    for entry in inner:
        if not isinstance(entry, dict) or "key" not in entry or "val" not in entry:
            raise EventDecodeError("map entry must have key and val", entry)
        result[to_native(entry["key"])] = to_native(entry["val"])
    return result
