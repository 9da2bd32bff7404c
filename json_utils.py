"""
orjson-backed JSON helpers for imgpaste
=======================================

Thin wrappers used to write the media changelog with orjson.
"""

from typing import Any

import orjson


def dumps(obj: Any, sort_keys: bool = False) -> str:
    """
    Serialize obj to a compact JSON string.

    Args:
        obj: Object to serialize
        sort_keys: Emit object keys in sorted order

    Returns:
        JSON string (orjson produces bytes, decoded here as UTF-8)
    """
    option = orjson.OPT_SERIALIZE_UUID
    if sort_keys:
        option |= orjson.OPT_SORT_KEYS
    return orjson.dumps(obj, option=option).decode("utf-8")


def dump_line(obj: Any, fp) -> None:
    """Append obj to a JSON-lines file as a single compact line."""
    fp.write(dumps(obj, sort_keys=True))
    fp.write("\n")
