# mcastevents/core/codec.py
"""
Wire envelope for one event datagram.

Layout:
  [b"@" <origin digits> b":"]? <payload>

payload is the (optionally encrypted) MessagePack array
[event, arg1, arg2, ...].

The origin tag is detected by its leading b"@". An encrypted payload may
start with that byte too, in which case a payload that happens to look
like "@<digits>:..." is parsed as tagged. Plain MessagePack arrays never
start with b"@".

Tuples do not survive the trip: top-level and nested tuples decode as
lists. Map keys of any hashable MessagePack type (int, str, bytes, ...)
are accepted.
"""

from typing import Any, List, Optional, Tuple

import msgpack

from mcastevents.errors import FormatError

TAG_SENTINEL = b"@"
TAG_SEPARATOR = b":"


def encode(event: str, args=()) -> bytes:
    return msgpack.packb([event, *args], use_bin_type=True)


def decode(data: bytes) -> Tuple[str, List[Any]]:
    try:
        items = msgpack.unpackb(data, raw=False, strict_map_key=False)
    except Exception as exc:
        raise FormatError(f"malformed payload: {exc}") from exc

    if not isinstance(items, list) or not items:
        raise FormatError("payload is not a non-empty array")

    event, *args = items
    if not isinstance(event, str):
        raise FormatError(f"event name must be a string, got {type(event).__name__}")

    return event, args


def tag_origin(data: bytes, origin: int) -> bytes:
    return TAG_SENTINEL + str(int(origin)).encode("ascii") + TAG_SEPARATOR + data


def untag_origin(data: bytes) -> Tuple[Optional[int], bytes]:
    if not data.startswith(TAG_SENTINEL):
        return None, data

    idx = data.find(TAG_SEPARATOR)
    if idx <= 1:
        return None, data

    digits = data[1:idx]
    if not digits.isdigit():
        return None, data

    return int(digits), data[idx + 1:]
