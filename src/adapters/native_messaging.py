"""WebExtension native messaging framing.

Every message is a UTF-8 JSON object preceded by its length as a 32-bit
little-endian integer. stdout carries frames only; never log to it.
"""

from __future__ import annotations

import json
import logging
import struct
import sys
from typing import Any, BinaryIO, Optional

LOGGER = logging.getLogger(__name__)

MAX_FRAME_BYTES = 8_000_000


class MalformedFrame(ValueError):
    """A complete frame whose body is not a JSON object."""


def _read_exact(stream: BinaryIO, n: int) -> Optional[bytes]:
    buf = bytearray()
    while len(buf) < n:
        chunk = stream.read(n - len(buf))
        if not chunk:
            return None
        buf.extend(chunk)
    return bytes(buf)


def read_native_message(stream: Optional[BinaryIO] = None) -> Optional[dict[str, Any]]:
    """Read one frame.

    Returns None on end of stream or an invalid length, after which the stream
    cannot be resynchronised. Raises MalformedFrame when a whole frame was read
    but its body is not a UTF-8 JSON object.
    """

    stream = stream or sys.stdin.buffer
    header = _read_exact(stream, 4)
    if header is None:
        return None
    (length,) = struct.unpack("<I", header)
    if length <= 0 or length > MAX_FRAME_BYTES:
        LOGGER.warning("Invalid native frame length: %s", length)
        return None
    raw = _read_exact(stream, length)
    if raw is None:
        return None
    try:
        obj = json.loads(raw.decode("utf-8"))
    except ValueError as exc:
        raise MalformedFrame(f"Undecodable native message of {length} bytes") from exc
    if not isinstance(obj, dict):
        raise MalformedFrame(f"Native message is a {type(obj).__name__}, not an object")
    return obj


def write_native_message(msg: dict[str, Any], stream: Optional[BinaryIO] = None) -> None:
    stream = stream or sys.stdout.buffer
    raw = json.dumps(msg, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    stream.write(struct.pack("<I", len(raw)))
    stream.write(raw)
    stream.flush()
