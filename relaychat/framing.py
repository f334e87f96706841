"""
framing.py - tiny JSON framing for WebSocket text frames.

Protocol (simple on purpose):
- Each event = one WebSocket text frame holding one compact UTF-8 JSON object.
- Hard cap at 64 KiB so a buggy peer can't make us parse silly amounts of text.
- Keys/values are whatever the event needs (see messages.py).
"""
import json
from typing import Any, Dict, Union

MAX_FRAME_SIZE = 64 * 1024  # 64 KiB hard limit


class FrameError(ValueError):
    """Raised when a frame is too large or is not valid UTF-8 JSON."""


def encode_frame(obj: Dict[str, Any]) -> str:
    """
    Serialize a dict to compact JSON, ready to go out as one text frame.

    Raises:
        FrameError: if the encoded frame is over MAX_FRAME_SIZE.
    """
    # Compact JSON: stable separators, keep non-ASCII as UTF-8 (not \u escapes).
    payload = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    if len(payload.encode("utf-8")) > MAX_FRAME_SIZE:
        raise FrameError("Frame exceeds maximum size")
    return payload


def decode_frame(data: Union[str, bytes]) -> Any:
    """
    Parse one inbound frame. Whatever JSON value it holds comes back as-is;
    deciding whether it's a usable event is messages.py's job.

    Raises:
        FrameError: if the frame is too big or the JSON is invalid.
    """
    raw = data.encode("utf-8") if isinstance(data, str) else data

    # Quick sanity check before handing it to the parser.
    if len(raw) > MAX_FRAME_SIZE:
        raise FrameError(f"Frame too large: {len(raw)} > {MAX_FRAME_SIZE}")

    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        # Keep the message short; no payload echo to avoid leaking big data.
        raise FrameError(f"Invalid JSON frame: {exc}") from exc


async def write_frame(connection, obj: Dict[str, Any]) -> None:
    """Encode a dict and send it as one text frame."""
    await connection.send(encode_frame(obj))
