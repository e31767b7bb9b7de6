"""Binary framing shared by the state file and the unlock protocol.

Frame format:
    4 bytes: magic identifying the payload kind
    2 bytes: schema version (big-endian uint16)
    4 bytes: payload length (big-endian uint32)
    N bytes: JSON payload (UTF-8)
"""

import json
import struct
from datetime import datetime
from typing import Any, Optional

HEADER = struct.Struct("!4sHI")
SCHEMA_VERSION = 1
MAX_PAYLOAD_SIZE = 1024 * 1024


def pack_frame(magic: bytes, obj: Any) -> bytes:
    """Serialize obj as JSON behind a framing header."""
    payload = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return HEADER.pack(magic, SCHEMA_VERSION, len(payload)) + payload


def unpack_frame(magic: bytes, data: bytes) -> Any:
    """Validate the framing header and decode the JSON payload.

    Raises:
        ValueError: on a short frame, wrong magic, version or length,
            or a payload that is not valid UTF-8 JSON
    """
    if len(data) < HEADER.size:
        raise ValueError(f"Frame too short ({len(data)} bytes)")

    found_magic, version, length = HEADER.unpack_from(data)
    if found_magic != magic:
        raise ValueError(f"Unexpected magic {found_magic!r}")
    if version != SCHEMA_VERSION:
        raise ValueError(f"Unsupported schema version {version}")
    if length > MAX_PAYLOAD_SIZE:
        raise ValueError(f"Payload size {length} exceeds limit {MAX_PAYLOAD_SIZE}")

    payload = data[HEADER.size:]
    if len(payload) != length:
        raise ValueError(f"Payload length mismatch: header says {length}, got {len(payload)}")

    # UnicodeDecodeError and JSONDecodeError are both ValueErrors
    return json.loads(payload.decode("utf-8"))


def encode_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def decode_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO timestamp, got {value!r}")
    return datetime.fromisoformat(value)
