"""Persistent access state.

The state file holds the lock flags and last transition timestamps of every
entry, framed by hostgate.codec. A missing, unreadable or outdated file loads
as empty state rather than failing startup.
"""

import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from hostgate.codec import decode_timestamp, encode_timestamp, pack_frame, unpack_frame

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path("/var/lib/hostgate/state")
STATE_MAGIC = b"HGST"


@dataclass
class StateSnapshot:
    """Plain copy of the persisted maps. Absent keys mean "never observed"."""

    is_locked: dict[str, bool] = field(default_factory=dict)
    last_unlocked: dict[str, datetime] = field(default_factory=dict)
    last_locked: dict[str, datetime] = field(default_factory=dict)


def _decode_timestamps(raw: Any) -> dict[str, datetime]:
    if not isinstance(raw, dict):
        raise ValueError("Expected a mapping of timestamps")
    result = {}
    for name, value in raw.items():
        timestamp = decode_timestamp(value)
        if timestamp is None:
            raise ValueError(f"Missing timestamp for '{name}'")
        result[name] = timestamp
    return result


def encode_state(snapshot: StateSnapshot) -> bytes:
    """Serialize a snapshot to the state file format."""
    return pack_frame(
        STATE_MAGIC,
        {
            "is_locked": dict(snapshot.is_locked),
            "last_unlocked": {k: encode_timestamp(v) for k, v in snapshot.last_unlocked.items()},
            "last_locked": {k: encode_timestamp(v) for k, v in snapshot.last_locked.items()},
        },
    )


def decode_state(data: bytes) -> StateSnapshot:
    """Deserialize a state blob. Anything malformed yields an empty snapshot."""
    try:
        body = unpack_frame(STATE_MAGIC, data)
        is_locked = body["is_locked"]
        if not isinstance(is_locked, dict) or not all(isinstance(v, bool) for v in is_locked.values()):
            raise ValueError("Expected a mapping of lock flags")
        return StateSnapshot(
            is_locked=dict(is_locked),
            last_unlocked=_decode_timestamps(body["last_unlocked"]),
            last_locked=_decode_timestamps(body["last_locked"]),
        )
    except (ValueError, KeyError, TypeError) as e:
        logger.debug(f"Discarding unreadable state: {e}")
        return StateSnapshot()


def read_state_file(path: Path) -> StateSnapshot:
    """Load the state file, or empty state if it is missing or unreadable."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        logger.debug(f"No state file at {path}, starting empty")
        return StateSnapshot()
    except OSError as e:
        logger.debug(f"Unable to read state file {path}: {e}")
        return StateSnapshot()

    return decode_state(data)


def write_state_file(path: Path, data: bytes) -> None:
    """Atomically replace the state file with data.

    Raises:
        OSError: if the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=".state-", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
