"""Persistence for hostgate access state."""

from hostgate.storage.state_file import (
    DEFAULT_STATE_PATH,
    StateSnapshot,
    decode_state,
    encode_state,
    read_state_file,
    write_state_file,
)

__all__ = [
    "DEFAULT_STATE_PATH",
    "StateSnapshot",
    "decode_state",
    "encode_state",
    "read_state_file",
    "write_state_file",
]
