"""Data models for hostgate entries and unlock messages."""

from hostgate.models.entries import (
    Config,
    DynamicUsage,
    Entry,
    Restriction,
    StaticWindows,
    TimeWindow,
)
from hostgate.models.messages import (
    UnlockFail,
    UnlockResponse,
    UnlockSuccess,
    decode_response,
    encode_response,
)

__all__ = [
    "Config",
    "DynamicUsage",
    "Entry",
    "Restriction",
    "StaticWindows",
    "TimeWindow",
    "UnlockFail",
    "UnlockResponse",
    "UnlockSuccess",
    "decode_response",
    "encode_response",
]
