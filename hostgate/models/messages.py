"""Unlock responses exchanged between the daemon and the unlock client."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from hostgate.codec import decode_timestamp, encode_timestamp, pack_frame, unpack_frame
from hostgate.errors import ProtocolError

RESPONSE_MAGIC = b"HGUR"


@dataclass(frozen=True)
class UnlockSuccess:
    """The entry is unlocked.

    Attributes:
        locked_at: When the entry was last locked, if ever recorded
    """

    locked_at: Optional[datetime] = None


@dataclass(frozen=True)
class UnlockFail:
    """The entry could not be unlocked.

    Attributes:
        cause: Human-readable reason
        unlocked_at: When the entry was last unlocked, if ever recorded
    """

    cause: str
    unlocked_at: Optional[datetime] = None


UnlockResponse = Union[UnlockSuccess, UnlockFail]


def encode_response(response: UnlockResponse) -> bytes:
    """Serialize a response to its wire frame."""
    if isinstance(response, UnlockSuccess):
        body = {
            "result": "success",
            "locked_at": encode_timestamp(response.locked_at),
        }
    else:
        body = {
            "result": "fail",
            "cause": response.cause,
            "unlocked_at": encode_timestamp(response.unlocked_at),
        }
    return pack_frame(RESPONSE_MAGIC, body)


def decode_response(data: bytes) -> UnlockResponse:
    """Deserialize a response frame.

    Raises:
        ProtocolError: if the frame is malformed
    """
    try:
        body = unpack_frame(RESPONSE_MAGIC, data)
        result = body["result"]
        if result == "success":
            return UnlockSuccess(locked_at=decode_timestamp(body.get("locked_at")))
        if result == "fail":
            return UnlockFail(
                cause=str(body["cause"]),
                unlocked_at=decode_timestamp(body.get("unlocked_at")),
            )
    except (ValueError, KeyError, TypeError) as e:
        raise ProtocolError(f"Malformed unlock response: {e}", data) from e

    raise ProtocolError(f"Unknown response type: {result!r}", data)
