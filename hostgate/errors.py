"""Exception types shared across hostgate."""

from datetime import datetime
from typing import Optional


class HostgateError(Exception):
    """Base class for hostgate errors."""


class ConfigError(HostgateError):
    """Raised when the config file cannot be loaded or contains a malformed rule."""


class AccessError(HostgateError):
    """Raised when an entry cannot change its lock state."""


class CooldownActive(AccessError):
    """Raised when a dynamic entry is unlocked again before its cool time has passed."""

    def __init__(self, name: str, unlocked_at: datetime, available_at: datetime) -> None:
        super().__init__(
            f"'{name}' has not cooled down yet (available at {available_at:%Y-%m-%d %H:%M})"
        )
        self.name = name
        self.unlocked_at = unlocked_at
        self.available_at = available_at


class ProtocolError(HostgateError):
    """Raised when an unlock response frame cannot be decoded."""

    def __init__(self, message: str, payload: Optional[bytes] = None) -> None:
        super().__init__(message)
        self.payload = payload
