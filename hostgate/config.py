"""Configuration loading for hostgate.

Loads entries and restriction rules from a TOML config file:

    after_unlock = "notify-send unlocked"
    interval = 60

    [video]
    domains = ["www.youtube.com", "www.twitch.tv"]
    unlock = ["12:00-13:00", "22:00-06:00"]

    [social]
    domains = ["twitter.com"]
    period = "30m"
    cool_time = "1.5h"
"""

import logging
import re
from datetime import time, timedelta
from pathlib import Path
from typing import Any, Optional

import tomli

from hostgate.errors import ConfigError
from hostgate.models import Config, DynamicUsage, Entry, Restriction, StaticWindows, TimeWindow

logger = logging.getLogger(__name__)

RESERVED_KEYS = ("after_lock", "after_unlock", "interval")

TIME_PATTERN = re.compile(r"([0-9]{2}):([0-9]{2})")
DURATION_PATTERN = re.compile(r"([0-9]+)(?:\.([0-9]*))?([hm])")


def get_config_search_paths() -> list[Path]:
    """Get list of paths to search for config file."""
    return [
        Path("hostgate.toml"),  # Current directory
        Path.home() / ".config" / "hostgate" / "hostgate.toml",
        Path("/etc/hostgate/hostgate.toml"),
    ]


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_search_paths():
        if path.exists():
            return path
    return None


def parse_time_of_day(token: str) -> time:
    """Parse an "HH:MM" token.

    Raises:
        ConfigError: if the token is malformed or out of range
    """
    match = TIME_PATTERN.fullmatch(token)
    if not match:
        raise ConfigError(f"Invalid time '{token}' (expected HH:MM)")

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23:
        raise ConfigError(f"Invalid hours in '{token}'")
    if minutes > 59:
        raise ConfigError(f"Invalid minutes in '{token}'")

    return time(hours, minutes)


def parse_window(token: str) -> TimeWindow:
    """Parse an "HH:MM-HH:MM" window token."""
    if not isinstance(token, str):
        raise ConfigError(f"Invalid window {token!r} (expected \"HH:MM-HH:MM\")")

    begin, sep, end = token.partition("-")
    if not sep:
        raise ConfigError(f"Invalid window '{token}' (expected HH:MM-HH:MM)")

    return TimeWindow(begin=parse_time_of_day(begin), end=parse_time_of_day(end))


def parse_duration(token: str) -> timedelta:
    """Parse a duration such as "1.5h" or "90m".

    For hours the fractional part is converted to whole minutes, truncating
    toward zero. For minutes the fractional part is dropped. Sub-minute
    precision is never kept.

    Examples:
        "1.5h"   -> 90 minutes
        "90m"    -> 90 minutes
        "0.016h" -> 0 minutes
    """
    if not isinstance(token, str):
        raise ConfigError(f"Invalid duration {token!r} (expected a string like \"1.5h\")")

    match = DURATION_PATTERN.fullmatch(token)
    if not match:
        raise ConfigError(f"Invalid duration '{token}' (expected <number>h or <number>m)")

    whole, fraction, unit = match.groups()
    if unit == "m":
        return timedelta(minutes=int(whole))

    fraction = fraction or ""
    extra_minutes = int(fraction or "0") * 60 // (10 ** len(fraction))
    return timedelta(hours=int(whole), minutes=extra_minutes)


def parse_restriction(data: dict[str, Any]) -> Restriction:
    """Build the restriction for an entry table.

    A table with "unlock" is a static window rule; otherwise both
    "period" and "cool_time" are required.
    """
    if "unlock" in data:
        windows = data["unlock"]
        if not isinstance(windows, list):
            raise ConfigError("'unlock' must be a list of windows")
        return StaticWindows(windows=tuple(parse_window(w) for w in windows))

    if "period" in data and "cool_time" in data:
        return DynamicUsage(
            period=parse_duration(data["period"]),
            cool_time=parse_duration(data["cool_time"]),
        )

    raise ConfigError("needs either 'unlock' or both 'period' and 'cool_time'")


def parse_entry(name: str, data: Any) -> Entry:
    """Build an Entry from its config table."""
    if not isinstance(data, dict):
        raise ConfigError(f"Entry '{name}' must be a table")

    domains = data.get("domains")
    if not isinstance(domains, list) or not all(isinstance(d, str) for d in domains):
        raise ConfigError(f"Entry '{name}': 'domains' must be a list of strings")

    try:
        restriction = parse_restriction(data)
    except ConfigError as e:
        raise ConfigError(f"Entry '{name}': {e}") from e

    return Entry(name=name, domains=list(domains), restriction=restriction)


def parse_config(data: dict[str, Any]) -> Config:
    """Build a Config from a decoded TOML document."""
    config = Config()

    if "after_lock" in data:
        if not isinstance(data["after_lock"], str):
            raise ConfigError("'after_lock' must be a string")
        config.after_lock = data["after_lock"]

    if "after_unlock" in data:
        if not isinstance(data["after_unlock"], str):
            raise ConfigError("'after_unlock' must be a string")
        config.after_unlock = data["after_unlock"]

    if "interval" in data:
        interval = data["interval"]
        # bool is an int subclass
        if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
            raise ConfigError("'interval' must be a positive number of seconds")
        config.interval = interval

    for name, entry_data in data.items():
        if name in RESERVED_KEYS:
            continue
        config.entries[name] = parse_entry(name, entry_data)

    return config


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from TOML file.

    Args:
        config_path: Explicit path to config file, or None to search

    Returns:
        Config object with loaded entries

    Raises:
        ConfigError: if no config is found or it cannot be parsed
    """
    if config_path is None:
        config_path = find_config_file()

    if config_path is None:
        searched = ", ".join(str(p) for p in get_config_search_paths())
        raise ConfigError(f"No config file found (searched: {searched})")

    logger.info(f"Loading config from {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except OSError as e:
        raise ConfigError(f"Unable to read config {config_path}: {e}") from e
    except tomli.TOMLDecodeError as e:
        raise ConfigError(f"Parse error in config {config_path}: {e}") from e

    config = parse_config(data)
    logger.debug(f"Loaded {len(config.entries)} entries")
    return config
