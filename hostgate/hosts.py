"""Hosts file parsing and rewriting.

Managed lines take one of two forms:

    127.0.0.1 www.youtube.com      # locked: domain resolves to loopback
    # 127.0.0.1 www.youtube.com    # unlocked: mapping commented out

Only the first domain on a line is tracked, and anything after it is ignored.
Every other line is kept verbatim and in place.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_HOSTS_PATH = Path("/etc/hosts")
LOOPBACK_ADDRESS = "127.0.0.1"

# Tokens are runs of anything but tab, space and "#"
LOCKED_LINE_PATTERN = re.compile(r"[ \t]*([^\t #]+)[ \t]+([^\t #]+)")
COMMENTED_LINE_PATTERN = re.compile(r"[ \t]*#[ \t]*([^\t #]+)[ \t]+([^\t #]+)")


@dataclass
class HostLine:
    """A recognized hosts line for one domain."""

    line_number: int
    address: str
    locked: bool


def parse_host_line(line: str) -> tuple[str, HostLine] | None:
    """Recognize a managed line.

    Returns:
        (domain, HostLine) tuple, or None for an opaque line
    """
    match = LOCKED_LINE_PATTERN.match(line)
    if match:
        address, domain = match.groups()
        return domain, HostLine(line_number=-1, address=address, locked=True)

    match = COMMENTED_LINE_PATTERN.match(line)
    if match:
        address, domain = match.groups()
        return domain, HostLine(line_number=-1, address=address, locked=False)

    return None


def format_host_line(address: str, domain: str, locked: bool) -> str:
    if locked:
        return f"{address} {domain}"
    return f"# {address} {domain}"


@dataclass
class HostsDocument:
    """In-memory hosts file with an index of managed lines.

    Attributes:
        lines: File lines without line terminators
        hosts: Domain -> last line that mentions it
        trailing_newline: Whether the text ends with a newline
        newline: Line terminator used on export ("\n" or "\r\n")
    """

    lines: list[str] = field(default_factory=list)
    hosts: dict[str, HostLine] = field(default_factory=dict)
    trailing_newline: bool = True
    newline: str = "\n"

    @classmethod
    def parse(cls, text: str) -> "HostsDocument":
        """Parse hosts file text."""
        trailing_newline = text == "" or text.endswith("\n")
        newline = "\r\n" if "\r\n" in text else "\n"
        body = text[:-1] if text.endswith("\n") else text
        # Split on "\n" only and drop a CR before it
        lines = [line.removesuffix("\r") for line in body.split("\n")] if text else []

        hosts: dict[str, HostLine] = {}
        for line_number, line in enumerate(lines):
            parsed = parse_host_line(line)
            if parsed:
                domain, host = parsed
                host.line_number = line_number
                hosts[domain] = host

        return cls(lines=lines, hosts=hosts, trailing_newline=trailing_newline, newline=newline)

    @classmethod
    def read(cls, path: Path) -> "HostsDocument":
        """Read and parse a hosts file. A missing file reads as empty."""
        try:
            # Bytes, so line terminators reach parse() untranslated
            text = path.read_bytes().decode("utf-8")
        except FileNotFoundError:
            logger.warning(f"Hosts file {path} does not exist, starting empty")
            text = ""
        return cls.parse(text)

    def is_locked(self, domain: str) -> bool:
        """True if the domain has an active (uncommented) line."""
        host = self.hosts.get(domain)
        return host is not None and host.locked

    def write_state(self, domain: str, locked: bool) -> None:
        """Rewrite or append the line for a domain."""
        host = self.hosts.get(domain)
        if host is None:
            self.lines.append(format_host_line(LOOPBACK_ADDRESS, domain, locked))
            self.hosts[domain] = HostLine(
                line_number=len(self.lines) - 1,
                address=LOOPBACK_ADDRESS,
                locked=locked,
            )
            return

        self.lines[host.line_number] = format_host_line(host.address, domain, locked)
        host.locked = locked

    def reconcile(self, desired: dict[str, bool]) -> int:
        """Make every domain's line match the desired lock state.

        Args:
            desired: Domain -> whether it should be locked

        Returns:
            Number of lines changed or appended
        """
        changed = 0
        for domain, locked in desired.items():
            if self.is_locked(domain) != locked:
                self.write_state(domain, locked)
                changed += 1
        return changed

    def export(self) -> str:
        text = self.newline.join(self.lines)
        if self.trailing_newline and self.lines:
            text += self.newline
        return text

    def save(self, path: Path) -> None:
        """Write the document back in place.

        The file is rewritten rather than replaced so a watch on it keeps
        seeing modification events.
        """
        path.write_text(self.export(), encoding="utf-8", newline="")
