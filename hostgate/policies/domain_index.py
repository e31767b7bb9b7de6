"""Domain-to-entry mapping and lookup."""

import logging
from typing import Optional

from hostgate.models import Config

logger = logging.getLogger(__name__)


class DomainIndex:
    """Maps each configured domain to the entry that owns it.

    Entries are visited in config order; if a domain is listed by more than
    one entry, the last one wins.
    """

    def __init__(self, config: Config) -> None:
        """Initialize the index.

        Args:
            config: Loaded configuration
        """
        self._domain_to_entry: dict[str, str] = {}

        for name, entry in config.entries.items():
            for domain in entry.domains:
                previous = self._domain_to_entry.get(domain)
                if previous is not None and previous != name:
                    logger.debug(f"Domain {domain} moved from '{previous}' to '{name}'")
                self._domain_to_entry[domain] = name

    def get_entry(self, domain: str) -> Optional[str]:
        """Look up the owning entry name of a domain."""
        return self._domain_to_entry.get(domain)

    def items(self) -> list[tuple[str, str]]:
        """Return (domain, entry name) pairs."""
        return list(self._domain_to_entry.items())
