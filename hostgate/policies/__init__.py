"""Access policies: the per-entry lock state machine and domain lookup."""

from hostgate.policies.access_state import AccessState, EntryFailure
from hostgate.policies.domain_index import DomainIndex

__all__ = [
    "AccessState",
    "DomainIndex",
    "EntryFailure",
]
