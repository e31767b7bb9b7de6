"""Per-entry lock state machine.

Each entry is either locked (its domains are blocked in the hosts file) or
unlocked. Transitions are driven by ``update`` on every tick and by explicit
unlock requests. After each transition the hosts file is reconciled with the
new state (``commit``) and the state itself is persisted.

AccessState has no internal locking. It must only be used from the thread
running the event loop.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from hostgate.errors import CooldownActive
from hostgate.hosts import HostsDocument
from hostgate.models import (
    Config,
    DynamicUsage,
    Entry,
    StaticWindows,
    UnlockFail,
    UnlockResponse,
    UnlockSuccess,
)
from hostgate.policies.domain_index import DomainIndex
from hostgate.storage import StateSnapshot, encode_state, read_state_file, write_state_file
from hostgate.triggers import ExternalTrigger, make_trigger

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Current timezone-aware local time."""
    return datetime.now().astimezone()


@dataclass
class EntryFailure:
    """An entry that could not reach its desired state during update."""

    name: str
    error: Exception

    def __str__(self) -> str:
        return f"{self.name}: {self.error}"


class AccessState:
    """Lock flags and transition timestamps for every entry.

    Usage:
        state = AccessState.load(config, hosts_path, state_path)
        failures = state.update(config)
    """

    def __init__(
        self,
        config: Config,
        hosts_path: Path,
        state_path: Path,
        snapshot: Optional[StateSnapshot] = None,
        after_lock: Optional[ExternalTrigger] = None,
        after_unlock: Optional[ExternalTrigger] = None,
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        """Initialize access state.

        Args:
            config: Loaded configuration (used to build the domain index)
            hosts_path: Hosts file to reconcile
            state_path: Where the state is persisted
            snapshot: Previously persisted state, or None for empty
            after_lock: Trigger fired after an entry is locked
            after_unlock: Trigger fired after an entry is unlocked
            clock: Source of the current time when none is passed explicitly
        """
        snapshot = snapshot or StateSnapshot()
        self.is_locked: dict[str, bool] = dict(snapshot.is_locked)
        self.last_unlocked: dict[str, datetime] = dict(snapshot.last_unlocked)
        self.last_locked: dict[str, datetime] = dict(snapshot.last_locked)

        self.domain_index = DomainIndex(config)
        self.hosts_path = hosts_path
        self.state_path = state_path
        self.after_lock = after_lock
        self.after_unlock = after_unlock
        self._clock = clock

    @classmethod
    def load(
        cls,
        config: Config,
        hosts_path: Path,
        state_path: Path,
        clock: Callable[[], datetime] = local_now,
    ) -> "AccessState":
        """Restore state from the state file, wiring triggers from the config."""
        return cls(
            config,
            hosts_path,
            state_path,
            snapshot=read_state_file(state_path),
            after_lock=make_trigger(config.after_lock),
            after_unlock=make_trigger(config.after_unlock),
            clock=clock,
        )

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            is_locked=dict(self.is_locked),
            last_unlocked=dict(self.last_unlocked),
            last_locked=dict(self.last_locked),
        )

    def export(self) -> bytes:
        """Encode the persisted maps."""
        return encode_state(self.snapshot())

    def save(self) -> None:
        """Write the state file.

        Raises:
            OSError: if the file cannot be written
        """
        write_state_file(self.state_path, self.export())
        logger.debug(f"Saved state to {self.state_path}")

    def is_entry_locked(self, name: str) -> bool:
        """Effective lock status. Entries never observed count as locked."""
        return self.is_locked.get(name, True)

    def unlock(self, name: str, entry: Entry, now: Optional[datetime] = None) -> None:
        """Unlock an entry.

        Raises:
            CooldownActive: if a dynamic entry was unlocked too recently
            OSError: if the hosts or state file cannot be written
        """
        # A never-observed entry counts as locked, so unlocking it is a transition
        if not self.is_entry_locked(name):
            return

        now = now or self._clock()
        restriction = entry.restriction

        if isinstance(restriction, DynamicUsage):
            unlocked_at = self.last_unlocked.get(name)
            if unlocked_at is not None and now < unlocked_at + restriction.cool_time:
                raise CooldownActive(name, unlocked_at, unlocked_at + restriction.cool_time)

        self.is_locked[name] = False
        if isinstance(restriction, DynamicUsage):
            self.last_unlocked[name] = now

        self.commit()
        logger.info(f"Unlocked '{name}'")

        if self.after_unlock:
            self.after_unlock(name)

    def lock(self, name: str, entry: Entry, now: Optional[datetime] = None) -> None:
        """Lock an entry.

        Raises:
            OSError: if the hosts or state file cannot be written
        """
        if self.is_locked.get(name) is True:
            return

        now = now or self._clock()

        self.is_locked[name] = True
        if isinstance(entry.restriction, DynamicUsage):
            self.last_locked[name] = now

        self.commit()
        logger.info(f"Locked '{name}'")

        if self.after_lock:
            self.after_lock(name)

    def desired_unlocked(self, name: str, entry: Entry, now: datetime) -> bool:
        """Whether the entry's rule allows it to be unlocked at now."""
        restriction = entry.restriction
        if isinstance(restriction, StaticWindows):
            return restriction.allows(now)

        unlocked_at = self.last_unlocked.get(name)
        return unlocked_at is None or now < unlocked_at + restriction.period

    def update(self, config: Config, now: Optional[datetime] = None) -> list[EntryFailure]:
        """Move every entry to the state its rule wants at now.

        Every entry is attempted; failures are collected, not raised.

        Returns:
            One EntryFailure per entry that could not transition
        """
        now = now or self._clock()
        failures: list[EntryFailure] = []

        for name, entry in config.entries.items():
            try:
                if self.desired_unlocked(name, entry, now):
                    self.unlock(name, entry, now)
                else:
                    self.lock(name, entry, now)
            except Exception as e:
                failures.append(EntryFailure(name=name, error=e))

        return failures

    def request_unlock(
        self,
        name: str,
        entry: Entry,
        now: Optional[datetime] = None,
    ) -> UnlockResponse:
        """Unlock on behalf of a client and describe the outcome."""
        try:
            self.unlock(name, entry, now)
        except Exception as e:
            logger.warning(f"Unlock request for '{name}' failed: {e}")
            return UnlockFail(cause=str(e), unlocked_at=self.last_unlocked.get(name))

        return UnlockSuccess(locked_at=self.last_locked.get(name))

    def commit(self) -> bool:
        """Reconcile the hosts file with the current lock flags.

        The hosts file is only written when at least one line changes, so a
        watch on it does not see its own writes as new edits. The state file
        is saved on every commit.

        Returns:
            True if the hosts file was rewritten

        Raises:
            OSError: if the hosts or state file cannot be read or written
        """
        document = HostsDocument.read(self.hosts_path)
        desired = {
            domain: self.is_locked.get(name, False)
            for domain, name in self.domain_index.items()
        }

        changed = document.reconcile(desired)
        if changed:
            document.save(self.hosts_path)
            logger.debug(f"Rewrote {changed} lines in {self.hosts_path}")

        self.save()
        return changed > 0
