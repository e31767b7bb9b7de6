"""Daemon components: the event loop and its event sources."""

from hostgate.daemon.event_loop import EventLoop
from hostgate.daemon.hosts_watcher import HostsWatcher
from hostgate.daemon.unlock_server import DEFAULT_SOCKET_PATH, UnlockServer

__all__ = [
    "DEFAULT_SOCKET_PATH",
    "EventLoop",
    "HostsWatcher",
    "UnlockServer",
]
