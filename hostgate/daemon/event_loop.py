"""Single-threaded coordinator for the hostgate daemon.

All work on AccessState happens here, one event at a time. Events come from
four sources and are serviced in arrival order from one queue:

- Tick: periodic re-evaluation of every entry
- HostsModified: the hosts file was edited, re-sync it
- UnlockRequested: a client asked to unlock an entry
- Shutdown: SIGINT/SIGTERM, persist state and stop

Background threads (the unlock accept worker, the watchdog observer) never
touch AccessState. They post event values into the loop with
``call_soon_threadsafe``. Unlock requests are handed off without buffering:
the submitting thread waits until the loop has taken its request.
"""

import asyncio
import logging
import signal
import socket
import threading
from dataclasses import dataclass, field
from typing import Optional, Union

from hostgate.models import Config, UnlockFail, UnlockResponse, encode_response
from hostgate.policies import AccessState

logger = logging.getLogger(__name__)

UNKNOWN_ENTRY_CAUSE = "unknown entry"
HANDOFF_POLL_SECONDS = 0.5


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class HostsModified:
    pass


@dataclass(eq=False)
class UnlockRequested:
    """An unlock request waiting for the loop.

    Attributes:
        connection: Client connection the response is written to
        name: Requested entry name
        taken: Set by the loop when it dequeues the request
    """

    connection: socket.socket
    name: str
    taken: threading.Event = field(default_factory=threading.Event)


@dataclass(frozen=True)
class Shutdown:
    pass


Event = Union[Tick, HostsModified, UnlockRequested, Shutdown]


class EventLoop:
    """Owns AccessState and services daemon events one at a time."""

    def __init__(self, config: Config, state: AccessState) -> None:
        """Initialize the event loop.

        Args:
            config: Loaded configuration (read-only)
            state: Access state; owned by this loop from now on
        """
        self.config = config
        self.state = state
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        # Events posted before run() are queued directly, under _post_lock
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._post_lock = threading.Lock()
        self._started = threading.Event()
        self._stopped = threading.Event()
        self._tick_pending = False
        self._hosts_pending = False

    # -- producers (safe to call from any thread) ---------------------------

    def notify_hosts_modified(self) -> None:
        """Schedule a hosts re-sync. Repeated notifications coalesce."""
        self._post_threadsafe(HostsModified())

    def request_shutdown(self) -> None:
        """Ask the loop to persist state and stop."""
        self._post_threadsafe(Shutdown())

    def submit_unlock(self, connection: socket.socket, name: str) -> None:
        """Hand an unlock request to the loop and wait until it is taken.

        If the loop stops before taking the request, the connection is closed
        without a response.
        """
        while not self._started.wait(HANDOFF_POLL_SECONDS):
            if self._stopped.is_set():
                connection.close()
                return

        request = UnlockRequested(connection=connection, name=name)
        if not self._post_threadsafe(request):
            connection.close()
            return

        while not request.taken.wait(HANDOFF_POLL_SECONDS):
            if self._stopped.is_set():
                connection.close()
                return

    def _post_threadsafe(self, event: Event) -> bool:
        with self._post_lock:
            if self._stopped.is_set():
                return False

            loop = self._loop
            if loop is None:
                # Not running yet; nothing is waiting on the queue
                self._post(event)
                return True

        try:
            loop.call_soon_threadsafe(self._post, event)
        except RuntimeError:
            # Loop already closed
            return False
        return True

    def _post(self, event: Event) -> None:
        if isinstance(event, Tick):
            if self._tick_pending:
                return
            self._tick_pending = True
        elif isinstance(event, HostsModified):
            if self._hosts_pending:
                return
            self._hosts_pending = True

        self._queue.put_nowait(event)

    # -- loop ---------------------------------------------------------------

    async def run(self, install_signal_handlers: bool = True) -> None:
        """Run until a shutdown event is handled.

        Entries are evaluated once immediately, then every config.interval
        seconds. Events posted before the loop started are kept and serviced
        after that first evaluation.
        """
        loop = asyncio.get_running_loop()
        with self._post_lock:
            self._loop = loop

        if install_signal_handlers:
            self._install_signal_handlers(loop)

        self._started.set()
        ticker = asyncio.create_task(self._tick_forever())

        try:
            self.handle_tick()
            while True:
                event = await self._queue.get()
                if not self.dispatch(event):
                    break
        finally:
            self._stopped.set()
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
            if install_signal_handlers:
                self._remove_signal_handlers(loop)

        logger.info("Event loop stopped")

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval)
            self._post(Tick())

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        def signal_handler() -> None:
            logger.info("Shutdown signal received")
            self._post(Shutdown())

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                # Signal handlers not supported on this platform (e.g., Windows)
                pass

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, ValueError):
                pass

    def dispatch(self, event: Event) -> bool:
        """Run the handler for one event.

        Returns:
            False once the loop should stop
        """
        if isinstance(event, Tick):
            self._tick_pending = False
            self.handle_tick()
        elif isinstance(event, HostsModified):
            self._hosts_pending = False
            self.handle_hosts_modified()
        elif isinstance(event, UnlockRequested):
            event.taken.set()
            self.handle_unlock(event.connection, event.name)
        elif isinstance(event, Shutdown):
            self.handle_shutdown()
            return False
        return True

    # -- handlers -----------------------------------------------------------

    def handle_tick(self) -> None:
        """Re-evaluate every entry, logging failures."""
        failures = self.state.update(self.config)
        for failure in failures:
            logger.warning(f"Update failed for {failure}")

    def handle_hosts_modified(self) -> None:
        """Re-apply the current state to an externally edited hosts file."""
        try:
            if self.state.commit():
                logger.info("Restored hosts file after external edit")
        except Exception as e:
            logger.error(f"Failed to re-sync hosts file: {e}")

    def handle_unlock(self, connection: socket.socket, name: str) -> UnlockResponse:
        """Apply an unlock request and reply over its connection."""
        entry = self.config.entries.get(name)
        if entry is None:
            logger.warning(f"Unlock requested for unknown entry '{name}'")
            response: UnlockResponse = UnlockFail(cause=UNKNOWN_ENTRY_CAUSE)
        else:
            response = self.state.request_unlock(name, entry)

        try:
            connection.sendall(encode_response(response))
        except OSError as e:
            logger.warning(f"Failed to send unlock response for '{name}': {e}")
        finally:
            connection.close()

        return response

    def handle_shutdown(self) -> None:
        """Persist state before stopping."""
        try:
            self.state.save()
        except OSError as e:
            logger.error(f"Failed to save state on shutdown: {e}")
