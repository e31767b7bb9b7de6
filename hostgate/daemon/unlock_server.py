"""Local socket server for unlock requests.

Clients connect to a Unix socket, write the entry name, half-close their
side and wait for the response. A background accept worker reads each request
and hands the connection to the event loop, which writes the response and
closes it. The worker serves one request at a time and blocks until the
event loop has taken the previous one.
"""

import logging
import os
import socket
import stat
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_SOCKET_PATH = Path("/var/lib/hostgate.socket")
RECV_SIZE = 4096
MAX_REQUEST_SIZE = 64 * 1024

# Receives the open connection and the requested entry name; returns once the
# request has been taken by the event loop
UnlockHandoff = Callable[[socket.socket, str], None]


def read_request(connection: socket.socket) -> str:
    """Read until the peer half-closes and decode the entry name.

    Raises:
        OSError: if the read fails
        ValueError: if the request is too large or not UTF-8
    """
    chunks: list[bytes] = []
    size = 0
    while True:
        chunk = connection.recv(RECV_SIZE)
        if not chunk:
            break
        size += len(chunk)
        if size > MAX_REQUEST_SIZE:
            raise ValueError(f"Request exceeds {MAX_REQUEST_SIZE} bytes")
        chunks.append(chunk)

    return b"".join(chunks).decode("utf-8").strip()


class UnlockServer:
    """Unix socket listener with a dedicated accept worker thread."""

    def __init__(self, socket_path: Path, handoff: UnlockHandoff) -> None:
        """Initialize the server.

        Args:
            socket_path: Filesystem path of the listening socket
            handoff: Called from the worker thread for every request
        """
        self.socket_path = socket_path
        self.handoff = handoff
        self._listener: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    def bind(self) -> None:
        """Bind the socket and make it writable by unprivileged users.

        Raises:
            OSError: if the socket cannot be created or bound
        """
        self.socket_path.unlink(missing_ok=True)

        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(str(self.socket_path))
            mode = os.stat(self.socket_path).st_mode
            os.chmod(self.socket_path, stat.S_IMODE(mode) | 0o222)
            listener.listen()
        except OSError:
            listener.close()
            raise

        self._listener = listener
        logger.info(f"Unlock socket listening on {self.socket_path}")

    def start(self) -> None:
        """Bind if needed and start the accept worker."""
        if self._listener is None:
            self.bind()

        self._running = True
        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(self._listener,),
            name="hostgate-unlock-accept",
            daemon=True,
        )
        self._thread.start()

    def close(self) -> None:
        """Stop accepting and remove the socket file."""
        self._running = False

        if self._listener is not None:
            try:
                # Wakes up a blocked accept() on Linux
                self._listener.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._listener.close()
            self._listener = None

        if self._thread is not None:
            self._thread.join(timeout=1.0)
            self._thread = None

        self.socket_path.unlink(missing_ok=True)
        logger.info("Unlock socket closed")

    def _accept_loop(self, listener: socket.socket) -> None:
        while self._running:
            try:
                connection, _ = listener.accept()
            except OSError:
                if self._running:
                    logger.exception("Unlock socket accept failed")
                break

            try:
                name = read_request(connection)
            except (OSError, ValueError) as e:
                logger.debug(f"Dropping unreadable unlock request: {e}")
                connection.close()
                continue

            logger.debug(f"Unlock request for '{name}'")
            try:
                self.handoff(connection, name)
            except Exception as e:
                logger.error(f"Error handing off unlock request: {e}")
                connection.close()
