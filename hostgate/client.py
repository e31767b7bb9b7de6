"""Client side of the unlock protocol."""

import socket
from pathlib import Path

from hostgate.models import UnlockResponse, decode_response

RECV_SIZE = 4096


def send_unlock_request(socket_path: Path, name: str) -> UnlockResponse:
    """Ask the daemon to unlock an entry.

    Writes the entry name, half-closes the connection and reads the
    response until the daemon closes it.

    Raises:
        OSError: if the daemon socket is unreachable
        ProtocolError: if the response cannot be decoded
    """
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(str(socket_path))
        sock.sendall(name.encode("utf-8"))
        sock.shutdown(socket.SHUT_WR)

        chunks: list[bytes] = []
        while True:
            chunk = sock.recv(RECV_SIZE)
            if not chunk:
                break
            chunks.append(chunk)

    return decode_response(b"".join(chunks))
