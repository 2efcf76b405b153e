"""
=============================================================================
CLIENT CONNECTION
=============================================================================

One accepted socket, owned by one worker for as long as the client keeps
it open. Reads whole requests off the byte stream, writes responses and
can tell whether the client is still there.

=============================================================================
FRAMING
=============================================================================

TCP delivers bytes, not requests. A request is complete once the blank
line ending its head has arrived plus Content-Length bytes of body. Only
the head is kept: the server never looks at a body, so its bytes are read
and dropped as they arrive, however large it is.

    buffer:  GET / HTTP/1.1\\r\\nHost: a\\r\\n\\r\\nGET /next HTTP/1.1\\r\\n...
             └──────────── request 1 ────────┘└── start of request 2 ──
                                               stays buffered for the
                                               next read_request()

=============================================================================
TIMEOUTS
=============================================================================

    first request       timeout              expired mid-request → 408
    head over max_head_size                  → 431
    later requests      keep_alive_timeout   expired → close quietly
    writing             timeout

=============================================================================
"""

import logging
import select
import socket
import uuid
from enum import Enum
from typing import Optional, Tuple

from ..http.request import HTTPParseError
from ..http.status_codes import HTTPStatus

logger = logging.getLogger(__name__)

HEAD_END = b"\r\n\r\n"


class ConnectionState(Enum):
    WAITING = "waiting"
    READING = "reading"
    RESPONDING = "responding"
    CLOSED = "closed"


def content_length(head: bytes) -> int:
    """
    Content-Length from a raw request head; 0 when missing or unreadable.
    Bad values are turned into a 400 by the parser, not here.
    """
    for line in bytes(head).split(b"\r\n")[1:]:
        name, sep, value = line.partition(b":")
        if sep and name.strip().lower() == b"content-length":
            try:
                return max(int(value.strip()), 0)
            except ValueError:
                return 0
    return 0


class Connection:
    """
    A client connection.

    Attributes:
        id: Short random identifier used in log messages.
        address: Client (ip, port).
        state: Current ConnectionState.
        requests: Number of requests read so far.
    """

    def __init__(
        self,
        socket: socket.socket,
        address: Tuple[str, int],
        buffer_size: int = 8192,
        timeout: Optional[float] = 30.0,
        keep_alive_timeout: float = 5.0,
        max_head_size: int = 1024 * 1024,
    ):
        self.socket = socket
        self.address = address
        self.buffer_size = buffer_size
        self.timeout = timeout
        self.keep_alive_timeout = keep_alive_timeout
        self.max_head_size = max_head_size

        self.id = uuid.uuid4().hex[:8]
        self.state = ConnectionState.WAITING
        self.requests = 0
        self._buffer = bytearray()

        self.socket.settimeout(timeout)

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.address[0]}:{self.address[1]} {self.state.value}>"

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read the next request. The body is consumed but not returned.

        Returns:
            The raw request head, up to and including the blank line, or
            None once the client has closed the connection or stayed idle
            past keep_alive_timeout.

        Raises:
            TimeoutError: The first request stalled half-way.
            HTTPParseError: The head outgrew max_head_size (431).
        """
        self.state = ConnectionState.READING
        self.socket.settimeout(self.keep_alive_timeout if self.requests else self.timeout)

        try:
            head_end = self._buffer.find(HEAD_END)
            while head_end < 0:
                self._check_head_size(len(self._buffer))
                if not self._receive():
                    return None
                head_end = self._buffer.find(HEAD_END)

            head_size = head_end + len(HEAD_END)
            self._check_head_size(head_size)
            head = bytes(self._buffer[:head_size])
            del self._buffer[:head_size]
            self._skip_body(content_length(head))
        except socket.timeout:
            if self.requests or not self._buffer:
                logger.debug(f"[{self.id}] Idle, closing")
                return None
            raise TimeoutError("Request read timeout")
        finally:
            if self.state is not ConnectionState.CLOSED:
                self.socket.settimeout(self.timeout)

        self.requests += 1
        self.state = ConnectionState.RESPONDING
        return head

    def _check_head_size(self, size: int) -> None:
        if size > self.max_head_size:
            self._buffer.clear()
            raise HTTPParseError(
                f"Request head too large: over {self.max_head_size} bytes",
                status_code=HTTPStatus.HEADER_FIELDS_TOO_LARGE,
            )

    def _skip_body(self, length: int) -> None:
        """Drop length body bytes, stopping early if the client goes away."""
        while length > 0:
            if not self._buffer and not self._receive():
                return
            dropped = min(length, len(self._buffer))
            del self._buffer[:dropped]
            length -= dropped

    def _receive(self) -> bool:
        """Append one recv() to the buffer. False when the client is gone."""
        try:
            data = self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return False
        if not data:
            return False

        self._buffer += data
        return True

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Write all of data.

        Returns:
            False if the client went away.
        """
        try:
            self.socket.sendall(data)
        except (ConnectionResetError, BrokenPipeError):
            logger.debug(f"[{self.id}] Client disconnected while writing")
            return False
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False
        return True

    def is_alive(self) -> bool:
        """
        False once the connection is unusable for the response.

        A FIN only means the client is done sending (a half-close); it can
        still read the answer. Only a reset, seen when peeking, or a closed
        socket counts as gone.
        """
        if self.state is ConnectionState.CLOSED:
            return False
        try:
            readable, _, _ = select.select([self.socket], [], [], 0)
            if readable:
                self.socket.recv(1, socket.MSG_PEEK)
        except (OSError, ValueError):
            return False
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.WAITING

    def close(self) -> None:
        """
        Send FIN, drain whatever the client still sends, then release the
        socket. Idempotent.
        """
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(self.buffer_size):
                pass
        except OSError:
            pass  # client already gone
        finally:
            self.socket.close()

        logger.debug(f"[{self.id}] Closed after {self.requests} request(s)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
