"""
=============================================================================
TCP SOCKET SERVER
=============================================================================

Owns the listening socket: picks a port, accepts connections and hands
each one to a callback. Knows nothing about HTTP.

=============================================================================
PORT HUNTING
=============================================================================

A dev server should just start, even if 8080 is taken by something else.
ServerOptions.ports is a list of candidates, tried in order:

    ports = (8080, 8081, ..., 8089)

    bind 8080  → EADDRINUSE  → next
    bind 8081  → EADDRINUSE  → next
    bind 8082  → OK          → listening on 8082

    every port busy  → PortsInUseError("port(s) already in use: 8080, ...")
    any other error  → raised as-is (bad host, permission denied, ...)

SO_REUSEPORT is NOT set: it would let us bind a port another process is
already listening on, and port hunting would never move on.

=============================================================================
SHUTDOWN
=============================================================================

    Ctrl+C (SIGINT) / SIGTERM ──► shutdown() ──► accept loop sees
                                                  _running == False
                                                  within 1 second

accept() uses a 1 second timeout so the loop can poll the running flag.
Signal handlers are only installed from the main thread; Python forbids
it anywhere else, and embedded servers (tests) call shutdown() directly.

=============================================================================
"""

import errno
import logging
import signal
import socket
import threading
from typing import Callable, List, Optional, Tuple

from ..config import ServerOptions
from .connection import Connection

logger = logging.getLogger(__name__)


class PortsInUseError(OSError):
    """Every candidate port was taken."""

    def __init__(self, ports: List[int]):
        self.ports = list(ports)
        super().__init__(
            errno.EADDRINUSE,
            f"port(s) already in use: {', '.join(str(p) for p in self.ports)}",
        )

    def __str__(self) -> str:
        return self.strerror


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        server = SocketServer(options)
        server.bind()                       # optional, start() binds too
        print(server.port)
        server.start(handle_connection)     # blocks until shutdown()
    """

    def __init__(self, options: ServerOptions):
        self.options = options

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._ready_event = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

        self.host: str = options.host or "0.0.0.0"
        self.port: Optional[int] = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, Optional[int]]:
        return (self.host, self.port)

    # =========================================================================
    # SOCKET SETUP
    # =========================================================================

    def _address_family(self) -> Tuple[socket.AddressFamily, str]:
        if self.options.host is None:
            return socket.AF_INET, "0.0.0.0"
        infos = socket.getaddrinfo(self.options.host, None, socket.AF_UNSPEC, socket.SOCK_STREAM, 0, socket.AI_PASSIVE)
        family, _, _, _, sockaddr = infos[0]
        return family, sockaddr[0]

    def _create_socket(self, family: socket.AddressFamily) -> socket.socket:
        sock = socket.socket(family, socket.SOCK_STREAM)

        # Rebind immediately after a restart, despite TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Responses should leave right away, not wait for Nagle's algorithm
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(1.0)
        return sock

    def bind(self) -> int:
        """
        Bind and listen on the first free port of options.ports.

        Returns:
            The bound port.

        Raises:
            PortsInUseError: If every port is taken.
            OSError: For other bind failures (unknown host, no permission).
        """
        if self._socket is not None:
            return self.port

        family, bind_host = self._address_family()
        busy: List[int] = []

        for port in self.options.ports:
            sock = self._create_socket(family)
            try:
                sock.bind((bind_host, port))
            except OSError as e:
                sock.close()
                if e.errno == errno.EADDRINUSE:
                    logger.debug(f"Port {port} is in use, trying the next one")
                    busy.append(port)
                    continue
                logger.error(f"Failed to bind to {bind_host}:{port}: {e}")
                raise

            sock.listen(self.options.backlog)
            self._socket = sock
            self.host = bind_host
            self.port = sock.getsockname()[1]
            return self.port

        raise PortsInUseError(busy)

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info("Gracefully shutting down...")
            logger.debug(f"Received {signal.Signals(signum).name}")
            self.shutdown()

        for sig in (signal.SIGINT, signal.SIGTERM):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Accept connections until shutdown() is called. Blocks.

        Args:
            connection_handler: Called with each accepted Connection; it
                                must not block (queue the work instead).
        """
        self.bind()

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()
        self._ready_event.set()

        logger.debug(f"Listening on {self.host}:{self.port}")

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.options.buffer_size,
                timeout=self.options.timeout,
                keep_alive_timeout=self.options.keep_alive_timeout,
                max_head_size=self.options.max_head_size,
            )
            connection_handler(conn)

    def shutdown(self):
        """Stop the accept loop. Idempotent, callable from any thread."""
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
        self._ready_event.clear()
        logger.debug("Socket server stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the server is accepting connections."""
        return self._ready_event.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)
