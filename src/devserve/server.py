"""
=============================================================================
STATIC FILE SERVER
=============================================================================

Glues the pieces together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer ──accept──► ThreadPool ──► _process_connection       │
    │                                               │                      │
    │                 ┌─────────────────────────────┘                      │
    │                 ▼                                                    │
    │   keep-alive loop:                                                   │
    │     Connection.read_request()      raw bytes                         │
    │     RequestParser.parse()          HTTPRequest                       │
    │     RequestHandler.process()       HTTPResponse (headers + body)     │
    │     HTTPResponse.iter_wire()  ──►  Connection.send()                 │
    │     HTTPResponse.close()           timing.close                      │
    │     log_request(handler.data())    access log line                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Options and the FileResolver are shared by every worker and never change
after startup. Everything else lives for one request.

=============================================================================
USAGE
=============================================================================

    options = ServerOptions(root="/srv/site", ports=(8080, 8081)).validate()
    server = StaticServer(options)
    server.bind()            # pick a port; raises PortsInUseError
    print(server.port)
    server.run()             # blocks until SIGINT/SIGTERM or stop()

=============================================================================
"""

import logging
from typing import Callable, Optional

from .config import ServerOptions
from .core import Connection, SocketServer, ThreadPool
from .handlers.request_handler import RequestHandler, RequestMeta
from .http.request import HTTPParseError, HTTPRequest, RequestParser
from .http.response import HTTPResponse
from .http.status_codes import HTTPStatus, reason_phrase
from .logger import ColorUtils, log_request
from .resolver import FileResolver

logger = logging.getLogger(__name__)


class StaticServer:
    """
    Multi-threaded HTTP/1.1 static file server.

    Args:
        options: Server options; validated here.
        color: Styling for request log lines.
        on_request: Called with RequestMeta after every response. Defaults
                    to writing a line to the access log.
    """

    def __init__(
        self,
        options: ServerOptions,
        color: Optional[ColorUtils] = None,
        on_request: Optional[Callable[[RequestMeta], None]] = None,
    ):
        self.options = options.validate()
        self.resolver = FileResolver(self.options)
        self.color = color or ColorUtils(False)
        self._on_request = on_request or self._log_request

        self._socket_server = SocketServer(self.options)
        self._thread_pool = ThreadPool(
            self._process_connection,
            min_workers=self.options.min_workers,
            max_workers=self.options.max_workers,
        )
        self._parser = RequestParser(max_head_size=self.options.max_head_size)
        self._running = False

    @property
    def host(self) -> str:
        return self._socket_server.host

    @property
    def port(self) -> Optional[int]:
        return self._socket_server.port

    @property
    def is_running(self) -> bool:
        return self._running

    def bind(self) -> int:
        """Bind the first free port. Safe to call before run()."""
        return self._socket_server.bind()

    def run(self) -> None:
        """Serve until stop() is called or SIGINT/SIGTERM arrives. Blocks."""
        self.bind()
        self._running = True
        self._thread_pool.start()

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Gracefully shutting down...")
        finally:
            self._shutdown()

    def stop(self) -> None:
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _shutdown(self) -> None:
        self._running = False
        # Kept-alive connections notice within keep_alive_timeout
        self._thread_pool.shutdown(timeout=self.options.keep_alive_timeout + 1.0)
        logger.debug("Server stopped")

    def _log_request(self, meta: RequestMeta) -> None:
        log_request(meta, self.color)

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Queue a connection for a worker (called by the accept loop)."""
        if not self._thread_pool.submit(conn):
            logger.warning(f"[{conn.id}] Worker queue full, rejecting connection")
            self._send_plain_error(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """Keep-alive loop for one connection (runs in a worker thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug(f"[{conn.id}] Bad request: {e}")
                    self._send_plain_error(conn, e.status_code, str(e))
                    break
                except TimeoutError:
                    self._send_plain_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                request.alive_check = conn.is_alive

                if not self._handle_request(conn, request):
                    break
                conn.set_keep_alive()

    def _handle_request(self, conn: Connection, request: HTTPRequest) -> bool:
        """
        Answer one request.

        Returns:
            True if the connection can be reused for another request.
        """
        response = HTTPResponse(version=request.version)
        response.keep_alive = request.is_keep_alive and self._running

        handler = RequestHandler(request, response, self.resolver, self.options)
        try:
            handler.process()
            sent = self._write_response(conn, response, head_only=request.method == "HEAD")
        finally:
            response.close()
            self._on_request(handler.data())

        return sent and response.keep_alive

    def _write_response(self, conn: Connection, response: HTTPResponse, head_only: bool) -> bool:
        keep_alive_timeout = int(self.options.keep_alive_timeout) if response.keep_alive else None
        pieces = response.iter_wire(head_only=head_only, keep_alive_timeout=keep_alive_timeout)
        try:
            for piece in pieces:
                if not conn.send(piece):
                    response.keep_alive = False
                    return False
        except OSError as e:
            # Headers are gone already; closing is the only way to signal it
            logger.warning(f"[{conn.id}] Failed while streaming the response body: {e}")
            response.keep_alive = False
            return False
        finally:
            pieces.close()
        return True

    def _send_plain_error(self, conn: Connection, status: int, message: str) -> None:
        """Minimal text response for errors raised before a request exists."""
        response = HTTPResponse(status=status)
        response.keep_alive = False
        response.set_header("Content-Type", "text/plain; charset=UTF-8")
        response.end(f"{status} {reason_phrase(status)}: {message}\n")
        conn.send(response.to_bytes())
