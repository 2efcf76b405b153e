"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Callable, Dict, Generator, List, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from devserve import ServerOptions, StaticServer
from devserve.handlers import RequestMeta


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/guide?page=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept-Encoding: gzip, deflate\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a form body."""
    body = b"name=John&email=john%40example.com"
    return (
        b"POST /contact HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


# ─────────────────────────────────────────────────────────────────────────────
# SITE TREE
# ─────────────────────────────────────────────────────────────────────────────

SITE_FILES: Dict[str, str] = {
    "index.html": "<!doctype html><h1>Home</h1>",
    "about.html": "<!doctype html><h1>About</h1>",
    "readme.md": "# Readme\n",
    "manifest.json": '{"name": "site"}',
    "style.css": "body { color: red; }\n",
    "section/index.html": "<h1>Section</h1>",
    "section/page.html": "<h1>Page</h1>",
    "section/notes.txt": "notes\n",
    "docs/guide.txt": "guide\n",
    "docs/api/reference.txt": "reference\n",
    ".env": "SECRET=1\n",
    ".well-known/security.txt": "Contact: mailto:security@example.com\n",
    "assets/.hidden": "hidden\n",
}


def write_tree(root: Path, files: Dict[str, object]) -> Path:
    """Create files (str or bytes content) below root."""
    for rel_path, content in files.items():
        path = root / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """
    A small static site:

        index.html  about.html  readme.md  manifest.json  style.css
        section/    index.html  page.html  notes.txt
        docs/       guide.txt   api/reference.txt       (no index)
        .env        .well-known/security.txt
        assets/     logo.png    .hidden                 (no index)
    """
    root = tmp_path.resolve() / "site"
    root.mkdir()
    write_tree(root, SITE_FILES)
    (root / "assets" / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n" + bytes(range(256)))
    return root


@pytest.fixture
def options(site: Path) -> ServerOptions:
    return ServerOptions(root=str(site))


# ─────────────────────────────────────────────────────────────────────────────
# NETWORK HELPERS
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def read_response(sock: socket.socket, head: bool = False) -> Tuple[str, Dict[str, str], bytes]:
    """
    Read one response from sock. head=True for responses to HEAD.

    Handles Content-Length and chunked bodies; for anything else reads
    until the server closes the connection. Chunked bodies are returned
    de-chunked.

    Returns:
        (status_line, headers with lowercase names, body)
    """
    buffer = b""
    while b"\r\n\r\n" not in buffer:
        data = sock.recv(65536)
        if not data:
            break
        buffer += data

    head_bytes, _, rest = buffer.partition(b"\r\n\r\n")
    lines = head_bytes.decode("latin-1").split("\r\n")
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()

    status = int(lines[0].split()[1])
    if head or status in (204, 304):
        return lines[0], headers, b""

    if "content-length" in headers:
        length = int(headers["content-length"])
        while len(rest) < length:
            data = sock.recv(65536)
            if not data:
                break
            rest += data
        return lines[0], headers, rest[:length]

    if headers.get("transfer-encoding") == "chunked":
        body = b""
        while True:
            while b"\r\n" not in rest:
                rest += sock.recv(65536)
            size_line, _, rest = rest.partition(b"\r\n")
            size = int(size_line, 16)
            while len(rest) < size + 2:
                rest += sock.recv(65536)
            body += rest[:size]
            rest = rest[size + 2:]
            if size == 0:
                return lines[0], headers, body

    while True:
        data = sock.recv(65536)
        if not data:
            return lines[0], headers, rest
        rest += data


def send_request(
    port: int,
    method: str = "GET",
    target: str = "/",
    headers: Optional[Dict[str, str]] = None,
    version: str = "HTTP/1.1",
) -> Tuple[str, Dict[str, str], bytes]:
    """Open a connection, send one request, read one response."""
    with socket.create_connection(("127.0.0.1", port), timeout=5) as sock:
        sock.sendall(build_request(method, target, headers, version))
        return read_response(sock, head=method == "HEAD")


def build_request(
    method: str = "GET",
    target: str = "/",
    headers: Optional[Dict[str, str]] = None,
    version: str = "HTTP/1.1",
) -> bytes:
    lines = [f"{method} {target} {version}", "Host: localhost"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


# ─────────────────────────────────────────────────────────────────────────────
# BACKGROUND SERVER
# ─────────────────────────────────────────────────────────────────────────────

class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False

    def __init__(self, server: StaticServer, requests: Optional[List[RequestMeta]] = None):
        self.server = server
        self.requests = requests if requests is not None else []
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.port

    def start(self):
        """Start server in background thread."""
        self.server.bind()
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        """Stop the server."""
        self.server.stop()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=10.0)

    def request(self, method: str = "GET", target: str = "/", headers: Optional[Dict[str, str]] = None, version: str = "HTTP/1.1"):
        return send_request(self.port, method, target, headers, version)


@pytest.fixture
def make_server(free_port: int) -> Generator[Callable[..., TestServer], None, None]:
    """
    Factory for background servers on a free port:

        server = make_server(root=str(site), cors=True)
    """
    started: List[TestServer] = []

    def factory(**kwargs) -> TestServer:
        kwargs.setdefault("host", "127.0.0.1")
        kwargs.setdefault("ports", (free_port,))
        kwargs.setdefault("min_workers", 2)
        kwargs.setdefault("max_workers", 4)
        kwargs.setdefault("keep_alive_timeout", 1.0)
        requests: List[RequestMeta] = []
        server = StaticServer(ServerOptions(**kwargs), on_request=requests.append)
        test_srv = TestServer(server, requests)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield factory

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(make_server, site: Path) -> TestServer:
    """A running server for the site fixture with default options."""
    return make_server(root=str(site))
