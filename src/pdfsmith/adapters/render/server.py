"""Loopback HTTP server exposing build output to the headless browser."""

from __future__ import annotations

from collections.abc import Callable
import errno
from functools import partial
from http import HTTPStatus
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
import logging
from pathlib import Path
import threading
from typing import TypeVar
from urllib.parse import unquote, urlsplit

from pdfsmith.core.exceptions import PortExhaustionError


logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_BASE_PORT = 44154
DEFAULT_PORT_WINDOW = 100
_BUSY_ERRNOS = {errno.EADDRINUSE, errno.EACCES}

T = TypeVar("T")


class _ContentHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = False

    def __init__(self, address: tuple[str, int], handler: type, *, content: ContentServer) -> None:
        self.content = content
        super().__init__(address, handler)


class _ContentRequestHandler(SimpleHTTPRequestHandler):
    """Serve published markup first, then files below the served directory."""

    server: _ContentHTTPServer

    def do_GET(self) -> None:  # noqa: N802 - http.server API
        if not self._send_published(head_only=False):
            super().do_GET()

    def do_HEAD(self) -> None:  # noqa: N802 - http.server API
        if not self._send_published(head_only=True):
            super().do_HEAD()

    def translate_path(self, path: str) -> str:
        content = self.server.content
        if content.root is None:
            return str(Path(self.directory) / "__pdfsmith_missing__")
        relative = content.strip_prefix(urlsplit(path).path)
        return super().translate_path("/" + relative)

    def _send_published(self, *, head_only: bool) -> bool:
        content = self.server.content
        key = content.strip_prefix(unquote(urlsplit(self.path).path))
        markup = content.published(key)
        if markup is None:
            return False
        payload = markup.encode("utf-8")
        self.send_response(HTTPStatus.OK)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.send_header("Cache-Control", "no-store")
        self.end_headers()
        if not head_only:
            self.wfile.write(payload)
        return True

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("content server: " + format, *args)


class ContentServer:
    """Serve ``root`` (and in-memory pages) on the first free loopback port."""

    def __init__(
        self,
        root: Path | None = None,
        *,
        path_prefix: str = "",
        base_port: int = DEFAULT_BASE_PORT,
        port_window: int = DEFAULT_PORT_WINDOW,
        host: str = LOOPBACK_HOST,
    ) -> None:
        self.root = Path(root).resolve() if root is not None else None
        self.path_prefix = path_prefix.strip("/")
        self.base_port = base_port
        self.port_window = port_window
        self.host = host
        self._httpd: _ContentHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._published: dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def port(self) -> int | None:
        return self._httpd.server_address[1] if self._httpd is not None else None

    @property
    def running(self) -> bool:
        return self._httpd is not None

    def start(self) -> int:
        """Bind the server and start serving on a daemon thread."""
        if self._httpd is not None:
            return self._httpd.server_address[1]
        directory = str(self.root) if self.root is not None else str(Path.cwd())
        handler = partial(_ContentRequestHandler, directory=directory)
        self._httpd = bind_first_free(
            lambda port: _ContentHTTPServer((self.host, port), handler, content=self),
            base_port=self.base_port,
            window=self.port_window,
        )
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, name="pdfsmith-content-server", daemon=True
        )
        self._thread.start()
        port = self._httpd.server_address[1]
        logger.debug("content server bound to %s:%s (root=%s)", self.host, port, self.root)
        return port

    def stop(self) -> None:
        httpd, self._httpd = self._httpd, None
        if httpd is None:
            return
        httpd.shutdown()
        httpd.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def url_for(self, relative: str) -> str:
        """Return the absolute URL of a path below the served root."""
        if self._httpd is None:
            raise RuntimeError("The content server is not running.")
        parts = [part for part in (self.path_prefix, relative.lstrip("/")) if part]
        path = "/".join(parts)
        if relative.endswith("/") and path and not path.endswith("/"):
            path += "/"
        return f"http://{self.host}:{self.port}/{path}"

    def strip_prefix(self, path: str) -> str:
        relative = path.lstrip("/")
        if self.path_prefix and (
            relative == self.path_prefix or relative.startswith(self.path_prefix + "/")
        ):
            relative = relative[len(self.path_prefix) :].lstrip("/")
        return relative

    def publish(self, relative: str, markup: str) -> None:
        """Serve ``markup`` at ``relative`` in place of any file on disk."""
        with self._lock:
            self._published[relative.lstrip("/")] = markup

    def unpublish(self, relative: str) -> None:
        with self._lock:
            self._published.pop(relative.lstrip("/"), None)

    def published(self, relative: str) -> str | None:
        with self._lock:
            return self._published.get(relative.lstrip("/"))


def bind_first_free(factory: Callable[[int], T], *, base_port: int, window: int) -> T:
    """Call ``factory(port)`` on successive ports until one binds."""
    last_error: OSError | None = None
    for port in range(base_port, base_port + window):
        try:
            return factory(port)
        except OSError as exc:
            if exc.errno not in _BUSY_ERRNOS:
                raise
            last_error = exc
    raise PortExhaustionError(
        f"No free loopback port between {base_port} and {base_port + window - 1}."
    ) from last_error


__all__ = [
    "DEFAULT_BASE_PORT",
    "DEFAULT_PORT_WINDOW",
    "LOOPBACK_HOST",
    "ContentServer",
    "bind_first_free",
]
