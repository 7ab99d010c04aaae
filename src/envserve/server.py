"""Static file listener serving a directory over HTTP or HTTPS."""
from __future__ import annotations

import logging
import ssl
import tempfile
from dataclasses import dataclass, field
from functools import partial
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

from .tls import CIPHERS, TLSMaterial

LOGGER = logging.getLogger(__name__)


class ServerError(RuntimeError):
    """Raised when the listener cannot be started."""


class StaticFileHandler(SimpleHTTPRequestHandler):
    """Serve files from the configured root and log through ``logging``."""

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002 - stdlib signature
        LOGGER.info("%s - %s", self.address_string(), format % args)


@dataclass
class ServerHandle:
    """Running listener owned by whoever called :func:`start_server`."""

    httpd: ThreadingHTTPServer
    root: Path
    scheme: str
    _serving: bool = field(default=False, init=False, repr=False)

    @property
    def port(self) -> int:
        """Return the bound port (useful when started on port 0)."""
        return int(self.httpd.server_address[1])

    @property
    def url(self) -> str:
        """Return the local URL of the listener."""
        return f"{self.scheme}://localhost:{self.port}"

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """Serve requests until :meth:`shutdown` is called from another thread."""
        self._serving = True
        try:
            self.httpd.serve_forever(poll_interval=poll_interval)
        finally:
            self._serving = False

    def shutdown(self) -> None:
        """Stop serving (if running) and close the listening socket."""
        if self._serving:
            self.httpd.shutdown()
        self.httpd.server_close()


def build_ssl_context(material: TLSMaterial) -> ssl.SSLContext:
    """Return a server-side SSL context for *material*.

    The CA bundle, when present, is appended to the served certificate chain.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.set_ciphers(CIPHERS)
    chain = material.cert
    if material.ca is not None:
        chain = chain.rstrip("\n") + "\n" + material.ca
    # load_cert_chain only accepts paths.
    with tempfile.TemporaryDirectory(prefix="env-serve-") as tmp:
        cert_file = Path(tmp) / "cert.pem"
        key_file = Path(tmp) / "key.pem"
        cert_file.write_text(chain, encoding="ascii")
        key_file.touch(mode=0o600)
        key_file.write_text(material.key, encoding="ascii")
        context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
    return context


def start_server(
    root: Path,
    port: int,
    *,
    tls: TLSMaterial | None = None,
    host: str = "",
) -> ServerHandle:
    """Bind a listener serving *root* on *port* and return its handle."""
    if not root.is_dir():
        raise ServerError(f"Directory to serve does not exist: {root}")

    handler = partial(StaticFileHandler, directory=str(root))
    try:
        httpd = ThreadingHTTPServer((host, port), handler)
    except OSError as exc:
        raise ServerError(f"Unable to listen on port {port}: {exc}") from exc

    if tls is None:
        return ServerHandle(httpd=httpd, root=root, scheme="http")

    try:
        context = build_ssl_context(tls)
        httpd.socket = context.wrap_socket(httpd.socket, server_side=True)
    except (OSError, ssl.SSLError) as exc:
        httpd.server_close()
        raise ServerError(f"Unable to configure HTTPS listener: {exc}") from exc
    return ServerHandle(httpd=httpd, root=root, scheme="https")


__all__ = [
    "ServerError",
    "ServerHandle",
    "StaticFileHandler",
    "build_ssl_context",
    "start_server",
]
