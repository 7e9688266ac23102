"""HTTP server for fan-auth using stdlib http.server.

Routes:
    GET    /fan.did                          — Agent trust document (application/jose)
    GET    /did-fan/user/{identifier}.did    — user DID document (application/jose)
    GET    /auth?address={address}           — issue a challenge (JWE)
    POST   /auth                             — submit a signed challenge response
    GET    /health                           — health check

Requests are served on a :class:`~http.server.ThreadingHTTPServer`, one
thread per connection. All state lives in the :class:`FANApplication`
bound to the handler class, so several servers can run in one process.
"""
from __future__ import annotations

import logging
import re
import urllib.parse
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from fan_auth.did.identifier import AGENT_TRUST_PATH, USER_LOOKUP_PREFIX, USER_LOOKUP_SUFFIX
from fan_auth.server import routes
from fan_auth.server.models import ErrorResponse
from fan_auth.server.routes import FANApplication, RouteResult

logger = logging.getLogger(__name__)

_USER_PATTERN = re.compile(
    "^" + re.escape(USER_LOOKUP_PREFIX) + r"([^/]+)" + re.escape(USER_LOOKUP_SUFFIX) + "$"
)
MAX_BODY_BYTES = 64 * 1024


class FANRequestHandler(BaseHTTPRequestHandler):
    """Request handler routing to the bound :class:`FANApplication`.

    Use :func:`make_handler` to obtain a subclass bound to an application.
    """

    application: FANApplication
    server_version = "fan-auth"

    def log_message(self, format: str, *args: object) -> None:
        """Route access logs through the Python logging system."""
        logger.debug(format, *args)

    # ── GET ───────────────────────────────────────────────────────────────────

    def do_GET(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path
        accept = self.headers.get("Accept")

        if path == "/health":
            result = routes.handle_health(self.application)
        elif path == AGENT_TRUST_PATH:
            result = routes.handle_agent_document(
                self.application, accept, self.headers.get("If-Modified-Since")
            )
        elif path.rstrip("/") == "/auth":
            params = urllib.parse.parse_qs(parsed.query)
            result = routes.handle_issue_challenge(
                self.application, self._first_param(params, "address"), accept
            )
        else:
            match = _USER_PATTERN.match(path)
            if match:
                result = routes.handle_user_document(
                    self.application,
                    match.group(1),
                    accept,
                    self.headers.get("If-Modified-Since"),
                )
            else:
                result = routes.not_found(f"No route for GET {path}")
        self._send(result)

    # ── POST ──────────────────────────────────────────────────────────────────

    def do_POST(self) -> None:
        parsed = urllib.parse.urlparse(self.path)
        path = parsed.path.rstrip("/")

        body = self._read_body()
        if body is None:
            return

        if path == "/auth":
            result = routes.handle_respond(self.application, body, self.headers.get("Content-Type"))
        else:
            result = routes.not_found(f"No route for POST {path}")
        self._send(result)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _send(self, result: RouteResult) -> None:
        self.send_response(result.status)
        if result.content_type is not None:
            self.send_header("Content-Type", result.content_type)
        for name, value in result.headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(result.body)))
        self.end_headers()
        if result.body:
            self.wfile.write(result.body)

    def _read_body(self) -> bytes | None:
        """Read the request body; sends an error response and returns None on bad length."""
        try:
            content_length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            content_length = -1
        if content_length < 0 or content_length > MAX_BODY_BYTES:
            self._send(
                routes.json_result(
                    413 if content_length > MAX_BODY_BYTES else 400,
                    ErrorResponse(error="Invalid body", detail="bad Content-Length"),
                )
            )
            return None
        if content_length == 0:
            return b""
        return self.rfile.read(content_length)

    @staticmethod
    def _first_param(params: dict[str, list[str]], key: str) -> str | None:
        values = params.get(key)
        return values[0] if values else None


def make_handler(application: FANApplication) -> type[FANRequestHandler]:
    """Return a handler class bound to *application*."""
    return type("BoundFANRequestHandler", (FANRequestHandler,), {"application": application})


def create_server(
    application: FANApplication,
    host: str = "0.0.0.0",
    port: int = 80,
) -> ThreadingHTTPServer:
    """Create (but do not start) a threaded fan-auth HTTP server.

    Parameters
    ----------
    application:
        Components to route to.
    host:
        Bind address (default ``"0.0.0.0"``, all interfaces).
    port:
        TCP port; ``0`` picks a free port.
    """
    server = ThreadingHTTPServer((host, port), make_handler(application))
    server.daemon_threads = True
    bound_host, bound_port = server.server_address[:2]
    logger.info("fan-auth server created at http://%s:%d (roles: %s)", bound_host, bound_port, application.roles)
    return server


def run_server(application: FANApplication, host: str = "0.0.0.0", port: int = 80) -> None:
    """Create and run the fan-auth HTTP server (blocking)."""
    server = create_server(application, host=host, port=port)
    logger.info("Serving fan-auth on http://%s:%d, press Ctrl-C to stop", host, port)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down fan-auth server.")
    finally:
        server.server_close()


def parse_listen(listen: str) -> tuple[str, int]:
    """Split ``host:port`` (IPv6 hosts in brackets) into its parts.

    Raises
    ------
    ValueError
        If the port is missing or not an integer in ``[0, 65535]``.
    """
    host, sep, port_text = listen.rpartition(":")
    if not sep or not port_text.isdigit():
        raise ValueError(f"listen address {listen!r} must be host:port")
    port = int(port_text)
    if port > 65535:
        raise ValueError(f"port {port} out of range")
    return host.strip("[]") or "0.0.0.0", port
