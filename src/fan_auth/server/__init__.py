"""HTTP server mode for fan-auth.

Serves the Agent document paths and the Web Site ``/auth`` endpoints over
a stdlib threaded HTTP server, without any web framework dependency.
"""
from __future__ import annotations

from fan_auth.server.app import FANRequestHandler, create_server, make_handler, run_server
from fan_auth.server.routes import FANApplication

__all__ = ["FANApplication", "FANRequestHandler", "create_server", "make_handler", "run_server"]
