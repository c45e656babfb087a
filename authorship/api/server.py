"""
HTTP server for the registry API.

Uses stdlib http.server. Routes requests to handler functions in
handlers.py. The server's own clock supplies the authoritative time for
claim submissions.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable
from urllib.parse import parse_qs, urlsplit

from authorship import API_DEFAULT_HOST, API_DEFAULT_PORT, API_MAX_UPLOAD_BYTES
from authorship.api.auth import API_KEY_ENV, api_key_path, check_auth, load_api_key
from authorship.api.handlers import (
    handle_event_proof,
    handle_events,
    handle_fingerprint,
    handle_lookup,
    handle_status,
    handle_submit_claim,
    handle_verify,
)
from authorship.clock import unix_now

logger = logging.getLogger(__name__)

# Route patterns
_CLAIM_RE = re.compile(r"^/claims/([^/]+)$")
_EVENT_PROOF_RE = re.compile(r"^/events/([0-9]+)/proof$")


class RegistryAPIHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the registry API.

    Server-level dependencies (registry, api_key, clock) are attached to the
    server instance and accessed via self.server.
    """

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug(format, *args)

    def _send_json(self, status: int, data: dict, close: bool = False) -> None:
        body = json.dumps(data, indent=2).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        if close:
            # also sets close_connection
            self.send_header("Connection", "close")
        self.end_headers()
        self.wfile.write(body)

    def _read_body(self) -> bytes | None:
        """Read the request body. Returns None if it exceeds the upload limit."""
        try:
            length = int(self.headers.get("Content-Length", 0))
        except ValueError:
            length = 0
        if length > API_MAX_UPLOAD_BYTES:
            return None
        if length <= 0:
            return b""
        return self.rfile.read(length)

    def _require_auth(self) -> bool:
        """Check Bearer auth. Returns True if authorized, sends 401 if not."""
        api_key = self.server.api_key  # type: ignore[attr-defined]
        if not check_auth(self.headers.get("Authorization", ""), api_key):
            self._send_json(401, {"error": "Unauthorized — provide Authorization: Bearer <key>"})
            return False
        return True

    def do_GET(self) -> None:
        url = urlsplit(self.path)
        path = url.path
        registry = self.server.registry  # type: ignore[attr-defined]

        # GET /status
        if path == "/status":
            self._send_json(*handle_status(registry))
            return

        # GET /events?since=N
        if path == "/events":
            since = parse_qs(url.query).get("since", [None])[0]
            self._send_json(*handle_events(since, registry))
            return

        # GET /events/<seq>/proof
        m = _EVENT_PROOF_RE.match(path)
        if m:
            self._send_json(*handle_event_proof(int(m.group(1)), registry))
            return

        # GET /claims/<fingerprint>
        m = _CLAIM_RE.match(path)
        if m:
            self._send_json(*handle_lookup(m.group(1), registry))
            return

        self._send_json(404, {"error": "Not found"})

    def do_POST(self) -> None:
        path = urlsplit(self.path).path
        server = self.server  # type: ignore[attr-defined]

        # Oversized bodies are refused unread; the connection is closed after the reply
        body = self._read_body()
        if body is None:
            self._send_json(
                413, {"error": f"Payload too large (max {API_MAX_UPLOAD_BYTES} bytes)"},
                close=True,
            )
            return

        # POST /fingerprint
        if path == "/fingerprint":
            self._send_json(*handle_fingerprint(body))
            return

        # POST /claims
        if path == "/claims":
            if not self._require_auth():
                return
            self._send_json(*handle_submit_claim(body, server.registry, server.clock()))
            return

        # POST /verify
        if path == "/verify":
            self._send_json(*handle_verify(body, server.registry))
            return

        self._send_json(404, {"error": "Not found"})


class RegistryAPIServer(HTTPServer):
    """HTTPServer subclass that carries API dependencies."""

    def __init__(
        self,
        address: tuple[str, int],
        registry: Any,
        api_key: str,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        super().__init__(address, RegistryAPIHandler)
        self.registry = registry
        self.api_key = api_key
        self.clock = clock


def run_api(
    registry: Any,
    host: str = API_DEFAULT_HOST,
    port: int = API_DEFAULT_PORT,
    root: str | None = None,
) -> None:
    """Start the registry API server (blocking).

    Args:
        registry: ClaimRegistry instance
        host: Bind address (default 127.0.0.1)
        port: Listen port (default 8080)
        root: Registry directory holding api_key (default ~/.authorship)
    """
    api_key = load_api_key(root)
    if not api_key:
        print(
            "WARNING: No API key configured. POST /claims will reject all requests.\n"
            f"Set {API_KEY_ENV} or create {api_key_path(root)}",
            file=sys.stderr,
        )

    server = RegistryAPIServer((host, port), registry, api_key)
    unsubscribe = registry.subscribe(
        lambda ev: logger.info(
            "Claimed %s at %d by %s", ev.fingerprint, ev.timestamp, ev.submitter
        )
    )

    print(f"Authorship registry API listening on http://{host}:{port}")
    print("  POST /fingerprint          — fingerprint the request body")
    print("  POST /claims               — submit a claim (auth required)")
    print("  GET  /claims/<fp>          — look up a claim")
    print("  POST /verify               — verify all claim fields")
    print("  GET  /events?since=N       — accepted claims")
    print("  GET  /events/<seq>/proof   — Merkle inclusion proof")
    print("  GET  /status               — service health")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        unsubscribe()
        server.server_close()
