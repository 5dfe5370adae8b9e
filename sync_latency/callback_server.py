"""HTTP endpoint pinged by the browser instrumentation script.

The endpoint is public (it sits behind the tunnel) and unauthenticated. The
correlation engine validates every signal, so the worst a stray caller can do
is produce a dropped signal.
"""

from __future__ import annotations

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from .correlation import CorrelationEngine


class CallbackState:
    """Flags flipped by the browser script."""

    def __init__(self):
        self.pinged = threading.Event()
        self.ready = threading.Event()
        self.empty = threading.Event()


def _parse_ts_ms(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return int(value.strip()) / 1000.0
    except ValueError:
        return None


class CallbackHandler(BaseHTTPRequestHandler):
    server: "CallbackServer"

    def do_GET(self):  # noqa: N802
        parts = urlsplit(self.path)
        route = parts.path.rstrip("/") or "/"
        state = self.server.state
        if route == "/ping":
            logging.info("Ping successfully received in web server")
            state.pinged.set()
            self._reply(cors=False)
        elif route == "/ready":
            logging.info("Browser instrumentation attached")
            state.ready.set()
            self._reply()
        elif route == "/empty":
            logging.info("Browser reports the file list is empty")
            state.empty.set()
            self._reply()
        elif route == "/sync":
            state.empty.clear()
            params = parse_qs(parts.query)
            file_name = params.get("fileName", [None])[0]
            observed_at = _parse_ts_ms(params.get("ts", [None])[0])
            self.server.engine.handle(file_name, observed_at)
            self._reply()
        else:
            self._reply(status=404)

    def _reply(self, status: int = 200, cors: bool = True):
        self.send_response(status)
        if cors:
            self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format, *args):  # silence
        logging.debug("callback_http: " + format % args)


class CallbackServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, host: str, port: int, engine: CorrelationEngine, state: Optional[CallbackState] = None):
        super().__init__((host, port), CallbackHandler)
        self.engine = engine
        self.state = state or CallbackState()
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server_address[1]

    def start(self) -> "CallbackServer":
        self._thread = threading.Thread(target=self.serve_forever, name="callback-http", daemon=True)
        self._thread.start()
        logging.info(f"Callback HTTP server started on {self.server_address[0]}:{self.port}")
        return self

    def stop(self):
        if self._thread is not None:
            self.shutdown()
            self._thread.join(timeout=5)
            self._thread = None
        self.server_close()
