"""Public HTTPS tunnel to the local callback server."""

from __future__ import annotations

import logging
import threading
from typing import Optional

import httpx
from pyngrok import ngrok
from pyngrok.exception import PyngrokError

from .errors import ReachabilityError


class Tunnel:
    def __init__(self, port: int, auth_token: Optional[str] = None):
        self.port = port
        self.auth_token = auth_token
        self.public_url: Optional[str] = None

    def start(self) -> str:
        logging.info("Punching out of the network and getting a public endpoint from ngrok")
        try:
            if self.auth_token:
                ngrok.set_auth_token(self.auth_token)
            tunnel = ngrok.connect(f"localhost:{self.port}", "http", bind_tls=True)
        except PyngrokError as e:
            raise ReachabilityError(f"Could not open an ngrok tunnel to port {self.port}: {e}") from e
        self.public_url = tunnel.public_url.rstrip("/")
        logging.info(f"Ngrok setup on {self.public_url}")
        return self.public_url

    def stop(self):
        if self.public_url is None:
            return
        try:
            ngrok.disconnect(self.public_url)
            ngrok.kill()
        except PyngrokError as e:
            logging.warning(f"ngrok shutdown failed: {e}")
        self.public_url = None


def check_reachable(public_url: str, pinged: threading.Event, timeout: float = 10.0) -> None:
    """GET ``<public_url>/ping`` and require the server to have seen it."""
    ping_url = f"{public_url.rstrip('/')}/ping"
    logging.info(f"Testing that the web server is responding at {ping_url}...")
    response: object = None
    try:
        response = httpx.get(ping_url, timeout=timeout)
    except httpx.HTTPError as e:
        response = e
    # the request may return before the handler thread has flipped the flag
    if not pinged.wait(timeout):
        raise ReachabilityError(f"Web server is not accessible from outside. Response from {ping_url}:\n{response!r}")
    logging.info(f"Web server is now accessible externally at {public_url}")
