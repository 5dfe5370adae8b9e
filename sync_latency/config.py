"""Configuration loader for sync-latency.

Reads environment variables (with optional .env support) and exposes a typed
Config object used by the rest of the application.
"""

from __future__ import annotations

import os
import random
import secrets
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

PROVIDERS = ("dropbox", "google_drive")
PHASE_NAMES = ("api_to_web", "local_drive_to_web", "api_to_local_drive")
OPEN_BROWSER_CHOICES = ("ask", "yes", "no")

DEFAULT_PERF_FOLDERS = {
    "dropbox": "DropboxPerfTest",
    "google_drive": "GoogleDrivePerfTest",
}
DEFAULT_LOCAL_ROOTS = {
    "dropbox": "~/Dropbox",
    "google_drive": "~/Google Drive File Stream/My Drive",
}


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    value = value.strip().lower()
    if value in {"1", "true", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _parse_int(name: str, value: Optional[str], default: int) -> int:
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValueError(f"Invalid {name}: {value}") from e


def _parse_float(name: str, value: Optional[str], default: float) -> float:
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ValueError(f"Invalid {name}: {value}") from e


def _parse_list(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return tuple()
    parts = [p.strip() for p in value.split(",")]
    return tuple(p for p in parts if p)


def parse_phases(value: Optional[str]) -> Tuple[str, ...]:
    phases = _parse_list(value)
    if not phases:
        return PHASE_NAMES
    unknown = [p for p in phases if p not in PHASE_NAMES]
    if unknown:
        raise ValueError(f"Invalid PHASES: {','.join(unknown)}")
    if "api_to_local_drive" in phases and "local_drive_to_web" not in phases:
        # the delete phase removes the files written by the local phase
        raise ValueError("Invalid PHASES: api_to_local_drive requires local_drive_to_web")
    return tuple(p for p in PHASE_NAMES if p in phases)


def random_port() -> int:
    return random.randrange(10000) + 10000


@dataclass
class Config:
    # Provider / credentials
    provider: str = "dropbox"
    dropbox_access_token: Optional[str] = None
    dropbox_config_file: str = "dropbox_config.json"
    google_drive_credentials_file: str = "google_drive_credentials.json"
    google_drive_settings_file: Optional[str] = None
    use_keyring: bool = False
    keyring_service: str = "sync-latency"

    # Test layout
    perf_folder: str = DEFAULT_PERF_FOLDERS["dropbox"]
    local_sync_root: str = os.path.expanduser(DEFAULT_LOCAL_ROOTS["dropbox"])
    test_id: str = ""
    file_name_prefix: str = "iteration"
    iterations: int = 20  # more than this and some web UIs lazy-load the list, hiding files from the script
    pause_range: int = 15
    phases: Tuple[str, ...] = PHASE_NAMES

    # Callback server / tunnel
    web_server_host: str = "127.0.0.1"
    web_server_port: int = 0
    ngrok_auth_token: Optional[str] = None
    reachability_timeout: float = 10.0

    # Waiting
    local_poll_interval_ms: int = 100
    wait_poll_interval: float = 1.0
    phase_timeout: float = 0.0  # 0 = wait forever
    browser_timeout: float = 0.0
    open_browser: str = "ask"

    # Logging
    log_level: str = "INFO"
    log_file: str = os.path.expanduser("~/sync-latency.log")
    log_json: bool = False

    @property
    def test_folder_path(self) -> str:
        return f"{self.perf_folder}/{self.test_id}"

    @staticmethod
    def load(provider: Optional[str] = None) -> "Config":
        # Load .env if present
        load_dotenv()

        provider = (provider or os.getenv("SYNC_PROVIDER", "dropbox")).strip().lower()
        if provider not in PROVIDERS:
            raise ValueError(f"Invalid SYNC_PROVIDER: {provider}")

        # Credentials
        dropbox_access_token = os.getenv("DROPBOX_ACCESS_TOKEN") or None
        dropbox_config_file = os.getenv("DROPBOX_CONFIG_FILE", "dropbox_config.json")
        gd_credentials = os.getenv("GOOGLE_DRIVE_CREDENTIALS_FILE", "google_drive_credentials.json")
        gd_settings = os.getenv("GOOGLE_DRIVE_SETTINGS_FILE") or None
        use_keyring = _parse_bool(os.getenv("USE_KEYRING"), False)
        keyring_service = os.getenv("KEYRING_SERVICE", "sync-latency")

        # Test layout
        perf_folder = os.getenv("PERF_FOLDER") or DEFAULT_PERF_FOLDERS[provider]
        local_sync_root = os.path.expanduser(os.getenv("LOCAL_SYNC_ROOT") or DEFAULT_LOCAL_ROOTS[provider])
        test_id = os.getenv("TEST_ID") or secrets.token_hex(3)
        prefix = os.getenv("FILE_NAME_PREFIX", "iteration").strip() or "iteration"
        iterations = _parse_int("TEST_ITERATIONS", os.getenv("TEST_ITERATIONS"), 20)
        if iterations < 1:
            iterations = 1
        pause_range = _parse_int("TEST_PAUSE_RANGE", os.getenv("TEST_PAUSE_RANGE"), 15)
        if pause_range < 0:
            pause_range = 0
        phases = parse_phases(os.getenv("PHASES"))

        # Server / tunnel
        host = os.getenv("WEB_SERVER_HOST", "127.0.0.1")
        port = _parse_int("WEB_SERVER_PORT", os.getenv("WEB_SERVER_PORT"), 0)
        if port <= 0:
            port = random_port()
        ngrok_auth_token = os.getenv("NGROK_AUTH_TOKEN") or None
        reachability_timeout = _parse_float("REACHABILITY_TIMEOUT", os.getenv("REACHABILITY_TIMEOUT"), 10.0)

        # Waiting
        poll_ms = _parse_int("LOCAL_POLL_INTERVAL_MS", os.getenv("LOCAL_POLL_INTERVAL_MS"), 100)
        if poll_ms < 10:
            poll_ms = 10
        wait_poll = _parse_float("WAIT_POLL_INTERVAL", os.getenv("WAIT_POLL_INTERVAL"), 1.0)
        if wait_poll <= 0:
            wait_poll = 1.0
        phase_timeout = max(0.0, _parse_float("PHASE_TIMEOUT", os.getenv("PHASE_TIMEOUT"), 0.0))
        browser_timeout = max(0.0, _parse_float("BROWSER_TIMEOUT", os.getenv("BROWSER_TIMEOUT"), 0.0))
        open_browser = os.getenv("OPEN_BROWSER", "ask").strip().lower()
        if open_browser not in OPEN_BROWSER_CHOICES:
            open_browser = "ask"

        # Logging
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        log_file = os.path.expanduser(os.getenv("LOG_FILE", "~/sync-latency.log"))
        log_json = _parse_bool(os.getenv("LOG_JSON"), False)

        return Config(
            provider=provider,
            dropbox_access_token=dropbox_access_token,
            dropbox_config_file=dropbox_config_file,
            google_drive_credentials_file=gd_credentials,
            google_drive_settings_file=gd_settings,
            use_keyring=use_keyring,
            keyring_service=keyring_service,
            perf_folder=perf_folder,
            local_sync_root=local_sync_root,
            test_id=test_id,
            file_name_prefix=prefix,
            iterations=iterations,
            pause_range=pause_range,
            phases=phases,
            web_server_host=host,
            web_server_port=port,
            ngrok_auth_token=ngrok_auth_token,
            reachability_timeout=reachability_timeout,
            local_poll_interval_ms=poll_ms,
            wait_poll_interval=wait_poll,
            phase_timeout=phase_timeout,
            browser_timeout=browser_timeout,
            open_browser=open_browser,
            log_level=log_level,
            log_file=log_file,
            log_json=log_json,
        )
