"""Interactive orchestration of one latency run."""

from __future__ import annotations

import json
import logging
import os
import threading
import time
import webbrowser
from logging.handlers import RotatingFileHandler
from typing import Callable, List, Optional, Tuple

import pyperclip

from . import browser_script
from .aggregator import Aggregator
from .callback_server import CallbackServer, CallbackState
from .config import Config
from .correlation import CorrelationEngine, iteration_pattern, parse_iteration_id
from .errors import WaitTimeoutError
from .iterations import IterationStore
from .local_watcher import LocalDeletionWatcher
from .phases import API_TO_LOCAL_DRIVE, API_TO_WEB, LOCAL_DRIVE_TO_WEB, Phase, PhaseDriver
from .providers import LocalFolderProvider, StorageProvider, build_provider
from .tunnel import Tunnel, check_reachable

FILE_CONTENT = "<empty>"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        data = {
            "ts": int(time.time() * 1000),
            "level": record.levelname,
            "msg": record.getMessage(),
            "name": record.name,
        }
        return json.dumps(data, sort_keys=True)


def setup_logging(config: Config):
    d = os.path.dirname(config.log_file)
    if d and not os.path.exists(d): os.makedirs(d)
    fmt = JsonFormatter() if config.log_json else logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    root = logging.getLogger(); root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))
    fh = RotatingFileHandler(config.log_file, maxBytes=2*1024*1024, backupCount=2); fh.setFormatter(fmt)
    sh = logging.StreamHandler(); sh.setFormatter(fmt)
    root.handlers = []
    root.addHandler(fh); root.addHandler(sh)


class LatencyHarness:
    def __init__(self, config: Config, provider: Optional[StorageProvider] = None, tunnel: Optional[Tunnel] = None,
                 input_fn: Callable[[str], str] = input, out: Callable[..., None] = print,
                 open_url: Callable[[str], object] = webbrowser.open):
        self.config = config
        self.provider = provider
        self.tunnel = tunnel
        self.input = input_fn
        self.out = out
        self.open_url = open_url
        self.stop_event = threading.Event()
        self.store = IterationStore()
        self.aggregator = Aggregator()
        prefix = config.file_name_prefix
        self.web_engine = CorrelationEngine(self.store, API_TO_WEB.observed_field, prefix,
                                            started_field=API_TO_WEB.started_field,
                                            description="synced in web interface")
        self.local_engine = CorrelationEngine(self.store, API_TO_LOCAL_DRIVE.observed_field, prefix,
                                              started_field=API_TO_LOCAL_DRIVE.started_field,
                                              description="deleted locally")
        self.state = CallbackState()
        self.server: Optional[CallbackServer] = None
        self.watcher: Optional[LocalDeletionWatcher] = None
        self.public_url: Optional[str] = None
        self.driver = PhaseDriver(
            self.store, self.aggregator,
            pause_range=config.pause_range,
            wait_interval=config.wait_poll_interval,
            phase_timeout=config.phase_timeout or None,
            out=out,
        )
        self.phases_run: List[Phase] = []

    # --- lifecycle ---
    def start_server(self) -> CallbackServer:
        logging.info(f"Starting a trivial web server on port {self.config.web_server_port}")
        self.server = CallbackServer(self.config.web_server_host, self.config.web_server_port,
                                     self.web_engine, self.state).start()
        return self.server

    def start_tunnel(self) -> str:
        if self.tunnel is None:
            self.tunnel = Tunnel(self.server.port, self.config.ngrok_auth_token)
        self.public_url = self.tunnel.start()
        check_reachable(self.public_url, self.state.pinged, self.config.reachability_timeout)
        return self.public_url

    def shutdown(self):
        self.stop_event.set()
        if self.watcher is not None:
            self.watcher.stop()
        if self.tunnel is not None:
            self.tunnel.stop()
        if self.server is not None:
            self.server.stop()
            self.server = None
        logging.info("Shutdown complete")

    def run(self) -> List[str]:
        try:
            self.start_server()
            self.start_tunnel()
            if self.provider is None:
                self.provider = build_provider(self.config)
            self.prepare_remote_folder()
            self.offer_browser(self.provider.web_url(self.config.test_folder_path))
            self.instrument_browser()
            phases = self.config.phases
            if API_TO_WEB.name in phases:
                self.run_api_to_web()
                if LOCAL_DRIVE_TO_WEB.name in phases:
                    self.clear_remote_folder()
            if LOCAL_DRIVE_TO_WEB.name in phases:
                self.run_local_drive_to_web()
            if API_TO_LOCAL_DRIVE.name in phases:
                if self.provider.supports_local_delete_phase:
                    self.run_api_to_local_drive()
                else:
                    logging.info(f"{self.provider.display_name} does not sync web deletions locally; skipping {API_TO_LOCAL_DRIVE.name}")
            return self.print_summary()
        finally:
            self.shutdown()

    # --- operator interaction ---
    def _wait_for(self, event: threading.Event, message: str, timeout: float):
        self.out(message, end="", flush=True)
        deadline = time.monotonic() + timeout if timeout else None
        while not event.wait(2):
            if self.stop_event.is_set():
                raise KeyboardInterrupt
            if deadline is not None and time.monotonic() >= deadline:
                raise WaitTimeoutError(message.strip().rstrip("."), timeout)
            self.out(".", end="", flush=True)
        self.out("")

    def _confirm(self, question: str) -> bool:
        return self.input(f"{question} [y/n] ").strip().lower().startswith("y")

    def offer_browser(self, url: Optional[str]):
        if not url or self.config.open_browser == "no":
            return
        if self.config.open_browser == "ask" and not self._confirm(
                f"Would you like me to open your browser now to the test folder '{self.config.test_folder_path}' automatically?"):
            return
        self.open_url(url)

    def show_script(self):
        script = browser_script.render(self.config.provider, self.public_url)
        self.out(f"Run this Javascript in your browser console for the {self.provider.display_name} web view "
                 "of the folder so we can track how long it takes for the files to sync:\n\n")
        self.out(script)
        try:
            pyperclip.copy(script)
            self.out("\n\nP.S. We just copied the Javascript to your clipboard as a convenience")
        except pyperclip.PyperclipException as e:
            logging.warning(f"Could not copy the script to the clipboard: {e}")

    def instrument_browser(self):
        self.state.ready.clear()
        self.show_script()
        self._wait_for(self.state.ready, "\n\nWaiting for you to paste in the Javascript...", self.config.browser_timeout)

    # --- remote setup / cleanup ---
    def prepare_remote_folder(self):
        self.provider.ensure_folder(self.config.perf_folder)
        logging.info(f"Creating test folder '{self.config.test_folder_path}'")
        self.provider.create_folder(self.config.test_folder_path)

    def clear_remote_folder(self):
        folder = self.config.test_folder_path
        self.out("\n\nNow deleting the uploaded files to free up space in the UI for the next test.", end="")
        names = self.provider.list_entries(folder)
        for name in names:
            self.provider.delete(f"{folder}/{name}")
            self.out(".", end="", flush=True)
        self._wait_for(self.state.empty,
                       f"\nAll {len(names)} files deleted. \nWaiting for confirmation from the browser script that the "
                       "Web UI is now clear (make sure the window has focus and don't reload!).",
                       self.config.browser_timeout)

    # --- phases ---
    def file_name(self, iteration_id: int) -> str:
        return f"{self.config.file_name_prefix}-{iteration_id}.txt"

    def local_test_folder(self) -> str:
        return self.provider.local_test_folder(self.config.local_sync_root, self.config.test_folder_path)

    def _run_phase(self, phase: Phase, plan: List[Tuple[int, str]], action: Callable[[str], object]) -> List[str]:
        lines = self.driver.run(phase, plan, action)
        self.phases_run.append(phase)
        return lines

    def run_api_to_web(self) -> List[str]:
        n = self.config.iterations
        self.out(f"\n\nFirst test will now commence by uploading {n} files to {self.provider.display_name} via the API "
                 "and we'll measure how long it takes for those files to appear in the web view.")
        folder = self.config.test_folder_path
        plan = [(i, f"{folder}/{self.file_name(i)}") for i in range(n)]
        return self._run_phase(API_TO_WEB, plan, lambda path: self.provider.create(path, FILE_CONTENT))

    def _reinstrument_for_local(self, local_folder_name: str):
        self.out("Note: the desktop client does not sync from web to local, so a new local folder is used that will "
                 f"sync up to {self.provider.display_name}. Please close your {self.provider.display_name} tab now.")
        self.input("Press enter when done and we will open a new tab for you.")
        self.state.ready.clear()
        self.open_url(self.provider.web_url(""))
        self.out(f"Now navigate to the '{local_folder_name}' folder in {self.provider.display_name}.")
        if not self._confirm(f"Have you got the '{local_folder_name}' folder open in {self.provider.display_name} in your browser?"):
            raise RuntimeError("Cannot proceed without the tab manually opened")
        self.instrument_browser()

    def run_local_drive_to_web(self) -> List[str]:
        n = self.config.iterations
        self.out(f"\n\n\nSecond test will now commence by writing {n} files to the local drive and we'll measure how "
                 "long it takes for those files to appear in the web view.")
        local_folder = self.local_test_folder()
        local = LocalFolderProvider(local_folder)
        local.create_folder("")
        if self.provider.reinstrument_for_local:
            self._reinstrument_for_local(os.path.relpath(local_folder, os.path.expanduser(self.config.local_sync_root)))
        # ids continue after the first phase so both phases can share the store
        offset = n
        plan = [(offset + i, self.file_name(offset + i)) for i in range(n)]
        return self._run_phase(LOCAL_DRIVE_TO_WEB, plan, lambda name: local.create(name, FILE_CONTENT))

    def run_api_to_local_drive(self) -> List[str]:
        n = self.config.iterations
        self.out(f"\n\n\nFinal test will now commence by deleting {n} files from the API and seeing how long it takes "
                 "to reflect these changes locally")
        folder = self.config.test_folder_path
        pattern = iteration_pattern(self.config.file_name_prefix)
        plan: List[Tuple[int, str]] = []
        for name in self.provider.list_entries(folder):
            iteration_id = parse_iteration_id(name, pattern)
            if iteration_id is None:
                logging.error(f"Error! Remote file is an unrecognised format: '{name}'")
                continue
            plan.append((iteration_id, f"{folder}/{name}"))
        plan.sort()
        self.watcher = LocalDeletionWatcher(self.local_test_folder(), self.config.file_name_prefix,
                                            self.local_engine.handle,
                                            interval=self.config.local_poll_interval_ms / 1000.0)
        self.watcher.start()
        try:
            return self._run_phase(API_TO_LOCAL_DRIVE, plan, self.provider.delete)
        finally:
            self.watcher.stop()

    def print_summary(self) -> List[str]:
        lines = self.aggregator.summary_lines(self.phases_run)
        self.out(f"\n--- {self.provider.display_name} ---\n")
        for line in lines:
            self.out(line)
        return lines
