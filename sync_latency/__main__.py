import argparse
import logging
import signal
import sys
from typing import TYPE_CHECKING

from . import __version__
from .config import OPEN_BROWSER_CHOICES, PROVIDERS, Config, parse_phases

if TYPE_CHECKING:  # pragma: no cover
    from .harness import LatencyHarness  # noqa: F401


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Cloud file-sync latency harness")
    parser.add_argument("--provider", choices=PROVIDERS, help="Storage provider to test (overrides env SYNC_PROVIDER)")
    parser.add_argument("--iterations", type=int, help="Files per phase (overrides env TEST_ITERATIONS)")
    parser.add_argument("--pause-range", type=int, help="Pause between actions is a random whole number of seconds below this")
    parser.add_argument("--port", type=int, help="Local port for the callback web server")
    parser.add_argument("--phases", help="Comma-separated phases to run: api_to_web,local_drive_to_web,api_to_local_drive")
    parser.add_argument("--phase-timeout", type=float, help="Give up waiting for a phase to sync after N seconds (0 = never)")
    parser.add_argument("--browser-timeout", type=float, help="Give up waiting for the browser script after N seconds (0 = never)")
    browser = parser.add_mutually_exclusive_group()
    browser.add_argument("--open-browser", dest="open_browser", action="store_const", const="yes", help="Open the test folder in the browser without asking")
    browser.add_argument("--no-open-browser", dest="open_browser", action="store_const", const="no", help="Never open the browser")
    parser.add_argument("--log-json", action="store_true", help="Emit logs as JSON lines")
    parser.add_argument("--print-script", metavar="URL", help="Print the browser script for the given callback URL and exit")
    parser.add_argument("--version", action="store_true", help="Print version and exit")
    return parser.parse_args(argv)


def apply_args(config: Config, args) -> Config:
    if args.iterations is not None:
        config.iterations = max(1, args.iterations)
    if args.pause_range is not None:
        config.pause_range = max(0, args.pause_range)
    if args.port is not None:
        config.web_server_port = args.port
    if args.phases:
        config.phases = parse_phases(args.phases)
    if args.phase_timeout is not None:
        config.phase_timeout = max(0.0, args.phase_timeout)
    if args.browser_timeout is not None:
        config.browser_timeout = max(0.0, args.browser_timeout)
    if args.open_browser in OPEN_BROWSER_CHOICES:
        config.open_browser = args.open_browser
    if args.log_json:
        config.log_json = True
    return config


def main(argv=None):
    args = parse_args(argv)
    if args.version:
        print(f"sync-latency {__version__}")
        return 0
    try:
        config = apply_args(Config.load(args.provider), args)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    if args.print_script:
        from .browser_script import render  # noqa: PLC0415
        print(render(config.provider, args.print_script))
        return 0

    # Lazy import to avoid loading provider SDKs for --version or config-only actions
    from .harness import LatencyHarness, setup_logging  # noqa: PLC0415
    from .errors import LatencyHarnessError  # noqa: PLC0415
    setup_logging(config)
    harness = LatencyHarness(config)

    def handle_sigterm(signum, frame):  # pragma: no cover - signal path
        harness.stop_event.set()
        raise KeyboardInterrupt
    signal.signal(signal.SIGTERM, handle_sigterm)

    try:
        harness.run()
    except KeyboardInterrupt:
        logging.warning("Interrupted; tunnel and web server stopped")
        return 130
    except (LatencyHarnessError, RuntimeError) as e:
        logging.error(f"Run aborted: {e}")
        return 1
    return 0

if __name__ == '__main__':
    raise SystemExit(main(sys.argv[1:]))
