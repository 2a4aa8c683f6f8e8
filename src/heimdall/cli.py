"""
Heimdall command line.

`serve` (the default) runs the control panel; the other subcommands talk to
a running server over HTTP.
"""

import argparse
import atexit
import logging
import signal
import sys
from typing import List, Optional

from . import __version__
from .client import ClientError, HeimdallClient
from .config import RuntimeOptions
from .control import ControlPanel
from .errors import HeimdallError
from .logging_setup import configure_logging
from .store import ConfigStore

logger = logging.getLogger(__name__)


SUBCOMMANDS = ("serve", "devices", "status", "connect", "disconnect")


def _add_logging_flags(parser: argparse.ArgumentParser, options: Optional[RuntimeOptions]) -> None:
    # subcommands use SUPPRESS so they don't overwrite a value given before the subcommand
    level = options.log_level if options else argparse.SUPPRESS
    fmt = options.log_format if options else argparse.SUPPRESS
    parser.add_argument("--log-level", default=level, help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-format", default=fmt, choices=["text", "json"], help="Log format")


def build_parser(options: RuntimeOptions) -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    _add_logging_flags(common, None)

    parser = argparse.ArgumentParser(prog="heimdall", description="Heimdall remote desktop control panel")
    parser.add_argument("--version", action="version", version=f"Heimdall version {__version__}")
    _add_logging_flags(parser, options)
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", parents=[common], help="Run the control panel (default)")
    serve.add_argument("--config", default=options.config_file, help="Path to configuration file")
    serve.add_argument("--host", default=options.host, help="Address to bind")
    serve.add_argument("--port", type=int, default=options.port, help="Port to listen on")
    serve.add_argument("--vnc", dest="vnc_viewer", default=options.vnc_viewer, help="VNC viewer executable")
    serve.add_argument("--vnc-password-file", default=options.vnc_password_file, help="VNC password file")
    serve.add_argument("--rdp", dest="rdp_viewer", default=options.rdp_viewer, help="RDP viewer executable")
    serve.add_argument("--no-color", action="store_true", default=options.no_color,
                       help="Disable ANSI colors in request logs")

    for name, help_text in [("devices", "List devices"), ("status", "Show the active connection"),
                            ("disconnect", "Close the active connection")]:
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        sub.add_argument("--url", default=options.url, help="Heimdall server URL")

    connect = subparsers.add_parser("connect", parents=[common], help="Connect to a device")
    connect.add_argument("device_id")
    connect.add_argument("--url", default=options.url, help="Heimdall server URL")
    return parser


def serve(args: argparse.Namespace) -> int:
    # deferred so client subcommands don't pull in Flask
    from .web_server import HeimdallServer

    options = RuntimeOptions(
        config_file=args.config,
        host=args.host,
        port=args.port,
        vnc_viewer=args.vnc_viewer,
        vnc_password_file=args.vnc_password_file,
        rdp_viewer=args.rdp_viewer,
    )
    try:
        panel = ControlPanel.load(ConfigStore(options.config_file))
        panel.apply_overrides(options)
    except HeimdallError as e:
        logger.error(f"Failed to load config: {e}")
        return 1

    atexit.register(panel.shutdown)
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    server = HeimdallServer(panel, host=options.host, color=not args.no_color)
    try:
        server.run()
    except KeyboardInterrupt:
        print("\n🛑 Heimdall stopped by user")
    finally:
        signal.signal(signal.SIGTERM, previous)
        panel.shutdown()
    return 0


def _raise_interrupt(signum, frame):
    # SIGTERM takes the same path as Ctrl+C so the viewer is torn down
    logger.info(f"Received {signal.Signals(signum).name}, shutting down")
    raise KeyboardInterrupt


def run_client_command(args: argparse.Namespace) -> int:
    client = HeimdallClient(args.url)
    try:
        if args.command == "devices":
            for device in client.get_devices():
                print(f"{device['id']}\t{device['name']}\t{device['protocol']}\t{device['ip_address']}")
        elif args.command == "status":
            current = client.status().get("current_device")
            print(f"Connected to {current}" if current else "Not connected")
        elif args.command == "connect":
            client.connect(args.device_id)
            print(f"Connected to {args.device_id}")
        elif args.command == "disconnect":
            client.disconnect()
            print("Disconnected")
    except ClientError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    try:
        options = RuntimeOptions()
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    argv = list(sys.argv[1:] if argv is None else argv)
    if not any(arg in SUBCOMMANDS for arg in argv) and not {"-h", "--help", "--version"} & set(argv):
        argv.insert(0, "serve")

    parser = build_parser(options)
    args = parser.parse_args(argv)

    try:
        configure_logging(args.log_level, args.log_format)
    except ValueError as e:
        parser.error(str(e))

    if args.command == "serve":
        return serve(args)
    return run_client_command(args)


if __name__ == "__main__":
    sys.exit(main())
