"""
=============================================================================
CONTROL SERVER CLI ENTRY POINT
=============================================================================

    # Run the server with defaults (127.0.0.1:1111)
    python -m controlserver serve

    # Log every received payload
    python -m controlserver serve --port 3000 --debug

    # Talk to a running server
    python -m controlserver send "ping"
    python -m controlserver stop

Environment variables (CONTROL_HOST, CONTROL_PORT, CONTROL_DEBUG, ...)
provide the defaults; command-line flags override them.

=============================================================================
"""

import argparse
import sys
from dataclasses import replace

from . import __version__
from .client import ControlClient
from .config import ServerConfig
from .server import ControlServer, setup_logging


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="controlserver",
        description="Single-threaded TCP control server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m controlserver serve                  # Run with defaults
  python -m controlserver serve --port 3000      # Custom port
  python -m controlserver serve --debug          # Log received payloads
  python -m controlserver send "ping"            # Send one command
  python -m controlserver stop                   # Stop a running server
        """,
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"controlserver {__version__}",
    )

    # Shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Server host (default: {defaults.host})",
    )
    common.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Server port (default: {defaults.port})",
    )
    common.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", parents=[common], help="Run the server")
    serve.add_argument(
        "--debug", "-d",
        action="store_true",
        default=defaults.debug,
        help="Log every received payload",
    )
    serve.add_argument(
        "--buffer-size", "-b",
        type=int,
        default=defaults.buffer_size,
        help=f"Transfer buffer capacity in bytes (default: {defaults.buffer_size})",
    )

    send = commands.add_parser("send", parents=[common], help="Send a command and print the reply")
    send.add_argument("text", help="Command text")

    commands.add_parser("stop", parents=[common], help="Send STOP_SERVER")

    return parser


def main(argv=None) -> int:
    defaults = ServerConfig.from_env()
    args = build_parser(defaults).parse_args(argv)

    setup_logging(args.log_level)

    try:
        if args.command == "serve":
            config = replace(
                defaults,
                host=args.host,
                port=args.port,
                debug=args.debug,
                buffer_size=args.buffer_size,
                log_level=args.log_level,
            )
            server = ControlServer(config)
            server.platform.on_interrupt_signal()
            server.run()

        elif args.command == "send":
            with ControlClient(args.host, args.port) as client:
                print(client.send(args.text))

        elif args.command == "stop":
            ControlClient(args.host, args.port).stop()

    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
