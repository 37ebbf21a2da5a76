"""
vecsum server entry point

1. Parses command-line options (defaults come from Settings / VECSUM_* env)
2. Sets up logging to the console and the append-only log file
3. Loads the client credential file
4. Runs the TCP server until interrupted

Exit codes: 0 on normal shutdown or when only help was printed,
1 on a fatal bootstrap error, 2 on invalid options.
"""
import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from vecsum import __version__
from vecsum.config import Settings, settings
from vecsum.engine.credentials import CredentialStore
from vecsum.exceptions import ConfigurationError
from vecsum.logging import StructlogEventSink, setup_logging
from vecsum.server import VectorServer

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_FATAL = 1


def build_parser(defaults: Optional[Settings] = None) -> argparse.ArgumentParser:
    defaults = defaults or settings
    parser = argparse.ArgumentParser(
        prog="vecsum-server",
        description="Authenticated vector summation server",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=defaults.port,
        help="Server port to listen on",
    )
    parser.add_argument(
        "-a",
        "--address",
        default=defaults.host,
        help="Bind address",
    )
    parser.add_argument(
        "-l",
        "--log",
        type=Path,
        default=defaults.log_file,
        help="Log file path (appended to)",
    )
    parser.add_argument(
        "-d",
        "--clients-db",
        type=Path,
        default=defaults.clients_db,
        help="Clients DB file (format: login:password per line)",
    )
    parser.add_argument(
        "--log-level",
        default=defaults.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Minimum level written to the log",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=defaults.socket_timeout_sec,
        help="Per-connection socket timeout in seconds (default: none)",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        default=not defaults.concurrent,
        help="Handle one client at a time instead of a thread per client",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def validate_args(args: argparse.Namespace) -> None:
    if not 0 <= args.port <= 65535:
        raise ConfigurationError(f"Port out of range: {args.port}", details={"port": args.port})
    if args.timeout is not None and args.timeout <= 0:
        raise ConfigurationError(f"Timeout must be positive: {args.timeout}", details={"timeout": args.timeout})


def main(argv: Optional[List[str]] = None) -> int:
    """Run the server; returns the process exit code."""
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()

    # No options at all: show usage and leave
    if not argv:
        parser.print_help()
        return EXIT_OK

    args = parser.parse_args(argv)
    try:
        validate_args(args)
    except ConfigurationError as e:
        parser.error(e.message)

    try:
        setup_logging("server", level=args.log_level, log_file=args.log)
    except OSError as e:
        print(f"Fatal: cannot open log file {args.log}: {e}", file=sys.stderr)
        return EXIT_FATAL

    logger.info("server_starting", version=__version__, address=args.address, port=args.port)

    try:
        credentials = CredentialStore.from_file(args.clients_db)
    except ConfigurationError as e:
        logger.error("fatal", error=e.message, details=e.details)
        print(f"Fatal: {e.message}", file=sys.stderr)
        return EXIT_FATAL

    server = VectorServer(
        credentials,
        sink=StructlogEventSink(),
        host=args.address,
        port=args.port,
        concurrent=not args.sequential,
        socket_timeout_sec=args.timeout,
    )
    try:
        server.run()
    except OSError as e:
        logger.error("fatal", error=str(e), address=args.address, port=args.port)
        print(f"Fatal: {e}", file=sys.stderr)
        return EXIT_FATAL

    logger.info("server_exited")
    return EXIT_OK


def run() -> None:
    """Console script entry point"""
    sys.exit(main())


if __name__ == "__main__":
    run()
