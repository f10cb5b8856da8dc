"""
=============================================================================
CLI ENTRY POINT
=============================================================================

    # Serve a file on the default address (127.0.0.1:8080)
    cat index.html | python -m stdinhttp

    # Custom address
    cat index.html | python -m stdinhttp 0.0.0.0:3000

    # JSON stub that always answers 503 with a Retry-After
    echo '{"error": "down"}' | stdin-http :9000 -t application/json \\
        -s 503 -H "Retry-After: 120"

Order of operations:
    1. Parse arguments and environment, validate (exit 2 on bad input)
    2. Read stdin to EOF (exit 1 if it cannot be read)
    3. Build the canned response, bind, serve (exit 1 if bind fails)
=============================================================================
"""

import argparse
import os
import sys
from typing import BinaryIO, List, Optional

from . import __version__
from .access_log import configure_logging
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig, parse_address
from .http import CannedResponse, parse_header
from .payload import PayloadError, read_payload
from .server import CannedResponseServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stdin-http",
        description="Serve the contents of stdin to every HTTP client.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cat page.html | stdin-http                          # 127.0.0.1:8080
  cat page.html | stdin-http 0.0.0.0:3000             # all interfaces
  echo '{}' | stdin-http :9000 -t application/json    # JSON payload
  echo down | stdin-http -s 503 -H "Retry-After: 60"  # fixed 503

Environment:
  STDINHTTP_ADDR, STDINHTTP_CONTENT_TYPE, STDINHTTP_STATUS, STDINHTTP_WORKERS,
  STDINHTTP_MAX_WORKERS, STDINHTTP_TIMEOUT, STDINHTTP_LOG_LEVEL,
  STDINHTTP_LOG_FORMAT
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "address",
        nargs="?",
        default=None,
        metavar="ADDR",
        help="Address to bind, HOST:PORT (default: 127.0.0.1:8080)",
    )

    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for request bytes before answering anyway (default: 30)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # RESPONSE
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--content-type", "-t",
        default=None,
        help="Content-Type header (default: text/html; charset=utf-8)",
    )

    parser.add_argument(
        "--status", "-s",
        type=int,
        default=None,
        help="Status code to answer with (default: 200)",
    )

    parser.add_argument(
        "--header", "-H",
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Extra response header; may be repeated",
    )

    # ─────────────────────────────────────────────────────────────────────
    # PERFORMANCE / LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Worker threads kept running (default: 4)",
    )

    parser.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help="Cap on worker threads (default: none, one per open connection)",
    )

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"stdin-http {__version__}",
    )

    return parser


def build_config(args: argparse.Namespace, environ: Optional[dict] = None) -> ServerConfig:
    """
    Merge CLI arguments over environment over defaults.

    Raises:
        ValueError: For an unparsable address or header, or an invalid value.
    """
    config = ServerConfig.from_env(os.environ if environ is None else environ)

    if args.address is not None:
        config.host, config.port = parse_address(args.address)
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.content_type is not None:
        config.content_type = args.content_type
    if args.status is not None:
        config.status = args.status
    if args.header:
        config.headers = [parse_header(line) for line in args.header]
    if args.workers is not None:
        config.min_workers = args.workers
    if args.max_workers is not None:
        config.max_workers = args.max_workers
    if args.log_level is not None:
        config.log_level = args.log_level
    if args.log_format is not None:
        config.log_format = args.log_format

    config.validate()

    # Header/content-type checks live on the response; fail before stdin is read
    CannedResponse(
        content_type=config.content_type,
        status=config.status,
        headers=tuple(config.headers),
    )

    return config


def main(argv: Optional[List[str]] = None, stdin: Optional[BinaryIO] = None):
    """Run the CLI. Exits via sys.exit on error; returns when the server stops."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(config.log_level_number)

    try:
        body = read_payload(stdin)
    except PayloadError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    server = CannedResponseServer.from_config(body, config)

    try:
        server.run()
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
