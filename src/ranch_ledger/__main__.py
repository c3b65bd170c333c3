"""Command line entry point.

Usage:
    # Serve the HTTP API (and the WebSocket publisher when enabled)
    python -m ranch_ledger serve

    # Pull the activity feed once and print the summary
    python -m ranch_ledger sync
"""

import argparse
import json
import sys

import structlog
import uvicorn

from ranch_ledger.config import configure_logging, get_settings

logger = structlog.get_logger(__name__)


def _serve(args: argparse.Namespace) -> int:
    from ranch_ledger.api import create_app

    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_config=None,
    )
    return 0


def _sync(args: argparse.Namespace) -> int:
    from ranch_ledger.events import EventPublisher
    from ranch_ledger.services import build_services

    # No WebSocket server here; events only land in the local buffer.
    services = build_services(publisher=EventPublisher())
    try:
        summary = services.sync.sync_all()
    finally:
        services.close()

    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.feed_error else 0


def main(argv: list[str] | None = None) -> None:
    configure_logging()

    parser = argparse.ArgumentParser(
        prog="ranch-ledger",
        description="Manager accountability ledger for the ranch dashboard",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", type=str, default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Bind port")
    serve.set_defaults(handler=_serve)

    sync = subparsers.add_parser("sync", help="Sync the activity feed once")
    sync.set_defaults(handler=_sync)

    args = parser.parse_args(argv)
    logger.info("ranch_ledger_command", command=args.command)

    try:
        code = args.handler(args)
    except KeyboardInterrupt:
        logger.info("interrupted")
        code = 130
    except Exception as e:
        logger.exception("command_failed", error=str(e))
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
