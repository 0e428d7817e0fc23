"""Command line entry point that serves the bridge with uvicorn.

Usage:
    botbridge --port 3000

Or with uvicorn directly:
    uvicorn botbridge.main:app --host 0.0.0.0 --port 3000
"""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence

import uvicorn

from .config import get_settings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Bridge chat channels to a bot webhook")
    parser.add_argument("--host", default=settings.host, help="Interface to bind")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on")
    parser.add_argument(
        "--reload", action="store_true", help="Reload on code changes (development)"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    logger.info("chat app listening on %s:%s", args.host, args.port)
    uvicorn.run(
        "botbridge.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
