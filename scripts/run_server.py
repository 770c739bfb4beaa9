"""
Run the Fairfence backend with uvicorn.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

import uvicorn

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fairfence.config import get_settings
from fairfence.logging_config import setup_logging

logger = logging.getLogger("fairfence.run_server")


def main() -> int:
    parser = argparse.ArgumentParser(description="Fairfence backend server")
    parser.add_argument(
        "--host",
        type=str,
        default="0.0.0.0",
        help="Interface to bind",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to listen on (defaults to $PORT or 5000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes (development only)",
    )
    args = parser.parse_args()

    settings = get_settings()
    setup_logging(settings.log_level)

    port = args.port or int(os.environ.get("PORT") or 5000)
    logger.info("Starting server on %s:%d", args.host, port)
    uvicorn.run(
        "fairfence.app:app",
        host=args.host,
        port=port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
