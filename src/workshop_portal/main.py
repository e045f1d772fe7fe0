"""
Workshop portal entry point.

This file handles startup concerns (arg-parsing, logging) and launches the API server.
"""

import argparse
import logging
import sys
from pathlib import Path

from workshop_portal.config import settings

logger = logging.getLogger(__name__)

_SECRET_SETTINGS = {
    "WORKSHOP_PORTAL_PASSWORD",
    "AZURE_OPENAI_API_KEY",
    "AZURE_OPENAI_REASONING_API_KEY",
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stdout,
    )
    # One line per outbound request is too chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the workshop portal.

    Parses the command line, initializes logging and starts the API server.
    """
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(description="Run the workshop portal API")
    parser.add_argument(
        "--host", default=settings.API_HOST, help="Bind address (default: %(default)s)"
    )
    parser.add_argument(
        "--port", type=int, default=settings.API_PORT, help="Bind port (default: %(default)s)"
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    parser.add_argument(
        "--reload", action="store_true", default=settings.DEBUG, help="Enable auto-reload"
    )
    args = parser.parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level

    _init_logging(settings.LOG_LEVEL)

    if not Path(settings.KNOWLEDGE_BASE_PATH).is_file():
        logger.warning(
            "Knowledge base %s not found; knowledge lookups will fail", settings.KNOWLEDGE_BASE_PATH
        )
    logger.debug("Settings: %s", settings.model_dump(exclude=_SECRET_SETTINGS))

    # Lazy import so --help works without the web stack
    from workshop_portal.api.app import run_api  # pylint: disable=import-outside-toplevel

    run_api(host=args.host, port=args.port, reload=args.reload, log_level=settings.LOG_LEVEL)


if __name__ == "__main__":
    main()
