"""
weathermail entry point.

This file handles startup concerns (arg-parsing, logging) and runs a single agent request: fetch the
weather for a city and email a summary of it to a recipient.
"""

import argparse
import logging
import sys

from weathermail.agent.agent_loop import run_agent
from weathermail.agent.gateway import (
    available_gateways,
    load_gateway,
)
from weathermail.common import (
    AnsiColors,
    colored_print,
)
from weathermail.config import settings
from weathermail.core.schema import RunRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _init_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        stream=sys.stderr,  # stdout carries only the final answer
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Email the current weather for a city, composed by an LLM agent"
    )
    parser.add_argument("--city", required=True, help="City to fetch weather for")
    parser.add_argument("--to", required=True, help="Recipient email address")
    parser.add_argument("--subject", default=None, help="Custom email subject (optional)")
    parser.add_argument(
        "--gateway",
        choices=available_gateways(),
        type=str.lower,
        default=settings.GATEWAY,
        help="Language-model provider (default from env: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        type=str.lower,
        default=settings.LOG_LEVEL,
        help="Logging level (default from env: %(default)s)",
    )
    return parser


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------
def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the weathermail CLI.

    Prints the model's closing message and exits 0, or prints a diagnostic to stderr and exits 1 on
    any fatal error (unknown tool, iteration bound, missing configuration, tool failure).
    """
    if argv is None:
        argv = sys.argv[1:]

    args = _build_parser().parse_args(argv)

    # Override log level setting with command-line argument
    settings.LOG_LEVEL = args.log_level
    _init_logging(settings.LOG_LEVEL)

    logger.info("Starting weathermail [%s gateway]", args.gateway)

    try:
        request = RunRequest(city=args.city, to=args.to, subject=args.subject)
        final_text = run_agent(request, load_gateway(args.gateway))
    except Exception as exc:  # pylint: disable=broad-except
        logger.debug("Run failed", exc_info=True)
        colored_print(f"Failed: {exc}", AnsiColors.RED, file=sys.stderr)
        sys.exit(1)

    print(final_text)
    sys.exit(0)


if __name__ == "__main__":
    main()
