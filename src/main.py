"""
Auction Comparator - Application Entrypoint

Configures structlog, builds the comparison cache and service once, runs a
single comparison and prints the JSON response.

Run via:
    python -m src.main --title "iPhone 13 128Go" --price 450
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from decimal import Decimal, InvalidOperation

import structlog

from src.cache.comparison_cache import ComparisonCache
from src.config import ItemCategory, settings
from src.errors import CompareError
from src.models.comparison import CompareRequest
from src.normalization.builder import SignatureBuilder
from src.pipeline.compare import ComparisonService
from src.pipeline.serpapi import SerpApiClient
from src.utils.currency import normalize_currency


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # Logs go to stderr so stdout carries only the comparison JSON
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value.replace(",", "."))
    except InvalidOperation as e:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.main",
        description="Compare an auction lot price against current web prices.",
    )
    parser.add_argument("--title", required=True, help="Lot title as shown on the auction site")
    parser.add_argument("--price", required=True, type=_decimal, help="Total auction price (fees included)")
    parser.add_argument("--currency", default=settings.DEFAULT_CURRENCY.value)
    parser.add_argument("--locale", default=settings.DEFAULT_LOCALE)
    parser.add_argument("--domain", default="", help="Auction site domain")
    parser.add_argument("--brand")
    parser.add_argument("--model")
    parser.add_argument("--category", choices=[c.value for c in ItemCategory])
    parser.add_argument("--force-refresh", action="store_true", help="Skip the cache")
    parser.add_argument("--log-level", default="INFO")
    return parser


def request_from_args(args: argparse.Namespace) -> CompareRequest:
    return CompareRequest(
        title=args.title,
        auction_price=args.price,
        currency=normalize_currency(args.currency),
        locale=args.locale,
        site_domain=args.domain,
        brand=args.brand,
        model=args.model,
        category=ItemCategory(args.category) if args.category else None,
        force_refresh=args.force_refresh,
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


async def main(argv: list[str] | None = None) -> int:
    """
    Run one comparison.

    Execution order:
    1. Parse arguments and configure logging
    2. Build the cache, signature builder and search client
    3. Compare and print the response as JSON

    Returns:
        Process exit code (0 on success, 1 on a comparison error).
    """
    args = build_parser().parse_args(argv)
    _configure_logging(log_level=args.log_level)
    logger = structlog.get_logger(__name__)

    if not settings.SERPAPI_KEY:
        logger.warning("config_serpapi_key_missing", note="web search will fail")
    if not settings.ANTHROPIC_API_KEY:
        logger.info("config_anthropic_api_key_missing", note="heuristic normalization only")

    request = request_from_args(args)
    cache = ComparisonCache()
    builder = SignatureBuilder()

    async with SerpApiClient() as search:
        service = ComparisonService(cache, builder, search)
        try:
            response = await service.compare(request)
        except CompareError as e:
            logger.error(
                "compare_failed",
                code=e.code,
                error=e.message,
                error_type=type(e).__name__,
            )
            print(json.dumps({"code": e.code, "message": e.message}))
            return 1

    print(json.dumps(response.model_dump(mode="json"), indent=2))
    return 0


# ---------------------------------------------------------------------------
# CLI Entry
# ---------------------------------------------------------------------------


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
