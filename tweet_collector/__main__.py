"""Command-line entry point.

Usage:
    python -m tweet_collector collect jack --out jack.json --cookies cookies.txt
    python -m tweet_collector collect jack --no-fallback
    python -m tweet_collector fetch-post https://x.com/jack/status/20 --cookies cookies.txt
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .collectors.rendered import RenderedCollector
from .config import Settings, load_settings
from .cookies import Cookie, load_cookies
from .errors import CollectorError, ConfigError
from .models import ProgressEvent
from .orchestrator import collect_account
from .parsers.dom import split_status_url

logger = logging.getLogger("tweet_collector")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tweet_collector",
        description="Collect every post authored by an account",
    )
    parser.add_argument("--cookies", help="Netscape cookies.txt or JSON cookie export")
    parser.add_argument("--log-level", help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    collect = sub.add_parser("collect", help="Collect all posts for an account")
    collect.add_argument("account", help="Account handle, with or without @")
    collect.add_argument("--out", help="Write the JSON report here (default: stdout)")
    collect.add_argument("--no-fallback", action="store_true", help="Never use the rendered view")
    collect.add_argument("--max-records", type=int, help="Stop after this many records")

    fetch = sub.add_parser("fetch-post", help="Fetch one post with its thread")
    fetch.add_argument("url", help="Status URL, e.g. https://x.com/jack/status/20")
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.cookies:
        overrides["cookies_path"] = args.cookies
    if getattr(args, "no_fallback", False):
        overrides["fallback_enabled"] = False
    if getattr(args, "max_records", None):
        overrides["max_records"] = args.max_records
    return load_settings(**overrides)


def _load_cookies(settings: Settings) -> list[Cookie]:
    if not settings.cookies_path:
        return []
    return load_cookies(settings.cookies_path)


async def _log_progress(event: ProgressEvent) -> None:
    logger.info("[%s] %s", event.phase, event.message)


async def run_collect(args: argparse.Namespace, settings: Settings) -> int:
    cookies = _load_cookies(settings) if settings.fallback_enabled else []
    report = await collect_account(args.account, settings, cookies, on_progress=_log_progress)

    payload = json.dumps(report.to_dict(), ensure_ascii=False, indent=2)
    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(payload, encoding="utf-8")
        logger.info("Report written to %s", out)
    else:
        print(payload)

    analytics = report.analytics
    logger.info(
        "Collected %d records (direct %d, replies %d, reposts %d) from %s to %s",
        analytics["total"], analytics["direct"], analytics["replies"], analytics["reposts"],
        analytics["time_range"]["start"], analytics["time_range"]["end"],
    )
    for item in analytics["top_engaging"]:
        logger.info("  %6d  %s", item["engagement"], item["permanent_url"])
    return 0


async def run_fetch_post(args: argparse.Namespace, settings: Settings) -> int:
    parsed = split_status_url(args.url)
    if parsed is None:
        raise ConfigError(f"not a status URL: {args.url}")
    author, post_id = parsed

    collector = RenderedCollector(settings, _load_cookies(settings))
    post = await collector.fetch_post(author, post_id)
    print(json.dumps(post.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = _settings_from_args(args)
    except ConfigError as e:
        print(e, file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    handler = run_collect if args.command == "collect" else run_fetch_post
    try:
        return asyncio.run(handler(args, settings))
    except ConfigError as e:
        logger.error("%s", e)
        return 2
    except CollectorError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 3
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
