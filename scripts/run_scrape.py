"""광고 라이브러리 1회 수집 -- 결과 JSON 출력.

Usage:
    python scripts/run_scrape.py 123456789 --countries DE FR --enrich
    python scripts/run_scrape.py "https://www.facebook.com/ads/library/?view_all_page_id=123" --snapshot
"""
import argparse
import asyncio
import io
import json
import sys
from pathlib import Path

_root = str(Path(__file__).resolve().parent.parent)
sys.path.insert(0, _root)
sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")

from dotenv import load_dotenv
load_dotenv(Path(_root) / ".env")

from dataclasses import asdict

from loguru import logger

from crawler.acquisition import AcquisitionController, ScrapeOptions
from processor.models import AcquisitionFailure
from processor.snapshot_builder import build_snapshot
from processor.spend_estimator import format_currency, format_number


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Meta Ad Library page acquisition")
    p.add_argument("reference", help="Ad Library URL or numeric page id")
    p.add_argument("--countries", nargs="*", default=[], help="ISO country codes")
    p.add_argument("--status", default="ACTIVE", choices=["ACTIVE", "ALL", "INACTIVE"])
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--enrich", action="store_true", help="scrape demographics for top creatives")
    p.add_argument("--max-enriched", type=int, default=3)
    p.add_argument("--period", default="monthly", choices=["monthly", "weekly"])
    p.add_argument("--deadline", type=float, default=None, help="overall deadline (seconds)")
    p.add_argument("--require-complete", action="store_true")
    p.add_argument("--strategy", default="auto", choices=["auto", "browser", "api"])
    p.add_argument("--snapshot", action="store_true", help="print the flat snapshot instead of the full result")
    p.add_argument("--output", type=Path, default=None, help="write JSON here instead of stdout")
    return p.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    options = ScrapeOptions(
        countries=[c.upper() for c in args.countries],
        active_status=args.status,
        limit=args.limit,
        enrich=args.enrich,
        max_enriched=args.max_enriched,
        period=args.period,
        deadline_sec=args.deadline,
        require_complete=args.require_complete,
        strategy=args.strategy,
    )

    controller = AcquisitionController()
    outcome = await controller.run(args.reference, options)

    if isinstance(outcome, AcquisitionFailure):
        logger.error("[run_scrape] {} ({}): {}", outcome.kind, outcome.code, outcome.error)
        if outcome.user_message:
            logger.error("[run_scrape] {}", outcome.user_message)
        payload = asdict(outcome)
        exit_code = 1
    else:
        if outcome.facets is not None:
            spend = outcome.facets.spend
            logger.info(
                "[run_scrape] {} ({}) 소재 {}개, 도달 {}, 추정 매체비 {}{}",
                outcome.page_name, outcome.page_id, outcome.total_found,
                format_number(spend.total_reach), format_currency(spend.total_estimated_spend),
                " (partial)" if outcome.partial else "",
            )
        payload = build_snapshot(outcome) if args.snapshot else asdict(outcome)
        exit_code = 0

    text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    if args.output:
        args.output.write_text(text, encoding="utf-8")
        logger.info("[run_scrape] saved -> {}", args.output)
    else:
        print(text)
    return exit_code


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
