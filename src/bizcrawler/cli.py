import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import LOG_FORMAT, CrawlerSettings
from .errors import CrawlError
from .events import ProgressEvent
from .models import BusinessProfile
from .pipeline import ProfilePipeline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Crawl a business website and build its knowledge profile")
    parser.add_argument("url", help="Starting URL to crawl (https:// is added when missing)")
    parser.add_argument("-p", "--max-pages", type=int, default=25, help="Maximum number of pages to collect (default: 25)")
    parser.add_argument("-d", "--max-depth", type=int, default=10, help="Maximum crawl depth (default: 10)")
    parser.add_argument("-c", "--concurrency", type=int, default=None,
                        help="Number of pages rendered in parallel (default: SCRAPER_CONCURRENCY or 3)")
    parser.add_argument("--no-block", action="store_false", dest="block_resources", default=None,
                        help="Disable blocking of images, media, fonts and trackers")
    parser.add_argument("-o", "--output", type=Path, default=None, help="Write the profile JSON to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def log_progress(event: ProgressEvent):
    data = event.data
    if event.type == "depth":
        logger.info(f"Depth {data['depth']}: {data['pages_to_scrape']} pages queued")
    elif event.type == "page_done":
        logger.info(f"[{data['pages_scraped']}/{data['max_pages']}] {data['url']} ({data['content_length']} chars)")
    elif event.type == "page_error":
        logger.warning(f"Failed: {data['url']} ({data['reason']})")
    elif event.type in ("scrape_complete", "profile_ready", "aborted"):
        logger.info(f"{event.type}: {data}")


def print_summary(profile: BusinessProfile):
    print("\n--- Business Profile (Summary) ---")
    print(f"Business Name: {profile.name or 'N/A'}")
    print(f"Address: {profile.address or 'N/A'}")
    print(f"Phone: {profile.phone or 'N/A'}")
    print(f"Email: {profile.email or 'N/A'}")
    print(f"Services Found: {len(profile.services)}")
    print(f"Staff Found: {len(profile.staff)}")
    print(f"FAQs Found: {len(profile.faq)}")
    print(f"Source URLs Processed: {len(profile.source_pages)}")
    print("----------------------------------")


async def run(args: argparse.Namespace) -> Optional[BusinessProfile]:
    overrides = {}
    if args.concurrency is not None:
        overrides["concurrency"] = args.concurrency
    if args.block_resources is not None:
        overrides["block_resources"] = args.block_resources
    settings = CrawlerSettings.from_env(**overrides)

    pipeline = ProfilePipeline(settings)
    try:
        return await pipeline.start(args.url, max_depth=args.max_depth, max_pages=args.max_pages,
                                    on_progress=log_progress).result()
    except CrawlError as e:
        logger.error(f"Crawl failed: {e}")
        return None


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format=LOG_FORMAT)

    profile = asyncio.run(run(args))
    if profile is None:
        return 1

    payload = json.dumps(profile.model_dump(mode="json"), ensure_ascii=False, indent=2)
    if args.output:
        args.output.write_text(payload, encoding="utf-8")
        logger.info(f"Profile saved to {args.output}")
        print_summary(profile)
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
