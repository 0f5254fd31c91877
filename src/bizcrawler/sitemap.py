import asyncio
import logging
import re
import warnings
from collections import deque
from typing import List, Optional, Tuple
from urllib.parse import urljoin

import aiohttp
from bs4 import BeautifulSoup, XMLParsedAsHTMLWarning

from .config import CrawlerSettings
from .errors import SitemapUnavailable
from .patterns import CrawlPatterns
from .retry import RetryPolicy, call_with_retry
from .urls import normalize, same_origin

logger = logging.getLogger(__name__)

CONVENTIONAL_SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")
MAX_SITEMAP_DOCUMENTS = 50

_SITEMAP_LINE = re.compile(r"^\s*Sitemap:\s*(\S+)\s*$", re.IGNORECASE | re.MULTILINE)


def parse_robots_sitemaps(robots_txt: str) -> List[str]:
    return [m.group(1).strip() for m in _SITEMAP_LINE.finditer(robots_txt or "")]


def parse_sitemap_xml(xml: str) -> Tuple[List[str], List[str]]:
    """Split a sitemap document into (page URLs, nested sitemap URLs)."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", XMLParsedAsHTMLWarning)
        soup = BeautifulSoup(xml, "html.parser")
    urls = [loc.get_text(strip=True) for loc in soup.select("url > loc")]
    sitemaps = [loc.get_text(strip=True) for loc in soup.select("sitemap > loc")]
    return [u for u in urls if u], [s for s in sitemaps if s]


class SitemapDiscoverer:
    """Best-effort seed URLs from robots.txt and sitemap indexes.

    Never raises: every failed fetch is logged and skipped, and total failure
    yields an empty list.
    """

    def __init__(self, settings: Optional[CrawlerSettings] = None, patterns: Optional[CrawlPatterns] = None):
        self.settings = settings or CrawlerSettings()
        self.patterns = patterns or CrawlPatterns.default()
        self.policy = RetryPolicy.single(self.settings.sitemap_fetch_timeout_s)

    async def fetch_text(self, session: aiohttp.ClientSession, url: str) -> str:
        """GET ``url`` as text, raising SitemapUnavailable on any failure."""
        async def attempt(timeout: float, _attempt: int) -> str:
            try:
                async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
                    if response.status != 200:
                        raise SitemapUnavailable(f"{url} returned status {response.status}")
                    return await response.text(errors="replace")
            except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeDecodeError) as e:
                raise SitemapUnavailable(f"{url}: {e}") from e

        return await call_with_retry(attempt, self.policy, label=f"sitemap fetch {url}")

    async def _fetch_or_none(self, session: aiohttp.ClientSession, url: str) -> Optional[str]:
        try:
            return await self.fetch_text(session, url)
        except SitemapUnavailable as e:
            logger.debug(f"Sitemap source unavailable: {e}")
            return None

    async def discover(self, start_url: str) -> List[str]:
        cap = self.settings.sitemap_max_urls
        headers = {"User-Agent": self.settings.user_agent}
        try:
            async with aiohttp.ClientSession(headers=headers) as session:
                raw_urls = await self._collect(session, start_url, cap)
        except Exception as e:
            # discovery must never fail the crawl
            logger.warning(f"Sitemap discovery failed for {start_url}: {e}")
            return []

        discovered: List[str] = []
        seen = set()
        for raw in raw_urls:
            url = normalize(raw, start_url, self.patterns.tracking_params)
            if not url or url in seen:
                continue
            if not same_origin(start_url, url) or self.patterns.should_ignore(url):
                continue
            seen.add(url)
            discovered.append(url)

        if discovered:
            logger.info(f"Sitemap discovered {len(discovered)} urls for {start_url}")
        return discovered

    async def _collect(self, session: aiohttp.ClientSession, start_url: str, cap: int) -> List[str]:
        candidates: List[str] = []
        robots_txt = await self._fetch_or_none(session, urljoin(start_url, "/robots.txt"))
        if robots_txt:
            candidates.extend(parse_robots_sitemaps(robots_txt))
        if not candidates:
            candidates.extend(urljoin(start_url, path) for path in CONVENTIONAL_SITEMAP_PATHS)

        queued = set(candidates)
        to_fetch = deque(candidates)
        found: List[str] = []
        found_set = set()

        fetched = 0
        while to_fetch and len(found) < cap and fetched < MAX_SITEMAP_DOCUMENTS:
            sitemap_url = to_fetch.popleft()
            fetched += 1
            xml = await self._fetch_or_none(session, sitemap_url)
            if not xml:
                continue
            urls, nested = parse_sitemap_xml(xml)
            for loc in urls:
                if len(found) >= cap:
                    break
                if loc not in found_set:
                    found_set.add(loc)
                    found.append(loc)
            for loc in nested:
                if loc not in queued:
                    queued.add(loc)
                    to_fetch.append(loc)
        return found
