"""Depth-layered crawl coordinator.

One coordinating coroutine owns the CrawlState. Each depth is dispatched as a
batch over a semaphore-bounded pool of workers; workers return a Page or a
PageFailure and never touch the state, the coordinator folds results back in
as they complete.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from .config import CrawlerSettings
from .errors import CrawlInitializationError, MalformedUrlError
from .events import Emit, noop_emit
from .extractor import SignalExtractor
from .models import FailureKind, Page, PageFailure
from .patterns import CrawlPatterns, ExtractionPatterns
from .renderer import BrowserSession, PageRenderer
from .sitemap import SitemapDiscoverer
from .urls import ensure_scheme, normalize, origin

logger = logging.getLogger(__name__)


class CrawlPhase(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(eq=False)
class CrawlState:
    start_url: str
    allowed_origins: Set[tuple] = field(default_factory=set)
    visited: Set[str] = field(default_factory=set)
    frontier: Dict[int, List[str]] = field(default_factory=dict)
    pages: List[Page] = field(default_factory=list)
    failures: List[PageFailure] = field(default_factory=list)
    phase: CrawlPhase = CrawlPhase.IDLE
    depth: int = 0
    total_links_found: int = 0
    stop_requested: bool = False
    # final URLs of collected pages, so a redirect target is kept once
    collected: Set[str] = field(default_factory=set)

    def in_scope(self, url: str) -> bool:
        return origin(url) in self.allowed_origins

    def take(self, depth: int, limit: int, patterns: CrawlPatterns) -> List[str]:
        """Pop up to ``limit`` unvisited URLs of ``depth`` and mark them visited."""
        batch: List[str] = []
        for url in self.frontier.get(depth, []):
            if len(batch) >= limit:
                break
            if url in self.visited or patterns.should_ignore(url):
                continue
            self.visited.add(url)
            batch.append(url)
        return batch


@dataclass
class CrawlResult:
    start_url: str
    pages: List[Page]
    failures: List[PageFailure]
    visited: Set[str]
    phase: CrawlPhase
    depth_reached: int
    total_links_found: int
    elapsed_s: float


SessionFactory = Callable[[CrawlerSettings], BrowserSession]


class CrawlController:
    def __init__(
        self,
        settings: Optional[CrawlerSettings] = None,
        crawl_patterns: Optional[CrawlPatterns] = None,
        extraction_patterns: Optional[ExtractionPatterns] = None,
        renderer: Optional[PageRenderer] = None,
        extractor: Optional[SignalExtractor] = None,
        discoverer: Optional[SitemapDiscoverer] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.settings = settings or CrawlerSettings()
        self.patterns = crawl_patterns or CrawlPatterns.default()
        self.renderer = renderer or PageRenderer(self.settings)
        self.extractor = extractor or SignalExtractor(extraction_patterns, self.patterns)
        self.discoverer = discoverer or SitemapDiscoverer(self.settings, self.patterns)
        self.session_factory = session_factory or BrowserSession
        self._active: List[CrawlState] = []

    def request_stop(self):
        """Finish the depth in flight of every running crawl, then complete."""
        for state in self._active:
            state.stop_requested = True

    async def crawl(self, start_url: str, max_depth: int = 10, max_pages: int = 25,
                    emit: Emit = noop_emit) -> CrawlResult:
        start = normalize(ensure_scheme(start_url), tracking_params=self.patterns.tracking_params)
        if start is None:
            raise MalformedUrlError(start_url)
        budget = self.settings.effective_max_pages(max_pages)
        started = time.monotonic()

        state = CrawlState(start_url=start, allowed_origins={origin(start)})
        state.phase = CrawlPhase.DISCOVERING
        logger.info(f"Starting scrape: {start} (max_depth={max_depth}, max_pages={budget})")
        emit("start", url=start, max_pages=budget, max_depth=max_depth)

        discovery = asyncio.create_task(self.discoverer.discover(start))
        session = self.session_factory(self.settings)
        self._active.append(state)
        try:
            try:
                context = await session.start()
            except Exception as e:
                discovery.cancel()
                await asyncio.gather(discovery, return_exceptions=True)
                state.phase = CrawlPhase.ABORTED
                logger.error(f"Error during browser setup: {str(e)}")
                emit("aborted", url=start, reason=str(e))
                raise CrawlInitializationError(f"Could not start browser: {e}") from e

            sitemap_urls = await discovery
            state.frontier[0] = self._dedupe([start, *sitemap_urls], state)
            await self._crawl_depths(context, state, max_depth, budget, emit)
        finally:
            self._active.remove(state)
            await session.close()

        if state.phase != CrawlPhase.ABORTED:
            state.phase = CrawlPhase.COMPLETED
        logger.info(f"Scraping complete: {len(state.pages)} pages, {len(state.failures)} failed")
        emit("scrape_complete", pages_scraped=len(state.pages), pages_failed=len(state.failures),
             total_links_found=state.total_links_found)

        return CrawlResult(
            start_url=start,
            pages=list(state.pages),
            failures=list(state.failures),
            visited=set(state.visited),
            phase=state.phase,
            depth_reached=state.depth,
            total_links_found=state.total_links_found,
            elapsed_s=time.monotonic() - started,
        )

    async def _crawl_depths(self, context, state: CrawlState, max_depth: int, budget: int, emit: Emit):
        semaphore = asyncio.Semaphore(self.settings.concurrency)
        state.phase = CrawlPhase.CRAWLING

        for depth in range(max_depth + 1):
            if state.stop_requested:
                logger.info("Stop requested; not starting another depth.")
                break
            remaining = budget - len(state.pages)
            if remaining <= 0:
                logger.info(f"Reached max pages limit ({budget}).")
                break
            batch = state.take(depth, remaining, self.patterns)
            if not batch:
                break

            state.depth = depth
            logger.info(f"  [depth {depth}] Scraping {len(batch)} pages...")
            emit("depth", depth=depth, pages_to_scrape=len(batch), total_scraped=len(state.pages))
            for url in batch:
                emit("scraping", url=url, depth=depth, pages_scraped=len(state.pages), max_pages=budget)

            tasks = [asyncio.create_task(self._fetch(context, semaphore, url)) for url in batch]
            next_links: List[str] = []
            try:
                for next_done in asyncio.as_completed(tasks):
                    url, result = await next_done
                    if isinstance(result, PageFailure):
                        state.failures.append(result)
                        emit("page_error", url=url, reason=result.reason, kind=result.kind.value,
                             pages_scraped=len(state.pages))
                        continue

                    page, final_url = result
                    if not self._note_collected(state, url, final_url):
                        continue
                    state.pages.append(page)
                    state.total_links_found += len(page.outbound_links)
                    if depth < max_depth:
                        next_links.extend(page.outbound_links)
                    emit("page_done", url=url, title=page.title or page.h1,
                         content_length=len(page.main_text), links_found=len(page.outbound_links),
                         pages_scraped=len(state.pages), max_pages=budget,
                         total_links_found=state.total_links_found)
            finally:
                pending = [t for t in tasks if not t.done()]
                if pending:
                    logger.info(f"Cancelling {len(pending)} remaining worker tasks.")
                    for task in pending:
                        task.cancel()
                    await asyncio.gather(*pending, return_exceptions=True)

            if depth < max_depth:
                state.frontier[depth + 1] = self._prioritize(next_links, state)

    async def _fetch(self, context, semaphore: asyncio.Semaphore,
                     url: str) -> Tuple[str, Union[Tuple[Page, str], PageFailure]]:
        async with semaphore:
            try:
                raw = await self.renderer.render(context, url)
                if isinstance(raw, PageFailure):
                    return url, raw
                return url, (self.extractor.extract(raw), raw.final_url)
            except Exception as e:
                logger.exception(f"Error processing page {url}")
                return url, PageFailure(url=url, reason=str(e), kind=FailureKind.RENDER_FAILURE)

    def _note_collected(self, state: CrawlState, url: str, final_url: str) -> bool:
        """Record a rendered page; False when its final URL was already collected."""
        final = normalize(final_url, tracking_params=self.patterns.tracking_params) or url
        if final in state.collected:
            logger.info(f"Skipping {url}: already collected as {final}")
            return False
        state.collected.update((url, final))
        if final != url:
            logger.info(f"Redirected from {url} to {final}")
            state.visited.add(final)
            if url == state.start_url:
                # the start page defines the site; accept the origin it landed on
                state.allowed_origins.add(origin(final))
        return True

    def _dedupe(self, urls: Iterable[str], state: CrawlState) -> List[str]:
        result: List[str] = []
        seen = set()
        for url in urls:
            if url in seen or not state.in_scope(url) or self.patterns.should_ignore(url):
                continue
            seen.add(url)
            result.append(url)
        return result

    def _prioritize(self, links: Iterable[str], state: CrawlState) -> List[str]:
        fresh = [u for u in self._dedupe(links, state) if u not in state.visited]
        # stable sort keeps discovery order inside each class
        return sorted(fresh, key=lambda u: 0 if self.patterns.is_priority(u) else 1)
