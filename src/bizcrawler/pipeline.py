"""Inbound contract: URL in, BusinessProfile out, progress events along the way."""
import asyncio
import logging
from typing import AsyncIterator, Optional

from .config import CrawlerSettings
from .controller import CrawlController
from .errors import NoPagesCollectedError
from .events import Emit, ProgressCallback, ProgressChannel, ProgressEvent, noop_emit
from .llm import LlmExtractor
from .merger import merge
from .models import BusinessProfile
from .normalizer import PatternNormalizer

logger = logging.getLogger(__name__)


class CrawlRun:
    """A pipeline run in flight.

    ``events()`` yields progress events until the run finishes, and can be
    consumed concurrently with ``await run.result()``.
    """

    def __init__(self, task: "asyncio.Task[BusinessProfile]", channel: ProgressChannel):
        self._task = task
        self.channel = channel

    def events(self) -> AsyncIterator[ProgressEvent]:
        return self.channel.__aiter__()

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self.events()

    async def result(self) -> BusinessProfile:
        return await self._task

    def done(self) -> bool:
        return self._task.done()

    def cancel(self):
        self._task.cancel()


class ProfilePipeline:
    def __init__(
        self,
        settings: Optional[CrawlerSettings] = None,
        controller: Optional[CrawlController] = None,
        normalizer: Optional[PatternNormalizer] = None,
        llm_extractor: Optional[LlmExtractor] = None,
    ):
        self.settings = settings or CrawlerSettings.from_env()
        self.controller = controller or CrawlController(self.settings)
        self.normalizer = normalizer or PatternNormalizer()
        self.llm_extractor = llm_extractor or LlmExtractor(self.settings)

    async def build_profile(self, url: str, max_depth: int = 10, max_pages: int = 25,
                            emit: Emit = noop_emit) -> BusinessProfile:
        result = await self.controller.crawl(url, max_depth=max_depth, max_pages=max_pages, emit=emit)
        if not result.pages:
            raise NoPagesCollectedError(result.start_url, result.failures)

        pages = result.pages
        emit("extracting", pages=len(pages))
        logger.info(f"Extracting profile from {len(pages)} pages...")

        pattern_draft, llm_draft = await asyncio.gather(
            asyncio.to_thread(self.normalizer.normalize, pages),
            self.llm_extractor.extract(pages),
        )
        profile = merge(pattern_draft, llm_draft)

        logger.info(f"Profile ready: {profile.name!r}, {len(profile.services)} services, "
                    f"{len(profile.staff)} staff, {len(profile.source_pages)} pages "
                    f"({'pattern + LLM' if llm_draft else 'pattern only'})")
        emit("profile_ready", name=profile.name, services=len(profile.services),
             staff=len(profile.staff), llm_used=llm_draft is not None)
        return profile

    def start(self, url: str, max_depth: int = 10, max_pages: int = 25,
              on_progress: Optional[ProgressCallback] = None) -> CrawlRun:
        """Schedule a run on the current event loop and return its handle."""
        channel = ProgressChannel(on_progress)

        async def run() -> BusinessProfile:
            try:
                return await self.build_profile(url, max_depth=max_depth, max_pages=max_pages,
                                                emit=channel.emit)
            finally:
                channel.close()

        return CrawlRun(asyncio.create_task(run()), channel)


async def start_crawl(url: str, max_depth: int = 10, max_pages: int = 25,
                      on_progress: Optional[ProgressCallback] = None,
                      settings: Optional[CrawlerSettings] = None) -> BusinessProfile:
    pipeline = ProfilePipeline(settings)
    return await pipeline.start(url, max_depth=max_depth, max_pages=max_pages,
                                on_progress=on_progress).result()
