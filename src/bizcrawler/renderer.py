import html as html_lib
import logging
import re
import time
from typing import List, Optional, Set, Union

from playwright.async_api import (
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import CrawlerSettings
from .errors import NavigationTimeout, RenderFailure
from .models import FailureKind, PageFailure, RawPage
from .patterns import CarouselSelectors
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

BLOCKED_RESOURCE_TYPES = ("image", "media", "font")
BLOCKED_HOSTS = re.compile(
    r"google-analytics\.com|googletagmanager\.com|doubleclick\.net|facebook\.com"
    r"|facebook\.net|hotjar\.com|intercom\.io|clarity\.ms|segment\.io",
    re.IGNORECASE,
)

CAROUSEL_BLOCK_CLASS = "extracted-carousel-content"
MIN_CAROUSEL_CHARS = 100
MIN_SLIDE_CHARS = 10


async def block_requests(route: Route):
    """Abort heavy assets and tracker requests, let everything else through."""
    request = route.request
    try:
        if request.resource_type in BLOCKED_RESOURCE_TYPES or BLOCKED_HOSTS.search(request.url):
            await route.abort()
        else:
            await route.continue_()
    except PlaywrightError:
        # Can happen if the request finished before we got to it
        pass


def append_auxiliary_block(page_html: str, text: str) -> str:
    """Put accumulated carousel text inside <body> so extraction sees it."""
    if not text or len(text) <= MIN_CAROUSEL_CHARS:
        return page_html
    block = (f'\n<!-- CAROUSEL_CONTENT_START -->\n<div class="{CAROUSEL_BLOCK_CLASS}">'
             f'{html_lib.escape(text)}</div>\n<!-- CAROUSEL_CONTENT_END -->\n')
    idx = page_html.lower().rfind("</body>")
    if idx == -1:
        return page_html + block
    return page_html[:idx] + block + page_html[idx:]


class BrowserSession:
    """Owns the playwright driver, one browser and the shared context."""

    def __init__(self, settings: CrawlerSettings):
        self.settings = settings
        self.playwright = None
        self.browser = None
        self.context: Optional[BrowserContext] = None

    async def start(self) -> BrowserContext:
        if self.context:
            return self.context
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=self.settings.headless,
            args=["--no-sandbox", "--disable-setuid-sandbox"],
        )
        self.context = await self.browser.new_context(
            user_agent=self.settings.user_agent,
            viewport={"width": 1280, "height": 720},
        )
        if self.settings.block_resources:
            await self.context.route("**/*", block_requests)
        logger.info("Playwright setup complete.")
        return self.context

    async def close(self):
        try:
            if self.context:
                await self.context.close()
            if self.browser:
                await self.browser.close()
            if self.playwright:
                await self.playwright.stop()
            logger.info("Playwright cleanup complete.")
        except PlaywrightError as e:
            logger.error(f"Error during cleanup: {str(e)}")
        finally:
            self.context = self.browser = self.playwright = None


class PageRenderer:
    """Renders one URL on its own tab of a shared browser context."""

    def __init__(self, settings: Optional[CrawlerSettings] = None,
                 selectors: Optional[CarouselSelectors] = None):
        self.settings = settings or CrawlerSettings()
        self.selectors = selectors or CarouselSelectors()
        self.policy = RetryPolicy(max_attempts=2, base_timeout=self.settings.nav_timeout_ms, backoff=2.0)

    async def render(self, context: BrowserContext, url: str) -> Union[RawPage, PageFailure]:
        async def attempt(timeout_ms: float, attempt_no: int) -> RawPage:
            return await self._render_once(context, url, int(timeout_ms), attempt_no)

        try:
            return await call_with_retry(attempt, self.policy, retry_on=(NavigationTimeout,),
                                         label=f"render {url}")
        except NavigationTimeout as e:
            logger.error(f"Error: {url[:60]} - {e.detail}")
            return PageFailure(url=url, reason=str(e), kind=FailureKind.NAVIGATION_TIMEOUT)
        except RenderFailure as e:
            logger.error(f"Error: {url[:60]} - {e.detail}")
            return PageFailure(url=url, reason=str(e), kind=FailureKind.RENDER_FAILURE)

    async def _render_once(self, context: BrowserContext, url: str, timeout_ms: int, attempt_no: int) -> RawPage:
        started = time.monotonic()
        page = await context.new_page()
        try:
            response = await page.goto(url, wait_until=self.settings.wait_until, timeout=timeout_ms)
            nav_ms = int((time.monotonic() - started) * 1000)
            if response is not None and not response.ok:
                raise RenderFailure(url, f"status {response.status}")

            if self.settings.render_wait_ms:
                await page.wait_for_timeout(self.settings.render_wait_ms)
            await self._wait_for_content(page)

            carousel_text = await self.sweep_carousels(page)
            page_html = append_auxiliary_block(await page.content(), carousel_text)
            if len(carousel_text) > MIN_CAROUSEL_CHARS:
                logger.info(f"    + Extracted {len(carousel_text)} chars from carousels")

            total_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"    ✓ {url[:70]} ({nav_ms}ms nav, {total_ms}ms total"
                        f"{', retry' if attempt_no > 1 else ''})")
            return RawPage(url=url, final_url=page.url or url, html=page_html,
                           nav_ms=nav_ms, total_ms=total_ms, attempts=attempt_no)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(url, str(e).splitlines()[0] if str(e) else "timeout") from e
        except PlaywrightError as e:
            message = str(e).splitlines()[0] if str(e) else type(e).__name__
            if "timeout" in message.lower():
                raise NavigationTimeout(url, message) from e
            raise RenderFailure(url, message) from e
        finally:
            try:
                await page.close()
            except PlaywrightError:
                pass

    async def _wait_for_content(self, page: Page):
        threshold = self.settings.content_ready_chars
        try:
            await page.wait_for_function(
                f"() => ((document.body && document.body.innerText) || '').length > {threshold}",
                timeout=self.settings.content_ready_timeout_ms,
            )
        except PlaywrightTimeoutError:
            logger.debug(f"Content readiness not reached on {page.url}; continuing")

    async def sweep_carousels(self, page: Page) -> str:
        """Click through sliders and collect every distinct slide text.

        Bounded best-effort accumulation: pagination dots are clicked once
        each, "next" controls repeatedly, and the visible slide texts are
        snapshotted after every interaction. The total number of clicks is
        capped; any browser error ends the sweep with what was collected.
        """
        collected: List[str] = []
        seen: Set[str] = set()
        budget = self.settings.carousel_max_interactions
        step_ms = self.settings.carousel_step_ms

        async def snapshot():
            try:
                texts = await page.locator(self.selectors.item_selector).all_inner_texts()
            except PlaywrightError:
                return
            for text in texts:
                text = text.strip()
                if len(text) > MIN_SLIDE_CHARS and text not in seen:
                    seen.add(text)
                    collected.append(text)

        try:
            await snapshot()

            for selector in self.selectors.pagination:
                if budget <= 0:
                    break
                dots = page.locator(selector)
                count = await dots.count()
                if count < 2:
                    continue
                for i in range(min(count, budget)):
                    if await self._click(dots.nth(i)):
                        budget -= 1
                        await page.wait_for_timeout(step_ms)
                        await snapshot()

            for selector in self.selectors.next_buttons:
                if budget <= 0:
                    break
                buttons = page.locator(selector)
                for i in range(await buttons.count()):
                    button = buttons.nth(i)
                    clicks = 0
                    while budget > 0 and clicks < self.settings.carousel_clicks_per_control:
                        if not await self._click(button):
                            break
                        clicks += 1
                        budget -= 1
                        await page.wait_for_timeout(step_ms)
                        await snapshot()
        except PlaywrightError as e:
            logger.debug(f"Carousel extraction skipped: {e}")

        return "\n\n".join(collected)

    @staticmethod
    async def _click(locator) -> bool:
        try:
            if not await locator.is_visible():
                return False
            await locator.dispatch_event("click", timeout=1000)
            return True
        except PlaywrightError:
            return False
