from types import SimpleNamespace

import pytest
from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from bizcrawler.config import CrawlerSettings
from bizcrawler.models import FailureKind, PageFailure, RawPage
from bizcrawler.renderer import PageRenderer, append_auxiliary_block, block_requests

URL = "https://barber.example/"
BODY = "<html><body><main>Haircut – 20€</main></body></html>"


class FakeLocator:
    def __init__(self, count=0, texts=(), on_click=None):
        self._count = count
        self._texts = texts
        self.on_click = on_click

    async def count(self):
        return self._count

    def nth(self, i):
        return self

    async def is_visible(self):
        return True

    async def dispatch_event(self, event, timeout=None):
        if self.on_click:
            self.on_click()

    async def all_inner_texts(self):
        return list(self._texts() if callable(self._texts) else self._texts)


class FakePage:
    def __init__(self, outcome, final_url=URL):
        self.outcome = outcome
        self.url = final_url
        self.goto_timeouts = []
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_timeouts.append(timeout)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return SimpleNamespace(ok=self.outcome < 400, status=self.outcome)

    async def wait_for_timeout(self, ms):
        return None

    async def wait_for_function(self, expression, timeout=None):
        return None

    def locator(self, selector):
        return FakeLocator()

    async def content(self):
        return BODY

    async def close(self):
        self.closed = True


class FakeContext:
    def __init__(self, *pages):
        self.pages = list(pages)
        self.opened = []

    async def new_page(self):
        page = self.pages.pop(0)
        self.opened.append(page)
        return page


def renderer(**overrides):
    return PageRenderer(CrawlerSettings(render_wait_ms=0, carousel_step_ms=0, **overrides))


@pytest.mark.asyncio
async def test_render_success():
    context = FakeContext(FakePage(200, final_url="https://barber.example/sk/"))
    raw = await renderer().render(context, URL)
    assert isinstance(raw, RawPage)
    assert raw.final_url == "https://barber.example/sk/"
    assert raw.html == BODY
    assert raw.attempts == 1
    assert context.opened[0].closed


@pytest.mark.asyncio
async def test_timeout_is_retried_once_with_doubled_timeout():
    context = FakeContext(FakePage(PlaywrightTimeoutError("Timeout 15000ms exceeded.")), FakePage(200))
    raw = await renderer(nav_timeout_ms=15000).render(context, URL)
    assert isinstance(raw, RawPage)
    assert raw.attempts == 2
    assert [p.goto_timeouts[0] for p in context.opened] == [15000, 30000]
    assert all(p.closed for p in context.opened)


@pytest.mark.asyncio
async def test_two_timeouts_give_a_navigation_failure():
    context = FakeContext(
        FakePage(PlaywrightTimeoutError("Timeout 15000ms exceeded.")),
        FakePage(PlaywrightTimeoutError("Timeout 30000ms exceeded.")),
    )
    result = await renderer().render(context, URL)
    assert isinstance(result, PageFailure)
    assert result.kind == FailureKind.NAVIGATION_TIMEOUT
    assert result.url == URL


@pytest.mark.asyncio
async def test_error_status_fails_without_retry():
    context = FakeContext(FakePage(404), FakePage(200))
    result = await renderer().render(context, URL)
    assert isinstance(result, PageFailure)
    assert result.kind == FailureKind.RENDER_FAILURE
    assert "404" in result.reason
    assert len(context.opened) == 1


@pytest.mark.asyncio
async def test_browser_error_is_a_render_failure():
    context = FakeContext(FakePage(PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://barber.example/")))
    result = await renderer().render(context, URL)
    assert result.kind == FailureKind.RENDER_FAILURE
    assert len(context.opened) == 1


@pytest.mark.asyncio
async def test_sweep_carousels_is_bounded():
    slides = [f"Slide {i}: Haircut special number {i}" for i in range(6)]
    position = {"index": 0}

    def advance():
        position["index"] = (position["index"] + 1) % len(slides)

    next_button = FakeLocator(count=1, on_click=advance)
    items = FakeLocator(texts=lambda: [slides[position["index"]]])
    pr = renderer(carousel_max_interactions=3)

    class CarouselPage(FakePage):
        def locator(self, selector):
            if selector == pr.selectors.item_selector:
                return items
            if selector == ".swiper-button-next":
                return next_button
            return FakeLocator()

    text = await pr.sweep_carousels(CarouselPage(200))
    assert text.split("\n\n") == slides[:4]


@pytest.mark.asyncio
async def test_block_requests():
    actions = []

    def route(resource_type, url):
        async def abort():
            actions.append(("abort", url))

        async def continue_():
            actions.append(("continue", url))

        return SimpleNamespace(request=SimpleNamespace(resource_type=resource_type, url=url),
                               abort=abort, continue_=continue_)

    await block_requests(route("image", "https://barber.example/logo.png"))
    await block_requests(route("script", "https://www.googletagmanager.com/gtm.js"))
    await block_requests(route("document", "https://barber.example/"))
    assert [a for a, _ in actions] == ["abort", "abort", "continue"]


def test_append_auxiliary_block():
    html = "<html><body><p>x</p></body></html>"
    assert append_auxiliary_block(html, "short") == html

    text = "Slide <b>one</b> " * 10
    result = append_auxiliary_block(html, text)
    assert result.index("extracted-carousel-content") < result.index("</body>")
    assert "&lt;b&gt;one&lt;/b&gt;" in result
