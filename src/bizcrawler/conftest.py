"""Offline stand-ins for the browser, the network and the chat model."""
import asyncio
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest

from bizcrawler.config import CrawlerSettings
from bizcrawler.controller import CrawlController
from bizcrawler.llm import LlmExtractor
from bizcrawler.models import FailureKind, PageFailure, RawPage
from bizcrawler.pipeline import ProfilePipeline

SITE = "https://barber.example"


def html_page(title: str, body: str) -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


class FakeSession:
    def __init__(self, settings=None, fail: bool = False):
        self.fail = fail
        self.started = False
        self.closed = False

    async def start(self):
        if self.fail:
            raise RuntimeError("chromium not installed")
        self.started = True
        return "context"

    async def close(self):
        self.closed = True


class FakeRenderer:
    """Serves HTML from a dict; unknown URLs fail like a 404."""

    def __init__(self, site: Dict[str, str], redirects: Optional[Dict[str, str]] = None, delay: float = 0):
        self.site = site
        self.redirects = redirects or {}
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def render(self, context, url):
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        final_url = self.redirects.get(url, url)
        if final_url not in self.site:
            return PageFailure(url=url, reason="status 404", kind=FailureKind.RENDER_FAILURE)
        return RawPage(url=url, final_url=final_url, html=self.site[final_url])


class FakeDiscoverer:
    def __init__(self, urls=()):
        self.urls = list(urls)

    async def discover(self, start_url):
        return list(self.urls)


class FakeChatModel:
    def __init__(self, content: str = "", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error:
            raise self.error
        return SimpleNamespace(content=self.content)


class EventLog:
    def __init__(self):
        self.events = []

    def __call__(self, event_type, **data):
        self.events.append((event_type, data))

    @property
    def types(self):
        return [t for t, _ in self.events]


@pytest.fixture
def settings():
    return CrawlerSettings(concurrency=2, render_wait_ms=0)


@pytest.fixture
def make_controller(settings):
    def factory(site, sitemap=(), redirects=None, session_fails=False, delay=0, **overrides):
        crawl_settings = settings.model_copy(update=overrides) if overrides else settings
        renderer = FakeRenderer(site, redirects=redirects, delay=delay)
        sessions = []

        def session_factory(_settings):
            session = FakeSession(fail=session_fails)
            sessions.append(session)
            return session

        controller = CrawlController(
            crawl_settings,
            renderer=renderer,
            discoverer=FakeDiscoverer(sitemap),
            session_factory=session_factory,
        )
        controller.sessions = sessions
        return controller, renderer
    return factory


@pytest.fixture
def make_pipeline(settings, make_controller):
    def factory(site, llm=None, **kwargs):
        controller, renderer = make_controller(site, **kwargs)
        extractor = LlmExtractor(settings, llm=llm)
        return ProfilePipeline(settings, controller=controller, llm_extractor=extractor), renderer
    return factory


@pytest.fixture
def event_log():
    return EventLog()
