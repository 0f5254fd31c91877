import asyncio

import pytest

from bizcrawler.controller import CrawlPhase
from bizcrawler.errors import CrawlInitializationError, MalformedUrlError

SITE = "https://barber.example"


def page(title, *links, text="Traditional barbershop in the old town."):
    anchors = "".join(f'<a href="{href}">{href}</a>' for href in links)
    return f"<html><head><title>{title}</title></head><body><main><p>{text}</p>{anchors}</main></body></html>"


def linked_site(n):
    """Home linking to n leaf pages which all link back home and to each other."""
    leaves = [f"/p{i}" for i in range(n)]
    site = {f"{SITE}/": page("Home", *leaves)}
    for leaf in leaves:
        site[f"{SITE}{leaf}"] = page(leaf, "/", *leaves)
    return site


@pytest.mark.asyncio
async def test_every_url_rendered_at_most_once(make_controller):
    controller, renderer = make_controller(linked_site(5))
    result = await controller.crawl(SITE, max_depth=5, max_pages=25)

    assert len(renderer.calls) == len(set(renderer.calls)) == 6
    assert len(result.pages) == 6
    assert result.phase == CrawlPhase.COMPLETED
    assert controller.sessions[0].closed


@pytest.mark.asyncio
async def test_max_pages_is_never_exceeded(make_controller):
    controller, renderer = make_controller(linked_site(10))
    result = await controller.crawl(SITE, max_depth=5, max_pages=3)
    assert len(result.pages) == 3
    assert len(renderer.calls) == 3


@pytest.mark.asyncio
async def test_settings_cap_lowers_max_pages(make_controller):
    controller, renderer = make_controller(linked_site(10), max_pages_cap=2)
    result = await controller.crawl(SITE, max_depth=5, max_pages=25)
    assert len(result.pages) == 2


@pytest.mark.asyncio
async def test_max_depth_zero_renders_only_seeds(make_controller):
    controller, renderer = make_controller(linked_site(3), sitemap=[f"{SITE}/p2"])
    result = await controller.crawl(SITE, max_depth=0, max_pages=25)
    assert renderer.calls == [f"{SITE}/", f"{SITE}/p2"]
    assert result.depth_reached == 0


@pytest.mark.asyncio
async def test_priority_links_are_crawled_first(make_controller):
    site = {
        f"{SITE}/": page("Home", "/gallery", "/blog/news-1", "https://other.example/", "/cennik"),
        f"{SITE}/gallery": page("Gallery"),
        f"{SITE}/cennik": page("Cenník", text="Haircut – 20€"),
    }
    controller, renderer = make_controller(site, concurrency=1)
    await controller.crawl(SITE, max_depth=2, max_pages=2)
    assert renderer.calls == [f"{SITE}/", f"{SITE}/cennik"]


@pytest.mark.asyncio
async def test_concurrency_is_bounded(make_controller):
    controller, renderer = make_controller(linked_site(8), delay=0.01, concurrency=3)
    await controller.crawl(SITE, max_depth=1, max_pages=25)
    assert 1 < renderer.max_in_flight <= 3


@pytest.mark.asyncio
async def test_failures_are_recorded_and_crawl_continues(make_controller, event_log):
    site = {f"{SITE}/": page("Home", "/missing", "/kontakt"), f"{SITE}/kontakt": page("Kontakt")}
    controller, renderer = make_controller(site)
    result = await controller.crawl(SITE, max_depth=1, max_pages=25, emit=event_log)

    assert [p.url for p in result.pages] == [f"{SITE}/", f"{SITE}/kontakt"]
    assert [f.url for f in result.failures] == [f"{SITE}/missing"]
    assert event_log.types[0] == "start"
    assert event_log.types[-1] == "scrape_complete"
    assert event_log.types.count("page_done") == 2
    assert event_log.types.count("page_error") == 1
    assert event_log.events[-1][1]["pages_scraped"] == 2


@pytest.mark.asyncio
async def test_start_redirect_accepts_new_origin(make_controller):
    site = {
        "https://www.barber.example/": page("Home", "/kontakt"),
        "https://www.barber.example/kontakt": page("Kontakt"),
    }
    controller, renderer = make_controller(
        site, redirects={f"{SITE}/": "https://www.barber.example/"})
    result = await controller.crawl("barber.example", max_depth=1, max_pages=25)

    assert renderer.calls == [f"{SITE}/", "https://www.barber.example/kontakt"]
    assert "https://www.barber.example/" in result.visited
    assert len(result.pages) == 2


@pytest.mark.asyncio
async def test_malformed_url_raises_before_network(make_controller):
    controller, renderer = make_controller({})
    for bad in ("", "ftp://barber.example/", "https://"):
        with pytest.raises(MalformedUrlError):
            await controller.crawl(bad)
    assert renderer.calls == []
    assert controller.sessions == []


@pytest.mark.asyncio
async def test_browser_start_failure_aborts(make_controller, event_log):
    controller, renderer = make_controller(linked_site(2), session_fails=True)
    with pytest.raises(CrawlInitializationError):
        await controller.crawl(SITE, emit=event_log)
    assert event_log.types == ["start", "aborted"]
    assert renderer.calls == []


@pytest.mark.asyncio
async def test_stop_request_finishes_current_depth(make_controller):
    controller, renderer = make_controller(linked_site(3))

    def stop_after_first_page(event_type, **data):
        if event_type == "page_done":
            controller.request_stop()

    result = await controller.crawl(SITE, max_depth=5, max_pages=25, emit=stop_after_first_page)
    assert renderer.calls == [f"{SITE}/"]
    assert result.phase == CrawlPhase.COMPLETED


@pytest.mark.asyncio
async def test_concurrent_crawls_keep_their_own_scope(make_controller):
    site = {}
    for host in ("https://alpha.example", "https://beta.example"):
        site[f"{host}/"] = page("Home", "/kontakt")
        site[f"{host}/kontakt"] = page("Kontakt")
    controller, renderer = make_controller(site, delay=0.02)

    alpha, beta = await asyncio.gather(
        controller.crawl("https://alpha.example", max_depth=1),
        controller.crawl("https://beta.example", max_depth=1),
    )
    assert [p.url for p in alpha.pages] == ["https://alpha.example/", "https://alpha.example/kontakt"]
    assert [p.url for p in beta.pages] == ["https://beta.example/", "https://beta.example/kontakt"]


@pytest.mark.asyncio
async def test_ignore_words_in_the_hostname_do_not_filter_the_site(make_controller):
    host = "https://newstyle-barber.example"
    site = {f"{host}/": page("Home", "/cennik", "/blog/post-1"), f"{host}/cennik": page("Cenník")}
    controller, renderer = make_controller(site)
    result = await controller.crawl(host, max_depth=1)

    assert renderer.calls == [f"{host}/", f"{host}/cennik"]
    assert len(result.pages) == 2


@pytest.mark.asyncio
async def test_redirect_target_listed_in_sitemap_is_kept_once(make_controller):
    site = {f"{SITE}/home": page("Home", "/kontakt"), f"{SITE}/kontakt": page("Kontakt")}
    controller, renderer = make_controller(
        site, sitemap=[f"{SITE}/home"], redirects={f"{SITE}/": f"{SITE}/home"})
    result = await controller.crawl(SITE, max_depth=1, max_pages=2)

    assert len(result.pages) == 2
    assert result.pages[-1].url == f"{SITE}/kontakt"
