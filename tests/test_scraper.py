import asyncio

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from scraper import fetch_all_sources

FRONT_PAGE = """
<html><body>
  <a href="/news/one">The first story on the front page today</a>
  <a href="/news/two">The second story on the front page today</a>
  <h2>A heading without any link attached here</h2>
</body></html>
"""

OTHER_PAGE = '<a href="/story/x">Only story from the other source page</a>'


@pytest.fixture
async def site():
    async def front(request):
        return web.Response(text=FRONT_PAGE, content_type="text/html")

    async def other(request):
        await asyncio.sleep(0.05)
        return web.Response(text=OTHER_PAGE, content_type="text/html")

    async def missing(request):
        return web.Response(text=OTHER_PAGE, status=404, content_type="text/html")

    async def slow(request):
        await asyncio.sleep(2)
        return web.Response(text=FRONT_PAGE, content_type="text/html")

    app = web.Application()
    app.router.add_get("/front", front)
    app.router.add_get("/other", other)
    app.router.add_get("/missing", missing)
    app.router.add_get("/slow", slow)

    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


async def test_results_follow_input_order(site):
    urls = [str(site.make_url("/other")), str(site.make_url("/front"))]

    articles = await fetch_all_sources(urls)

    assert [a.title for a in articles] == [
        "Only story from the other source page",
        "The first story on the front page today",
        "The second story on the front page today",
        "A heading without any link attached here",
    ]
    assert articles[1].url == str(site.make_url("/news/one"))
    assert articles[3].url == str(site.make_url("/front"))
    assert {a.source for a in articles} == {site.host}


async def test_non_2xx_body_is_still_parsed(site):
    articles = await fetch_all_sources([str(site.make_url("/missing"))])
    assert [a.title for a in articles] == ["Only story from the other source page"]


async def test_unreachable_and_slow_sources_contribute_nothing(site):
    urls = [
        "http://127.0.0.1:1/nothing-listens-here",
        str(site.make_url("/slow")),
        str(site.make_url("/other")),
    ]

    articles = await fetch_all_sources(urls, timeout=1)

    assert [a.title for a in articles] == ["Only story from the other source page"]


async def test_unbounded_fan_out(site):
    urls = [str(site.make_url("/front"))] * 3

    articles = await fetch_all_sources(urls, max_concurrent=0)

    assert len(articles) == 9


async def test_no_sources():
    assert await fetch_all_sources([]) == []
