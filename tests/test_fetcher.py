import asyncio

from aiohttp import web

from sitecrawl.crawler.fetcher import WebFetcher
from conftest import free_port, serve


async def home(request):
    return web.Response(
        text='<html><head><title>Home</title></head>'
             '<body><a href="/a">A</a><a href="/b#x">B</a></body></html>',
        content_type='text/html'
    )


async def missing(request):
    return web.Response(status=404, text="nope")


async def plain(request):
    return web.Response(text='<a href="/hidden">not html</a>', content_type='text/plain')


async def slow(request):
    await asyncio.sleep(2)
    return web.Response(text="late")


ROUTES = {'/': home, '/missing': missing, '/plain': plain, '/slow': slow}


def test_fetch_html_page():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher() as fetcher:
                return base, await fetcher.fetch_page(f"{base}/"), fetcher.get_stats()

    base, page, stats = asyncio.run(scenario())
    assert page.error is None
    assert page.status_code == 200
    assert page.title == "Home"
    assert page.links == [f"{base}/a", f"{base}/b"]
    assert 'text/html' in page.content_type
    assert stats['successful_requests'] == 1


def test_non_200_is_an_error_result():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher() as fetcher:
                return await fetcher.fetch_page(f"{base}/missing")

    page = asyncio.run(scenario())
    assert page.status_code == 404
    assert page.error == "HTTP 404"
    assert page.links == []


def test_non_html_is_not_parsed():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher() as fetcher:
                return await fetcher.fetch_page(f"{base}/plain")

    page = asyncio.run(scenario())
    assert page.error is None
    assert page.links == []


def test_timeout_is_reported():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher(request_timeout=0.2) as fetcher:
                return await fetcher.fetch_page(f"{base}/slow")

    page = asyncio.run(scenario())
    assert page.error == "Request timeout"


def test_connection_failure_is_reported():
    async def scenario():
        async with WebFetcher(request_timeout=2) as fetcher:
            return await fetcher.fetch_page(f"http://127.0.0.1:{free_port()}/")

    page = asyncio.run(scenario())
    assert page.error.startswith("Client error:")
    assert page.status_code == 0


def test_fetch_text():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher() as fetcher:
                return (await fetcher.fetch_text(f"{base}/plain"),
                        await fetcher.fetch_text(f"{base}/missing"))

    body, missing_body = asyncio.run(scenario())
    assert "not html" in body
    assert missing_body is None


def test_oversized_body_is_dropped():
    async def scenario():
        async with serve(ROUTES) as base:
            async with WebFetcher(max_content_size=10) as fetcher:
                return await fetcher.fetch_page(f"{base}/")

    page = asyncio.run(scenario())
    assert page.status_code == 200
    assert page.links == []
