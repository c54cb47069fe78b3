import asyncio

from aiohttp import web

from sitecrawl.crawler.fetcher import WebFetcher
from sitecrawl.crawler.sitemap import SitemapDiscovery, parse_sitemap
from conftest import serve


URLSET = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>{base}/one</loc></url>
  <url><loc> {base}/two </loc><lastmod>2024-01-01</lastmod></url>
</urlset>
"""

INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>{base}/posts.xml</loc></sitemap>
  <sitemap><loc>{base}/pages.xml</loc></sitemap>
</sitemapindex>
"""


def test_parse_urlset():
    kind, locs = parse_sitemap(URLSET.format(base="https://example.com"))
    assert kind == 'urlset'
    assert locs == ["https://example.com/one", "https://example.com/two"]


def test_parse_index():
    kind, locs = parse_sitemap(INDEX.format(base="https://example.com"))
    assert kind == 'index'
    assert locs == ["https://example.com/posts.xml", "https://example.com/pages.xml"]


def test_parse_garbage():
    assert parse_sitemap("<html><body>hello</body></html>") == (None, [])


def xml_response(text):
    async def handler(request):
        base = f"http://{request.host}"
        return web.Response(text=text.format(base=base), content_type='application/xml')
    return handler


def test_discovery_follows_one_index_level():
    routes = {
        '/sitemap_index.xml': xml_response(INDEX),
        '/posts.xml': xml_response(URLSET),
        '/pages.xml': xml_response(INDEX),
    }

    async def scenario():
        async with serve(routes) as base:
            async with WebFetcher() as fetcher:
                domain = base.split("://", 1)[1]
                urls = await SitemapDiscovery(fetcher, scheme='http').discover(domain)
                return base, urls

    base, urls = asyncio.run(scenario())
    # /sitemap.xml is a 404; the nested index in pages.xml is not followed
    assert urls == [f"{base}/one", f"{base}/two"]


def test_discovery_caps_urls():
    big = "<urlset>" + "".join(f"<url><loc>{{base}}/p{i}</loc></url>" for i in range(20)) + "</urlset>"
    routes = {'/sitemap.xml': xml_response(big)}

    async def scenario():
        async with serve(routes) as base:
            async with WebFetcher() as fetcher:
                domain = base.split("://", 1)[1]
                return await SitemapDiscovery(fetcher, scheme='http', max_urls=5).discover(domain)

    assert len(asyncio.run(scenario())) == 5


def test_discovery_without_sitemap_returns_empty():
    async def scenario():
        async with serve({}) as base:
            async with WebFetcher() as fetcher:
                domain = base.split("://", 1)[1]
                return await SitemapDiscovery(fetcher, scheme='http').discover(domain)

    assert asyncio.run(scenario()) == []
