import asyncio
import dataclasses

import pytest
from aiohttp import web
from aiohttp import test_utils

from ghostsurfer.errors import NavigationError, NavigationTimeout
from ghostsurfer.http_provider import HttpProvider, classify_resource, extract_assets
from ghostsurfer.providers import create_provider
from ghostsurfer.runner import SessionRunner

PAGE = """<!doctype html>
<html>
<head>
  <link rel="stylesheet" href="/static/site.css">
  <link href="/favicon.ico" rel="icon">
  <link rel="canonical" href="https://a.example/">
  <script src="/static/app.js"></script>
  <script>inline()</script>
</head>
<body>
  <a href="/about">About</a>
  <img src="/static/logo.png" data-src="/lazy.png">
  <img src="data:image/png;base64,AAAA">
  <img src='/static/logo.png'>
  <video><source src="/media/intro.mp4"></video>
  <img src="/missing.png">
</body>
</html>
"""


def test_extract_assets_finds_loaded_resources_only():
    assets = extract_assets(PAGE, "https://a.example/shop/")

    assert assets == [
        ("https://a.example/static/site.css", "stylesheet"),
        ("https://a.example/favicon.ico", "image"),
        ("https://a.example/static/app.js", "script"),
        ("https://a.example/static/logo.png", "image"),
        ("https://a.example/media/intro.mp4", "media"),
        ("https://a.example/missing.png", "image"),
    ]


def test_extract_assets_resolves_relative_and_protocol_relative_urls():
    html = '<script src="js/a.js"></script><img src="//cdn.example/p.webp#frag">'

    assert extract_assets(html, "https://a.example/shop/index.html") == [
        ("https://a.example/shop/js/a.js", "script"),
        ("https://cdn.example/p.webp", "image"),
    ]


def test_classify_resource():
    assert classify_resource("https://a.example/x.woff2") == "font"
    assert classify_resource("https://a.example/x.css?v=3") == "stylesheet"
    assert classify_resource("https://a.example/data.json") == "fetch"
    assert classify_resource("https://a.example/unknown") == "other"
    assert classify_resource("https://a.example/track", "img") == "image"
    assert classify_resource("https://a.example/frame", "iframe") == "document"


def make_app(delay: float = 0) -> web.Application:
    async def index(request):
        if delay:
            await asyncio.sleep(delay)
        return web.Response(text=PAGE, content_type="text/html")

    async def asset(request):
        return web.Response(body=b"x" * 64, content_type="application/octet-stream")

    app = web.Application()
    app.router.add_get("/", index)
    for path in ("/static/site.css", "/favicon.ico", "/static/app.js", "/static/logo.png", "/media/intro.mp4"):
        app.router.add_get(path, asset)
    return app


@pytest.mark.asyncio
async def test_session_against_local_server(config):
    async with test_utils.TestServer(make_app()) as server:
        config = dataclasses.replace(config, url=str(server.make_url("/")), provider="http", drain_ms=0)
        provider = create_provider(config)
        assert isinstance(provider, HttpProvider)

        async with provider:
            result = await SessionRunner(provider, config, 1).run()

    assert result.ok
    by_type = {}
    for record in result.requests:
        by_type.setdefault(record.resource_type, []).append(record)
    assert len(by_type["document"]) == 1
    assert {r.url.rsplit("/", 1)[-1] for r in by_type["image"]} == {"favicon.ico", "logo.png", "missing.png"}
    assert len(result.requests) == 7
    assert all(r.duration >= 0 for r in result.requests)


@pytest.mark.asyncio
async def test_slow_document_times_out(config):
    async with test_utils.TestServer(make_app(delay=1.0)) as server:
        config = dataclasses.replace(config, provider="http")
        provider = HttpProvider(config)
        session = await provider.open()
        try:
            with pytest.raises(NavigationTimeout):
                await session.navigate(str(server.make_url("/")), timeout_ms=100)
        finally:
            await session.close()


@pytest.mark.asyncio
async def test_unreachable_host_is_a_navigation_error(config):
    provider = HttpProvider(config)
    session = await provider.open()
    failed = []
    session.on_request_failed(failed.append)
    try:
        with pytest.raises(NavigationError):
            await session.navigate("http://127.0.0.1:9/", timeout_ms=5000)
    finally:
        await session.close()

    assert [r.resource_type for r in failed] == ["document"]
    assert failed[0].end_ms >= failed[0].start_ms
