"""Tests for URL extraction and the reader fetch."""

import httpx
import pytest

from obsigram.fetcher import (
    READER_BASE_URL,
    extract_urls,
    fetch_url,
    is_youtube_url,
    strip_urls,
    validate_url,
)


def test_extract_urls_splits_adjacent_urls():
    text = "see https://a.example/x https://b.example/yhttps://c.example/z done"
    assert extract_urls(text) == ["https://a.example/x", "https://b.example/y", "https://c.example/z"]


def test_strip_urls():
    assert strip_urls("read this https://a.example/x later") == "read this  later"


def test_is_youtube_url():
    assert is_youtube_url("https://www.youtube.com/watch?v=abc")
    assert is_youtube_url("https://youtu.be/abc")
    assert not is_youtube_url("https://example.com")


@pytest.mark.parametrize("url", ["ftp://example.com/file", "https://", "example.com"])
def test_validate_url_rejects(url):
    with pytest.raises(ValueError):
        validate_url(url)


@pytest.mark.asyncio
async def test_fetch_url_returns_reader_text():
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, text="# Page\n\nReadable text")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text = await fetch_url("https://example.com/post", client)

    assert text == "# Page\n\nReadable text"
    assert requested == [f"{READER_BASE_URL}https://example.com/post"]


@pytest.mark.asyncio
async def test_fetch_url_retries_once_then_falls_back():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        text = await fetch_url("https://example.com/post", client)

    assert text == "https://example.com/post"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_fetch_url_recovers_on_retry():
    responses = iter([httpx.Response(500), httpx.Response(200, text="second time")])

    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: next(responses))) as client:
        assert await fetch_url("https://example.com/post", client) == "second time"


@pytest.mark.asyncio
async def test_fetch_url_invalid():
    with pytest.raises(ValueError):
        await fetch_url("not a url")
