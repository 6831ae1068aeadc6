"""
URL reader for ObsiGram.

Fetches readable page text through the r.jina.ai reader service. A page that
cannot be read is kept as its bare URL so nothing the user sent is lost.
"""

import logging
import re
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger(__name__)

READER_BASE_URL = "https://r.jina.ai/"
FIRST_TIMEOUT = 20.0
RETRY_TIMEOUT = 30.0

# Stops at the next scheme so adjacent URLs without whitespace split apart
URL_PATTERN = re.compile(r"https?://(?:(?!https?://)\S)*", re.IGNORECASE)
YOUTUBE_PATTERN = re.compile(r"youtube\.com|youtu\.be")


def extract_urls(text: str) -> list[str]:
    return URL_PATTERN.findall(text)


def strip_urls(text: str) -> str:
    """Text with every URL removed."""
    return URL_PATTERN.sub("", text).strip()


def is_youtube_url(url: str) -> bool:
    return bool(YOUTUBE_PATTERN.search(url))


def validate_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Invalid URL: {url}")
    return url


async def fetch_url(url: str, client: httpx.AsyncClient | None = None) -> str:
    """
    Readable text of a web page.

    Tries the reader with a 20s timeout, retries once at 30s, then falls back
    to returning the URL itself. Raises ValueError for malformed URLs.
    """
    validate_url(url)
    reader_url = f"{READER_BASE_URL}{url}"

    async def attempt(http: httpx.AsyncClient) -> str | None:
        for timeout in (FIRST_TIMEOUT, RETRY_TIMEOUT):
            try:
                response = await http.get(reader_url, timeout=timeout)
                response.raise_for_status()
                return response.text
            except httpx.HTTPError as e:
                logger.warning(f"Reader fetch failed for {url} (timeout {timeout}s): {e}")
        return None

    if client is not None:
        text = await attempt(client)
    else:
        async with httpx.AsyncClient(follow_redirects=True) as http:
            text = await attempt(http)

    return text if text is not None else url
