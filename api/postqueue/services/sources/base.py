from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from postqueue.core.categories import Category

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class UpstreamFetchError(Exception):
    """Raised when a source page cannot be fetched or parsed."""


@dataclass(slots=True)
class Candidate:
    title: str
    url: str | None
    image_url: str | None
    category: str

    def as_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "image_url": self.image_url,
            "category": self.category,
        }


class PageCache:
    """Shares one download per URL among the categories of a single ingestion run."""

    def __init__(self) -> None:
        self._pages: dict[str, asyncio.Future[str]] = {}

    async def get(self, url: str, download: Callable[[], Awaitable[str]]) -> str:
        page = self._pages.get(url)
        if page is None:
            page = asyncio.ensure_future(download())
            self._pages[url] = page
        return await asyncio.shield(page)

    def __len__(self) -> int:
        return len(self._pages)


class SourceAdapter:
    """Fetches one listing page per category and turns it into candidates.

    Subclasses declare ``key``, ``category_urls`` and ``max_items`` and
    implement ``parse``. Parsers never see the network; ``fetch`` owns the
    HTTP call so that each adapter fails on its own.
    """

    key: str = ""
    base_url: str = ""
    category_urls: dict[Category, str] = {}
    max_items: int = 1

    @property
    def categories(self) -> list[Category]:
        return list(self.category_urls)

    def supports(self, category: Category) -> bool:
        return category in self.category_urls

    async def fetch(
        self,
        category: Category,
        *,
        client: httpx.AsyncClient,
        pages: PageCache | None = None,
    ) -> list[Candidate]:
        page_url = self.category_urls.get(category)
        if not page_url:
            raise UpstreamFetchError(f"{self.key} does not serve category {category.value}")

        if pages is None:
            html = await self.download(page_url, client=client)
        else:
            html = await pages.get(page_url, lambda: self.download(page_url, client=client))

        try:
            candidates = self.parse(html, category)
        except Exception as exc:
            logger.exception("parser failed for source=%s category=%s", self.key, category.value)
            raise UpstreamFetchError(f"failed to parse {page_url}") from exc

        return candidates[: self.max_items]

    async def download(self, page_url: str, *, client: httpx.AsyncClient) -> str:
        try:
            response = await client.get(page_url, headers={**DEFAULT_HEADERS, "Referer": self.base_url})
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"failed to fetch {page_url}: {exc.__class__.__name__}") from exc

        if response.status_code != 200:
            raise UpstreamFetchError(f"failed to fetch {page_url}: status {response.status_code}")
        return response.text

    def parse(self, html: str, category: Category) -> list[Candidate]:
        raise NotImplementedError

    def absolute_url(self, href: str | None) -> str | None:
        if not href:
            return None
        href = href.strip()
        if not href:
            return None
        return urljoin(self.base_url, href)


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def first_attr(element: Any, *names: str) -> str | None:
    if element is None:
        return None
    for name in names:
        value = element.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None
