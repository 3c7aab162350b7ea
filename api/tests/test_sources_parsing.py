from __future__ import annotations

import asyncio

import httpx
import pytest

from postqueue.core.categories import Category
from postqueue.services.ingestion import run_ingestion
from postqueue.services.sources.base import UpstreamFetchError
from postqueue.services.sources.gktoday import GKTodayAdapter
from postqueue.services.sources.newsonair import NewsOnAirAdapter
from postqueue.services.sources.registry import get_source_adapter
from postqueue.services.sources.sarkari_result import SarkariResultAdapter
from postqueue.services.store import InMemoryRepository

NEWSONAIR_HTML = """
<html><body>
<div id="post-container">
  <article class="post-101 post type-post">
    <figure class="featured-media"><img src="https://www.newsonair.gov.in/wp-content/uploads/a.jpg"></figure>
    <h3 class="entry-title"><a href="/india-wins-series/">India wins series against England</a></h3>
  </article>
  <article class="post-100 post type-post">
    <img data-src="https://www.newsonair.gov.in/wp-content/uploads/b.jpg">
    <h3 class="entry-title"><a href="https://www.newsonair.gov.in/older/">Older story</a></h3>
  </article>
  <article class="post-99 post"><h3 class="entry-title"></h3></article>
</div>
</body></html>
"""

GKTODAY_HTML = """
<div class="home-post-item">
  <div class="featured-image"><img src="https://www.gktoday.in/img/one.png"></div>
  <div class="post-data"><h3><a href="https://www.gktoday.in/one/">Cabinet approves new scheme</a></h3></div>
</div>
<div class="home-post-item">
  <div class="post-data"><h3><a href="">No link here</a></h3></div>
</div>
"""

SARKARI_HTML = """
<div class="gb-grid-column">
  <p class="gb-headline">Latest Results</p>
  <ul>
    <li><a class="wp-block-latest-posts__post-title" href="/ssc-gd-result/">SSC GD Result 2025</a></li>
    <li><a class="wp-block-latest-posts__post-title" href="/ssc-gd-result/">SSC GD Result 2025 (mirror)</a></li>
    <li><a class="wp-block-latest-posts__post-title" href="/rrb-ntpc-result/">RRB NTPC Result</a></li>
  </ul>
</div>
<div class="gb-grid-column">
  <p class="gb-headline">Admit Cards</p>
  <ul><li><a class="wp-block-latest-posts__post-title" href="/upsc-admit/">UPSC Admit Card</a></li></ul>
</div>
"""


def test_newsonair_parses_articles_in_page_order() -> None:
    candidates = NewsOnAirAdapter().parse(NEWSONAIR_HTML, Category.SPORTS)

    assert [candidate.title for candidate in candidates] == ["India wins series against England", "Older story"]
    first = candidates[0]
    assert first.url == "https://www.newsonair.gov.in/india-wins-series/"
    assert first.image_url == "https://www.newsonair.gov.in/wp-content/uploads/a.jpg"
    assert first.category == "sports"
    assert candidates[1].image_url == "https://www.newsonair.gov.in/wp-content/uploads/b.jpg"


def test_gktoday_skips_posts_without_link() -> None:
    candidates = GKTodayAdapter().parse(GKTODAY_HTML, Category.NEWS)

    assert len(candidates) == 1
    assert candidates[0].title == "Cabinet approves new scheme"
    assert candidates[0].image_url == "https://www.gktoday.in/img/one.png"


def test_sarkari_result_reads_only_the_requested_section() -> None:
    adapter = SarkariResultAdapter()

    results = adapter.parse(SARKARI_HTML, Category.RESULTS)
    admit_cards = adapter.parse(SARKARI_HTML, Category.ADMIT_CARDS)

    assert [candidate.title for candidate in results] == ["SSC GD Result 2025", "RRB NTPC Result"]
    assert results[0].url == "https://sarkariresult.com.cm/ssc-gd-result/"
    assert results[0].image_url is None
    assert [candidate.title for candidate in admit_cards] == ["UPSC Admit Card"]
    assert adapter.parse(SARKARI_HTML, Category.DOCUMENTS) == []


def test_fetch_limits_to_newest_items() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Referer"] == "https://www.newsonair.gov.in/"
        return httpx.Response(200, text=NEWSONAIR_HTML, request=request)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await NewsOnAirAdapter().fetch(Category.NEWS, client=client)

    candidates = asyncio.run(run())

    assert [candidate.title for candidate in candidates] == ["India wins series against England"]
    assert candidates[0].category == "news"


def test_fetch_raises_on_non_200() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, request=request)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GKTodayAdapter().fetch(Category.NEWS, client=client)

    with pytest.raises(UpstreamFetchError):
        asyncio.run(run())


def test_fetch_rejects_unsupported_category() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await GKTodayAdapter().fetch(Category.SPORTS, client=client)

    with pytest.raises(UpstreamFetchError):
        asyncio.run(run())


def test_registry_knows_each_source() -> None:
    assert get_source_adapter("newsonair").categories == [
        Category.REGIONAL_NEWS,
        Category.NEWS,
        Category.SPORTS,
        Category.WORLD_NEWS,
        Category.ECONOMY,
    ]
    assert get_source_adapter("gktoday").supports(Category.NEWS)
    assert len(get_source_adapter("sarkari-result").categories) == 6
    assert get_source_adapter("unknown") is None


@pytest.mark.parametrize("status_code", [200, 503])
def test_sarkari_home_page_is_downloaded_once_per_run(status_code: int) -> None:
    requests: list[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        requests.append(str(request.url))
        return httpx.Response(status_code, text=SARKARI_HTML, request=request)

    adapter = SarkariResultAdapter()

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await run_ingestion(InMemoryRepository(), adapter, adapter.categories, client=client)

    runs = asyncio.run(run())

    assert requests == ["https://sarkariresult.com.cm/"]
    assert len(runs) == len(adapter.categories)
    by_category = {run.category: run for run in runs}
    if status_code == 200:
        assert by_category["results"].count("inserted") == 2
        assert by_category["admit_cards"].count("inserted") == 1
    else:
        assert all(not run.success for run in runs)
