from __future__ import annotations

import logging

from postqueue.core.categories import Category
from postqueue.services.sources.base import Candidate, SourceAdapter, first_attr, make_soup

logger = logging.getLogger(__name__)


class NewsOnAirAdapter(SourceAdapter):
    key = "newsonair"
    base_url = "https://www.newsonair.gov.in/"
    category_urls = {
        Category.REGIONAL_NEWS: "https://www.newsonair.gov.in/category/regional-news/",
        Category.NEWS: "https://www.newsonair.gov.in/category/national/",
        Category.SPORTS: "https://www.newsonair.gov.in/category/sports/",
        Category.WORLD_NEWS: "https://www.newsonair.gov.in/category/international/",
        Category.ECONOMY: "https://www.newsonair.gov.in/category/business/",
    }
    # Only the newest article of each listing is offered per run.
    max_items = 1

    def parse(self, html: str, category: Category) -> list[Candidate]:
        soup = make_soup(html)
        container = soup.select_one("#post-container") or soup.body or soup

        candidates: list[Candidate] = []
        for article in container.select('article[class*="post-"]'):
            title_link = article.select_one("h3.entry-title a")
            if title_link is None:
                continue
            title = title_link.get_text(strip=True) or first_attr(title_link, "title")
            if not title:
                continue

            image = (
                article.select_one("figure.featured-media img")
                or article.select_one(".featured-media img")
                or article.select_one("img")
            )
            candidates.append(
                Candidate(
                    title=title,
                    url=self.absolute_url(first_attr(title_link, "href")),
                    image_url=first_attr(image, "src", "data-src", "data-lazy-src"),
                    category=category.value,
                )
            )

        logger.debug("newsonair parsed %s articles for category=%s", len(candidates), category.value)
        return candidates
