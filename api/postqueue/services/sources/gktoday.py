from __future__ import annotations

from postqueue.core.categories import Category
from postqueue.services.sources.base import Candidate, SourceAdapter, first_attr, make_soup


class GKTodayAdapter(SourceAdapter):
    key = "gktoday"
    base_url = "https://www.gktoday.in/"
    category_urls = {Category.NEWS: "https://www.gktoday.in/"}
    max_items = 1

    def parse(self, html: str, category: Category) -> list[Candidate]:
        soup = make_soup(html)
        candidates: list[Candidate] = []
        for post in soup.select(".home-post-item"):
            title_link = post.select_one(".post-data h3 a")
            if title_link is None:
                continue
            title = title_link.get_text(strip=True)
            link = self.absolute_url(first_attr(title_link, "href"))
            # A post without both a title and a link cannot be deduplicated or posted.
            if not title or not link:
                continue
            image = post.select_one(".featured-image img")
            candidates.append(
                Candidate(
                    title=title,
                    url=link,
                    image_url=first_attr(image, "src", "data-src"),
                    category=category.value,
                )
            )
        return candidates
