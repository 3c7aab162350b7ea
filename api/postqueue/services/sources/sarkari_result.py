from __future__ import annotations

from postqueue.core.categories import Category
from postqueue.services.sources.base import Candidate, SourceAdapter, first_attr, make_soup

HOME_URL = "https://sarkariresult.com.cm/"

SECTION_HEADINGS: dict[Category, str] = {
    Category.RESULTS: "Results",
    Category.ADMIT_CARDS: "Admit Cards",
    Category.LATEST_JOBS: "Latest Jobs",
    Category.ANSWER_KEY: "Answer Key",
    Category.DOCUMENTS: "Documents",
    Category.ADMISSION: "Admission",
}


class SarkariResultAdapter(SourceAdapter):
    """Every category lives on the home page, one grid column per section."""

    key = "sarkari-result"
    base_url = HOME_URL
    category_urls = {category: HOME_URL for category in SECTION_HEADINGS}
    max_items = 5

    def parse(self, html: str, category: Category) -> list[Candidate]:
        heading_text = SECTION_HEADINGS[category].lower()
        soup = make_soup(html)

        candidates: list[Candidate] = []
        seen_urls: set[str] = set()
        for heading in soup.select("p.gb-headline"):
            if heading_text not in heading.get_text(strip=True).lower():
                continue
            column = heading.find_parent(class_="gb-grid-column")
            if column is None:
                continue
            for link in column.select("a.wp-block-latest-posts__post-title"):
                title = link.get_text(strip=True)
                url = self.absolute_url(first_attr(link, "href"))
                if not title or not url or url in seen_urls:
                    continue
                seen_urls.add(url)
                candidates.append(Candidate(title=title, url=url, image_url=None, category=category.value))
        return candidates
