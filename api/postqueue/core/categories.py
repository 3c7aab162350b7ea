from enum import Enum


class Category(str, Enum):
    RESULTS = "results"
    ADMIT_CARDS = "admit_cards"
    LATEST_JOBS = "latest_jobs"
    ANSWER_KEY = "answer_key"
    DOCUMENTS = "documents"
    ADMISSION = "admission"
    NEWS = "news"
    WORLD_NEWS = "world-news"
    SPORTS = "sports"
    ECONOMY = "economy"
    TECHNOLOGY = "technology"
    REGIONAL_NEWS = "regional-news"


ALLOWED_CATEGORIES: frozenset[str] = frozenset(category.value for category in Category)


def parse_category(value: str | Category | None) -> Category | None:
    """Map a raw category string onto the closed set; unknown values return None."""
    if isinstance(value, Category):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Category(value)
    except ValueError:
        return None
