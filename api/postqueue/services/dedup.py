from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from postqueue.core.categories import parse_category
from postqueue.services.repository import RepositoryError
from postqueue.services.sources.base import Candidate

logger = logging.getLogger(__name__)

MatchedTable = Literal["articles", "postable_entries"]
MatchedKey = Literal["title", "url"]


@dataclass(slots=True)
class DedupDecision:
    is_new: bool
    matched_in: MatchedTable | None = None
    matched_by: MatchedKey | None = None
    lookup_failed: bool = False


async def check(repository: Any, candidate: Candidate) -> DedupDecision:
    """Look for the candidate in both tables, by (title, category) and then by source URL.

    Titles are compared exactly. The URL key catches an item whose headline
    was edited upstream after it was queued. A failed lookup is logged and
    counted as "no match"; the unique index on insert is what finally
    rejects a duplicate that slipped through.
    """
    category = parse_category(candidate.category)
    if category is None:
        # Unknown categories form their own namespace and can never match.
        return DedupDecision(is_new=True)

    lookups: list[tuple[MatchedTable, MatchedKey, Any]] = [
        ("articles", "title", lambda: repository.find_article(title=candidate.title, category=category.value)),
        ("postable_entries", "title", lambda: repository.find_entry(title=candidate.title, category=category.value)),
    ]
    if candidate.url:
        lookups.append(("postable_entries", "url", lambda: repository.find_entry_by_link(candidate.url)))

    lookup_failed = False
    for table, key, lookup in lookups:
        try:
            match = await lookup()
        except RepositoryError as exc:
            lookup_failed = True
            logger.warning(
                "dedup lookup failed table=%s key=%s category=%s: %s; continuing toward insert",
                table,
                key,
                category.value,
                exc,
            )
            continue
        if match:
            return DedupDecision(is_new=False, matched_in=table, matched_by=key, lookup_failed=lookup_failed)

    return DedupDecision(is_new=True, lookup_failed=lookup_failed)


async def is_new(repository: Any, candidate: Candidate) -> bool:
    decision = await check(repository, candidate)
    return decision.is_new
