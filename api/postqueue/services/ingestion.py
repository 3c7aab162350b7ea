from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from postqueue.core.categories import Category
from postqueue.services import dedup, queue_writer
from postqueue.services.sources.base import Candidate, PageCache, SourceAdapter, UpstreamFetchError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CandidateOutcome:
    candidate: Candidate
    status: str
    entry: dict[str, Any] | None = None
    error: str | None = None


@dataclass(slots=True)
class CategoryRun:
    category: str
    success: bool
    message: str
    items: list[CandidateOutcome] = field(default_factory=list)
    error: str | None = None

    def count(self, status: str) -> int:
        return sum(1 for item in self.items if item.status == status)


async def ingest_category(
    repository: Any,
    adapter: SourceAdapter,
    category: Category,
    *,
    client: httpx.AsyncClient,
    pages: PageCache | None = None,
) -> CategoryRun:
    try:
        candidates = await adapter.fetch(category, client=client, pages=pages)
    except UpstreamFetchError as exc:
        logger.warning("source fetch failed source=%s category=%s: %s", adapter.key, category.value, exc)
        return CategoryRun(
            category=category.value,
            success=False,
            message=f"Failed to fetch {adapter.key} articles",
            error=str(exc),
        )

    if not candidates:
        return CategoryRun(category=category.value, success=False, message=f"No articles found on {adapter.key}")

    items: list[CandidateOutcome] = []
    for candidate in candidates:
        decision = await dedup.check(repository, candidate)
        if not decision.is_new:
            items.append(CandidateOutcome(candidate=candidate, status="already_exists"))
            continue
        result = await queue_writer.enqueue(repository, candidate)
        items.append(
            CandidateOutcome(candidate=candidate, status=result.status, entry=result.entry, error=result.error)
        )

    run = CategoryRun(category=category.value, success=True, message="", items=items)
    inserted = run.count("inserted")
    failed = run.count("failed")
    run.success = failed == 0
    if inserted:
        run.message = f"{inserted} new entr{'y' if inserted == 1 else 'ies'} saved to postable_entries"
    elif failed:
        run.message = "Failed to save entries to postable_entries"
        run.error = next(item.error for item in items if item.status == "failed")
    else:
        run.message = "No new article found"
    return run


async def run_ingestion(
    repository: Any,
    adapter: SourceAdapter,
    categories: list[Category],
    *,
    timeout_seconds: float = 30.0,
    user_agent: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> list[CategoryRun]:
    """Run one adapter over several categories; a failing category never affects the others."""
    if client is not None:
        return await _run_categories(repository, adapter, categories, client=client)

    headers = {"User-Agent": user_agent} if user_agent else None
    async with httpx.AsyncClient(timeout=timeout_seconds, headers=headers, follow_redirects=True) as temp_client:
        return await _run_categories(repository, adapter, categories, client=temp_client)


async def _run_categories(
    repository: Any,
    adapter: SourceAdapter,
    categories: list[Category],
    *,
    client: httpx.AsyncClient,
) -> list[CategoryRun]:
    # Sources that serve several categories from one page are downloaded once per run.
    pages = PageCache()
    outcomes = await asyncio.gather(
        *(ingest_category(repository, adapter, category, client=client, pages=pages) for category in categories),
        return_exceptions=True,
    )
    runs: list[CategoryRun] = []
    for category, outcome in zip(categories, outcomes):
        if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, Exception):
            logger.error(
                "ingestion crashed source=%s category=%s",
                adapter.key,
                category.value,
                exc_info=outcome,
            )
            runs.append(
                CategoryRun(
                    category=category.value,
                    success=False,
                    message="Unexpected error while ingesting",
                    error=str(outcome),
                )
            )
            continue
        runs.append(outcome)
    return runs
