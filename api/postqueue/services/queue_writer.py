from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

from postqueue.core.categories import ALLOWED_CATEGORIES, parse_category
from postqueue.services.repository import RepositoryError
from postqueue.services.sources.base import Candidate

logger = logging.getLogger(__name__)

EnqueueStatus = Literal["inserted", "already_exists", "failed"]


class ValidationError(ValueError):
    """Raised when a candidate is missing a required field or has an unknown category."""


@dataclass(slots=True)
class EnqueueResult:
    status: EnqueueStatus
    entry: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


def validate_candidate(candidate: Candidate) -> str:
    if not isinstance(candidate.title, str) or not candidate.title.strip():
        raise ValidationError("title is required")
    category = parse_category(candidate.category)
    if category is None:
        raise ValidationError(
            f"category must be one of: {', '.join(sorted(ALLOWED_CATEGORIES))}",
        )
    return category.value


async def enqueue(repository: Any, candidate: Candidate) -> EnqueueResult:
    try:
        category = validate_candidate(candidate)
    except ValidationError as exc:
        logger.info("rejected candidate before insert: %s", exc)
        return EnqueueResult(status="failed", error=str(exc))

    try:
        outcome = await repository.insert_entry(
            title=candidate.title,
            image_url=candidate.image_url or "",
            category=category,
            link=candidate.url,
        )
    except RepositoryError as exc:
        logger.error("failed to enqueue candidate category=%s: %s", category, exc)
        return EnqueueResult(status="failed", error=str(exc))

    if outcome.inserted:
        logger.info("enqueued entry id=%s category=%s", outcome.entry["id"], category)
    else:
        logger.info("entry already exists id=%s category=%s", outcome.entry["id"], category)
    return EnqueueResult(status=outcome.status, entry=outcome.entry)
