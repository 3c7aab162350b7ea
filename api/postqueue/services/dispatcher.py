from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastapi import Depends

from postqueue.core.config import Settings, get_settings
from postqueue.services.post_client import (
    ExternalPostError,
    PostCompositionError,
    PostResult,
    TwitterPostClient,
    compose_post_text,
)
from postqueue.services.repository import (
    ClaimFunctionUnavailableError,
    RepositoryError,
    RepositoryUnavailableError,
    get_repository,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    entry: dict[str, Any] | None
    claimed: bool = False
    post: PostResult | None = None
    error: ExternalPostError | PostCompositionError | None = None
    released: bool = False


class Dispatcher:
    """Hands the oldest unposted entry to exactly one caller.

    ``is_posted`` is used as a compare-and-swap register: a claim is a single
    conditional update, and a caller that loses the race never posts.
    Claim mechanisms degrade in order: the database function, the
    conditional update, and (only when explicitly enabled) an unconditional
    update that no longer guarantees at-most-once delivery.
    """

    def __init__(
        self,
        repository: Any,
        *,
        max_attempts: int = 3,
        use_db_function: bool = True,
        allow_unconditional_fallback: bool = False,
        release_on_rejection: bool = False,
    ) -> None:
        self.repository = repository
        self.max_attempts = max(1, max_attempts)
        self.use_db_function = use_db_function
        self.allow_unconditional_fallback = allow_unconditional_fallback
        self.release_on_rejection = release_on_rejection

    async def peek_next(self) -> dict[str, Any] | None:
        return await self.repository.select_oldest_unposted()

    async def claim_next(self) -> dict[str, Any] | None:
        for attempt in range(1, self.max_attempts + 1):
            entry = await self.repository.select_oldest_unposted()
            if entry is None:
                return None
            claimed = await self._claim(entry["id"])
            if claimed is not None:
                logger.info("claimed entry id=%s category=%s", claimed["id"], claimed["category"])
                return claimed
            logger.info("claim race lost for id=%s attempt=%s", entry["id"], attempt)
        return None

    async def dispatch_next(
        self,
        post_client: TwitterPostClient,
        *,
        hashtags: str | list[str] | None = None,
    ) -> DispatchResult:
        entry = await self.claim_next()
        if entry is None:
            return DispatchResult(entry=None)

        try:
            text = compose_post_text(entry["title"], entry.get("link"), hashtags)
            result = await post_client.post(text, media_url=entry.get("image_url") or None)
        except (ExternalPostError, PostCompositionError) as exc:
            return await self._handle_post_failure(entry, exc)

        try:
            entry = await self.repository.record_post_result(entry["id"], result.id)
        except RepositoryError as exc:
            # The post exists remotely; the claim alone keeps it from going out twice.
            logger.error("posted entry id=%s as remote id=%s but failed to record it: %s", entry["id"], result.id, exc)
        return DispatchResult(entry=entry, claimed=True, post=result)

    async def _claim(self, entry_id: str) -> dict[str, Any] | None:
        if self.use_db_function:
            try:
                claimed = await self.repository.claim_entry_with_function(entry_id)
            except RepositoryUnavailableError:
                raise
            except ClaimFunctionUnavailableError:
                logger.info("claim function not installed; using conditional update")
            except RepositoryError as exc:
                logger.warning("claim function failed for id=%s: %s; using conditional update", entry_id, exc)
            else:
                if not claimed:
                    return None
                return await self.repository.get_entry(entry_id)

        try:
            return await self.repository.claim_entry(entry_id)
        except RepositoryUnavailableError:
            raise
        except RepositoryError as exc:
            if not self.allow_unconditional_fallback:
                raise
            logger.warning(
                "conditional claim failed for id=%s: %s; falling back to unconditional update "
                "without the at-most-once guarantee",
                entry_id,
                exc,
            )
            return await self.repository.force_mark_posted(entry_id)

    async def _handle_post_failure(
        self,
        entry: dict[str, Any],
        exc: ExternalPostError | PostCompositionError,
    ) -> DispatchResult:
        definitive = isinstance(exc, PostCompositionError) or exc.definitive
        if self.release_on_rejection and definitive:
            released = await self.repository.release_claim(entry["id"])
            if released is not None:
                logger.warning("post rejected for id=%s; claim released for retry: %s", entry["id"], exc)
                return DispatchResult(entry=released, claimed=True, error=exc, released=True)

        logger.error("post failed for claimed entry id=%s; claim kept: %s", entry["id"], exc)
        return DispatchResult(entry=entry, claimed=True, error=exc)


def get_dispatcher(
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
) -> Dispatcher:
    return Dispatcher(
        repository,
        max_attempts=settings.claim_max_attempts,
        use_db_function=settings.claim_use_db_function,
        allow_unconditional_fallback=settings.allow_unconditional_claim_fallback,
        release_on_rejection=settings.release_claim_on_post_rejection,
    )
