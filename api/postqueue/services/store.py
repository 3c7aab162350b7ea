from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from postqueue.services.repository import (
    UPDATABLE_ENTRY_FIELDS,
    InsertOutcome,
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryValidationError,
)


class InMemoryRepository:
    """Process-local store for development and tests.

    Every method yields to the event loop before touching state, the way a
    database round trip would, so concurrent callers interleave between the
    select and the claim just as separate processes do against Postgres.
    Each individual mutation runs without a suspension point and therefore
    behaves like a single atomic statement.
    """

    def __init__(self, articles: list[dict[str, Any]] | None = None) -> None:
        self.entries: dict[str, dict[str, Any]] = {}
        self.articles: list[dict[str, Any]] = []
        self._sequence = itertools.count()
        self._order: dict[str, int] = {}
        for article in articles or []:
            self.add_article(title=article["title"], category=article["category"])

    async def close(self) -> None:
        return None

    def add_article(self, *, title: str, category: str) -> dict[str, Any]:
        article = {
            "id": str(uuid4()),
            "title": title,
            "category": category,
            "created_at": datetime.now(timezone.utc),
        }
        self.articles.append(article)
        return article

    async def find_article(self, *, title: str, category: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        for article in self.articles:
            if article["title"] == title and article["category"] == category:
                return dict(article)
        return None

    async def find_entry(self, *, title: str, category: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entry = self._find_entry(title=title, category=category)
        return dict(entry) if entry else None

    async def find_entry_by_link(self, link: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        matches = [entry for entry in self.entries.values() if entry["link"] == link]
        if not matches:
            return None
        return dict(min(matches, key=lambda entry: (entry["created_at"], self._order[entry["id"]])))

    async def insert_entry(
        self,
        *,
        title: str,
        image_url: str,
        category: str,
        link: str | None = None,
        created_at: datetime | None = None,
    ) -> InsertOutcome:
        await asyncio.sleep(0)
        existing = self._find_entry(title=title, category=category)
        if existing:
            return InsertOutcome(status="already_exists", entry=dict(existing))

        entry_id = str(uuid4())
        entry = {
            "id": entry_id,
            "title": title,
            "image_url": image_url or "",
            "category": category,
            "link": link,
            "is_posted": False,
            "posted_at": None,
            "remote_post_id": None,
            "created_at": created_at or datetime.now(timezone.utc),
        }
        self.entries[entry_id] = entry
        self._order[entry_id] = next(self._sequence)
        return InsertOutcome(status="inserted", entry=dict(entry))

    async def get_entry(self, entry_id: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry:
            raise RepositoryNotFoundError("entry not found")
        return dict(entry)

    async def select_oldest_unposted(self) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        unposted = [entry for entry in self.entries.values() if not entry["is_posted"]]
        if not unposted:
            return None
        oldest = min(unposted, key=lambda entry: (entry["created_at"], self._order[entry["id"]]))
        return dict(oldest)

    async def claim_entry_with_function(self, entry_id: str) -> bool:
        return await self.claim_entry(entry_id) is not None

    async def claim_entry(self, entry_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry or entry["is_posted"]:
            return None
        entry["is_posted"] = True
        entry["posted_at"] = datetime.now(timezone.utc)
        return dict(entry)

    async def force_mark_posted(self, entry_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry:
            return None
        entry["is_posted"] = True
        entry["posted_at"] = entry["posted_at"] or datetime.now(timezone.utc)
        return dict(entry)

    async def release_claim(self, entry_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry or not entry["is_posted"] or entry["remote_post_id"] is not None:
            return None
        entry["is_posted"] = False
        entry["posted_at"] = None
        return dict(entry)

    async def record_post_result(self, entry_id: str, remote_post_id: str) -> dict[str, Any]:
        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry or not entry["is_posted"]:
            raise RepositoryNotFoundError("claimed entry not found")
        entry["remote_post_id"] = remote_post_id
        return dict(entry)

    async def list_entries(
        self,
        *,
        is_posted: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        await asyncio.sleep(0)
        rows = [
            entry
            for entry in self.entries.values()
            if is_posted is None or entry["is_posted"] == is_posted
        ]
        rows.sort(key=lambda entry: (entry["created_at"], self._order[entry["id"]]), reverse=True)
        return [dict(row) for row in rows[offset : offset + limit]], len(rows)

    async def update_entry(self, *, entry_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        updates = {key: value for key, value in changes.items() if key in UPDATABLE_ENTRY_FIELDS}
        if not updates:
            raise RepositoryValidationError("no updatable fields supplied")

        await asyncio.sleep(0)
        entry = self.entries.get(entry_id)
        if not entry:
            raise RepositoryNotFoundError("entry not found")
        if entry["is_posted"] and updates.get("is_posted") is False:
            raise RepositoryConflictError("posted entries cannot be marked unposted")

        title = updates.get("title", entry["title"])
        category = updates.get("category", entry["category"])
        clash = self._find_entry(title=title, category=category)
        if clash and clash["id"] != entry_id:
            raise RepositoryConflictError("an entry with this title and category already exists")

        if updates.get("is_posted") is True and not entry["is_posted"]:
            entry["posted_at"] = datetime.now(timezone.utc)
        entry.update(updates)
        return dict(entry)

    async def delete_entry(self, entry_id: str) -> None:
        await asyncio.sleep(0)
        if self.entries.pop(entry_id, None) is None:
            raise RepositoryNotFoundError("entry not found")
        self._order.pop(entry_id, None)

    def _find_entry(self, *, title: str, category: str) -> dict[str, Any] | None:
        for entry in self.entries.values():
            if entry["title"] == title and entry["category"] == category:
                return entry
        return None
