from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING, Any, Literal

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from postqueue.core.config import get_settings

if TYPE_CHECKING:
    from postqueue.services.store import InMemoryRepository


class RepositoryError(Exception):
    """Base repository error."""


class RepositoryUnavailableError(RepositoryError):
    """Raised when the database is unavailable or not configured."""


class RepositoryNotFoundError(RepositoryError):
    """Raised when the requested entity does not exist."""


class RepositoryConflictError(RepositoryError):
    """Raised when an operation violates state transition or uniqueness rules."""


class RepositoryValidationError(RepositoryError):
    """Raised when payload validation fails before persistence."""


class ClaimFunctionUnavailableError(RepositoryError):
    """Raised when the database-side claim function is not installed."""


InsertStatus = Literal["inserted", "already_exists"]


@dataclass(slots=True)
class InsertOutcome:
    status: InsertStatus
    entry: dict[str, Any]

    @property
    def inserted(self) -> bool:
        return self.status == "inserted"


ENTRY_COLUMNS = """
  id::text as id,
  title,
  image_url,
  category,
  link,
  is_posted,
  posted_at,
  remote_post_id,
  created_at
"""
UPDATABLE_ENTRY_FIELDS = ("title", "image_url", "category", "link", "is_posted")
UNIQUE_VIOLATION_SQLSTATE = "23505"
_CONNECTION_ERRORS = (OSError, asyncpg.PostgresConnectionError, asyncpg.InterfaceError)


def is_unique_violation(exc: BaseException) -> bool:
    """Whether a store error reports a duplicate key, by SQLSTATE or by message."""
    if isinstance(exc, pg_exc.UniqueViolationError):
        return True
    if getattr(exc, "sqlstate", None) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    message = str(exc).lower()
    return "duplicate" in message or "unique" in message


class PostgresRepository:
    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout: float = 15.0,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def find_article(self, *, title: str, category: str) -> dict[str, Any] | None:
        row = await self._lookup(
            """
            select id::text as id, title, category, created_at
            from articles
            where category = $1 and title = $2
            limit 1
            """,
            category,
            title,
        )
        return dict(row) if row else None

    async def find_entry(self, *, title: str, category: str) -> dict[str, Any] | None:
        row = await self._lookup(
            f"""
            select {ENTRY_COLUMNS}
            from postable_entries
            where category = $1 and title = $2
            limit 1
            """,
            category,
            title,
        )
        return self._entry_row_to_dict(row) if row else None

    async def find_entry_by_link(self, link: str) -> dict[str, Any] | None:
        row = await self._lookup(
            f"""
            select {ENTRY_COLUMNS}
            from postable_entries
            where link = $1
            order by created_at asc
            limit 1
            """,
            link,
        )
        return self._entry_row_to_dict(row) if row else None

    async def insert_entry(
        self,
        *,
        title: str,
        image_url: str,
        category: str,
        link: str | None = None,
    ) -> InsertOutcome:
        try:
            row = await self._fetchrow(
                f"""
                insert into postable_entries (title, image_url, category, link, is_posted)
                values ($1, $2, $3, $4, false)
                on conflict (title, category) do nothing
                returning {ENTRY_COLUMNS}
                """,
                title,
                image_url,
                category,
                link,
            )
        except asyncpg.PostgresError as exc:
            if not is_unique_violation(exc):
                raise RepositoryError(f"failed to insert entry: {exc}") from exc
            row = None

        if row:
            return InsertOutcome(status="inserted", entry=self._entry_row_to_dict(row))

        existing = await self.find_entry(title=title, category=category)
        if not existing:
            raise RepositoryConflictError("failed to resolve existing entry after conflict")
        return InsertOutcome(status="already_exists", entry=existing)

    async def get_entry(self, entry_id: str) -> dict[str, Any]:
        try:
            row = await self._fetchrow(
                f"select {ENTRY_COLUMNS} from postable_entries where id = $1::uuid",
                entry_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("entry not found") from exc
        if not row:
            raise RepositoryNotFoundError("entry not found")
        return self._entry_row_to_dict(row)

    async def select_oldest_unposted(self) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            select {ENTRY_COLUMNS}
            from postable_entries
            where is_posted = false
            order by created_at asc, id asc
            limit 1
            """
        )
        return self._entry_row_to_dict(row) if row else None

    async def claim_entry_with_function(self, entry_id: str) -> bool:
        try:
            claimed = await self._fetchval("select mark_postable_entry_as_posted($1::uuid)", entry_id)
        except pg_exc.UndefinedFunctionError as exc:
            raise ClaimFunctionUnavailableError("mark_postable_entry_as_posted is not installed") from exc
        except asyncpg.PostgresError as exc:
            raise RepositoryError(f"claim function failed: {exc}") from exc
        return bool(claimed)

    async def claim_entry(self, entry_id: str) -> dict[str, Any] | None:
        # Single compare-and-swap statement; None means another dispatcher won.
        try:
            row = await self._fetchrow(
                f"""
                update postable_entries
                set is_posted = true, posted_at = now()
                where id = $1::uuid and is_posted = false
                returning {ENTRY_COLUMNS}
                """,
                entry_id,
            )
        except asyncpg.PostgresError as exc:
            raise RepositoryError(f"conditional claim failed: {exc}") from exc
        return self._entry_row_to_dict(row) if row else None

    async def force_mark_posted(self, entry_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update postable_entries
            set is_posted = true, posted_at = coalesce(posted_at, now())
            where id = $1::uuid
            returning {ENTRY_COLUMNS}
            """,
            entry_id,
        )
        return self._entry_row_to_dict(row) if row else None

    async def release_claim(self, entry_id: str) -> dict[str, Any] | None:
        row = await self._fetchrow(
            f"""
            update postable_entries
            set is_posted = false, posted_at = null
            where id = $1::uuid and is_posted = true and remote_post_id is null
            returning {ENTRY_COLUMNS}
            """,
            entry_id,
        )
        return self._entry_row_to_dict(row) if row else None

    async def record_post_result(self, entry_id: str, remote_post_id: str) -> dict[str, Any]:
        row = await self._fetchrow(
            f"""
            update postable_entries
            set remote_post_id = $2
            where id = $1::uuid and is_posted = true
            returning {ENTRY_COLUMNS}
            """,
            entry_id,
            remote_post_id,
        )
        if not row:
            raise RepositoryNotFoundError("claimed entry not found")
        return self._entry_row_to_dict(row)

    async def list_entries(
        self,
        *,
        is_posted: bool | None,
        limit: int,
        offset: int,
    ) -> tuple[list[dict[str, Any]], int]:
        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    select {ENTRY_COLUMNS}
                    from postable_entries
                    where ($1::boolean is null or is_posted = $1)
                    order by created_at desc, id desc
                    limit $2 offset $3
                    """,
                    is_posted,
                    limit,
                    offset,
                )
                total = await conn.fetchval(
                    """
                    select count(*)
                    from postable_entries
                    where ($1::boolean is null or is_posted = $1)
                    """,
                    is_posted,
                )
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        return [self._entry_row_to_dict(row) for row in rows], int(total or 0)

    async def update_entry(self, *, entry_id: str, changes: dict[str, Any]) -> dict[str, Any]:
        updates = {key: value for key, value in changes.items() if key in UPDATABLE_ENTRY_FIELDS}
        if not updates:
            raise RepositoryValidationError("no updatable fields supplied")

        pool = await self._get_pool()
        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    current = await conn.fetchrow(
                        "select is_posted from postable_entries where id = $1::uuid for update",
                        entry_id,
                    )
                    if not current:
                        raise RepositoryNotFoundError("entry not found")
                    if current["is_posted"] and updates.get("is_posted") is False:
                        raise RepositoryConflictError("posted entries cannot be marked unposted")

                    assignments = [f"{column} = ${index}" for index, column in enumerate(updates, start=2)]
                    if updates.get("is_posted") is True and not current["is_posted"]:
                        assignments.append("posted_at = now()")
                    row = await conn.fetchrow(
                        f"""
                        update postable_entries
                        set {", ".join(assignments)}
                        where id = $1::uuid
                        returning {ENTRY_COLUMNS}
                        """,
                        entry_id,
                        *updates.values(),
                    )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("entry not found") from exc
        except pg_exc.UniqueViolationError as exc:
            raise RepositoryConflictError("an entry with this title and category already exists") from exc
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc
        return self._entry_row_to_dict(row)

    async def delete_entry(self, entry_id: str) -> None:
        try:
            deleted = await self._fetchval(
                "delete from postable_entries where id = $1::uuid returning id::text",
                entry_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise RepositoryNotFoundError("entry not found") from exc
        if not deleted:
            raise RepositoryNotFoundError("entry not found")

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        pool = await self._get_pool()
        try:
            return await pool.fetchrow(query, *args)
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _lookup(self, query: str, *args: Any) -> asyncpg.Record | None:
        # Read-only lookups; the articles table belongs to another system and may be missing or locked down.
        try:
            return await self._fetchrow(query, *args)
        except asyncpg.PostgresError as exc:
            raise RepositoryError(f"lookup failed: {exc}") from exc

    async def _fetchval(self, query: str, *args: Any) -> Any:
        pool = await self._get_pool()
        try:
            return await pool.fetchval(query, *args)
        except _CONNECTION_ERRORS as exc:
            raise RepositoryUnavailableError("database unavailable") from exc

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise RepositoryUnavailableError("PQ_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise RepositoryUnavailableError("database unavailable") from exc

    @staticmethod
    def _entry_row_to_dict(row: asyncpg.Record) -> dict[str, Any]:
        return {
            "id": row["id"],
            "title": row["title"],
            "image_url": row["image_url"] or "",
            "category": row["category"],
            "link": row["link"],
            "is_posted": bool(row["is_posted"]),
            "posted_at": row["posted_at"],
            "remote_post_id": row["remote_post_id"],
            "created_at": row["created_at"],
        }


@lru_cache
def get_repository() -> PostgresRepository | InMemoryRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        from postqueue.services.store import InMemoryRepository

        return InMemoryRepository()
    return PostgresRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout=settings.database_command_timeout_seconds,
    )
