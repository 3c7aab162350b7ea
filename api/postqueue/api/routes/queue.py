from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from postqueue.core.categories import Category
from postqueue.core.security import get_human_principal
from postqueue.schemas.entries import (
    DeleteOut,
    EntryCreateRequest,
    EntryEnvelope,
    EntryListOut,
    EntryUpdateRequest,
    Pagination,
    QueuedEntryOut,
)
from postqueue.services import queue_writer
from postqueue.services.repository import (
    RepositoryConflictError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
    get_repository,
)
from postqueue.services.sources.base import Candidate

router = APIRouter()


def _require(principal: Any, scope: str) -> None:
    try:
        principal.require_scopes({scope})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc


@router.get("", response_model=EntryListOut)
async def list_entries(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    is_posted: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> EntryListOut:
    _require(principal, "queue:read")

    try:
        rows, total = await repository.list_entries(is_posted=is_posted, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return EntryListOut(
        data=[QueuedEntryOut(**row) for row in rows],
        pagination=Pagination(total=total, limit=limit, offset=offset, has_more=offset + limit < total),
    )


@router.post("", response_model=EntryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_entry(
    payload: EntryCreateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> EntryEnvelope:
    _require(principal, "queue:write")

    title = payload.title.strip()
    image_url = payload.image_url.strip()
    category = payload.category.strip()
    if not title or not image_url or not category:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="title, image_url, and category are required",
        )

    candidate = Candidate(
        title=title,
        url=(payload.link or "").strip() or None,
        image_url=image_url,
        category=category,
    )
    try:
        queue_writer.validate_candidate(candidate)
    except queue_writer.ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    result = await queue_writer.enqueue(repository, candidate)
    if result.status == "failed":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.error)
    if result.status == "already_exists":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="an entry with this title and category already exists",
        )

    return EntryEnvelope(success=True, message="Entry created successfully", data=QueuedEntryOut(**result.entry))


@router.put("", response_model=EntryEnvelope)
async def update_entry(
    payload: EntryUpdateRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> EntryEnvelope:
    _require(principal, "queue:write")

    if not payload.id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="entry id is required")

    changes: dict[str, Any] = {}
    for field, value in payload.model_dump(exclude_unset=True, exclude={"id"}).items():
        if isinstance(value, Category):
            value = value.value
        elif isinstance(value, str):
            value = value.strip()
        if field == "link":
            changes[field] = value or None
        elif value is not None:
            changes[field] = value
    if "title" in changes and not changes["title"]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="title must not be empty")

    try:
        row = await repository.update_entry(entry_id=payload.id.strip(), changes=changes)
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return EntryEnvelope(success=True, message="Entry updated successfully", data=QueuedEntryOut(**row))


@router.delete("", response_model=DeleteOut)
async def delete_entry(
    entry_id: str | None = Query(default=None, alias="id"),
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> DeleteOut:
    _require(principal, "queue:write")

    if not entry_id or not entry_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="entry id is required")

    try:
        await repository.delete_entry(entry_id.strip())
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return DeleteOut(message="Entry deleted successfully")
