from datetime import datetime

from pydantic import BaseModel, Field

from postqueue.core.categories import Category


class QueuedEntryOut(BaseModel):
    id: str
    title: str
    image_url: str = ""
    category: str
    link: str | None = None
    is_posted: bool
    posted_at: datetime | None = None
    remote_post_id: str | None = None
    created_at: datetime


class EntryCreateRequest(BaseModel):
    title: str
    image_url: str
    category: str
    link: str | None = None


class EntryUpdateRequest(BaseModel):
    id: str
    title: str | None = None
    image_url: str | None = None
    category: Category | None = None
    link: str | None = None
    is_posted: bool | None = None


class EntryEnvelope(BaseModel):
    success: bool
    message: str
    data: QueuedEntryOut | None = None


class Pagination(BaseModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class EntryListOut(BaseModel):
    success: bool = True
    data: list[QueuedEntryOut] = Field(default_factory=list)
    pagination: Pagination


class DeleteOut(BaseModel):
    success: bool = True
    message: str
