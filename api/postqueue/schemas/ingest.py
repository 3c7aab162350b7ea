from typing import Literal

from pydantic import BaseModel, Field

from postqueue.schemas.entries import QueuedEntryOut

IngestStatus = Literal["inserted", "already_exists", "failed", "no_candidates", "fetch_failed"]


class CandidateOut(BaseModel):
    title: str
    url: str | None = None
    image_url: str | None = None
    category: str


class CandidateResultOut(BaseModel):
    status: IngestStatus
    candidate: CandidateOut
    entry: QueuedEntryOut | None = None
    error: str | None = None


class CategoryIngestOut(BaseModel):
    category: str
    success: bool
    message: str
    inserted: int = 0
    already_exists: int = 0
    failed: int = 0
    items: list[CandidateResultOut] = Field(default_factory=list)
    error: str | None = None


class IngestOut(BaseModel):
    success: bool
    source: str
    message: str
    results: list[CategoryIngestOut] = Field(default_factory=list)
