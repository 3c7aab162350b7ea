from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from postqueue.core.categories import parse_category
from postqueue.core.config import Settings, get_settings
from postqueue.core.security import get_trigger_principal
from postqueue.schemas.entries import QueuedEntryOut
from postqueue.schemas.ingest import CandidateOut, CandidateResultOut, CategoryIngestOut, IngestOut
from postqueue.services.ingestion import CategoryRun, run_ingestion
from postqueue.services.repository import get_repository
from postqueue.services.sources.registry import SOURCE_ADAPTERS, get_source_adapter

router = APIRouter()


@router.get("/{source}", response_model=IngestOut)
async def ingest_source(
    source: str,
    category: str | None = Query(default=None, min_length=1),
    principal=Depends(get_trigger_principal),
    settings: Settings = Depends(get_settings),
    repository=Depends(get_repository),
):
    try:
        principal.require_scopes({"ingest:run"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    adapter = get_source_adapter(source)
    if adapter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"unknown source; expected one of: {', '.join(sorted(SOURCE_ADAPTERS))}",
        )

    if category is None or category == "all":
        categories = adapter.categories
    else:
        parsed = parse_category(category)
        if parsed is None or not adapter.supports(parsed):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "success": False,
                    "error": "Invalid category",
                    "allowed_categories": [item.value for item in adapter.categories],
                },
            )
        categories = [parsed]

    runs = await run_ingestion(
        repository,
        adapter,
        categories,
        timeout_seconds=settings.source_timeout_seconds,
        user_agent=settings.source_user_agent,
    )

    results = [_run_to_out(run) for run in runs]
    any_success = any(result.success for result in results)
    inserted = sum(result.inserted for result in results)
    if inserted:
        message = f"{inserted} new entr{'y' if inserted == 1 else 'ies'} saved"
    elif any_success:
        message = "No new article found"
    else:
        message = f"Failed to ingest from {adapter.key}"

    body = IngestOut(success=any_success, source=adapter.key, message=message, results=results)
    return JSONResponse(
        status_code=status.HTTP_200_OK if any_success else status.HTTP_502_BAD_GATEWAY,
        content=body.model_dump(mode="json"),
    )


def _run_to_out(run: CategoryRun) -> CategoryIngestOut:
    return CategoryIngestOut(
        category=run.category,
        success=run.success,
        message=run.message,
        inserted=run.count("inserted"),
        already_exists=run.count("already_exists"),
        failed=run.count("failed"),
        error=run.error,
        items=[
            CandidateResultOut(
                status=item.status,
                candidate=CandidateOut(**item.candidate.as_dict()),
                entry=QueuedEntryOut(**item.entry) if item.entry else None,
                error=item.error,
            )
            for item in run.items
        ],
    )
