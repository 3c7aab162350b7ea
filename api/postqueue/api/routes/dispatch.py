from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from postqueue.core.security import get_trigger_principal
from postqueue.schemas.entries import QueuedEntryOut
from postqueue.schemas.posts import DispatchOut, PostOut
from postqueue.services.dispatcher import Dispatcher, get_dispatcher
from postqueue.services.post_client import ExternalPostError, get_post_client
from postqueue.services.repository import RepositoryError, RepositoryUnavailableError

router = APIRouter()

NO_ENTRIES_MESSAGE = "No unposted entries available"


@router.get("/next", response_model=DispatchOut)
async def dispatch_next(
    mark_as_posted: bool = Query(default=True),
    publish: bool = Query(default=False),
    hashtags: str | None = Query(default=None),
    principal=Depends(get_trigger_principal),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    post_client=Depends(get_post_client),
):
    try:
        principal.require_scopes({"dispatch:run"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if publish and not mark_as_posted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="publish requires mark_as_posted; an unclaimed entry must never be posted",
        )

    try:
        if not mark_as_posted:
            entry = await dispatcher.peek_next()
            if entry is None:
                return DispatchOut(success=False, message=NO_ENTRIES_MESSAGE)
            return DispatchOut(success=True, message="Entry fetched successfully", data=QueuedEntryOut(**entry))

        if not publish:
            entry = await dispatcher.claim_next()
            if entry is None:
                return DispatchOut(success=False, message=NO_ENTRIES_MESSAGE)
            return DispatchOut(
                success=True,
                message="Entry fetched and marked as posted",
                data=QueuedEntryOut(**entry),
                claimed=True,
            )

        result = await dispatcher.dispatch_next(post_client, hashtags=hashtags)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    if result.entry is None:
        return DispatchOut(success=False, message=NO_ENTRIES_MESSAGE)

    data = QueuedEntryOut(**result.entry)
    if result.error is None and result.post is not None:
        return DispatchOut(
            success=True,
            message="Entry claimed and posted",
            data=data,
            claimed=True,
            post=PostOut(tweet_id=result.post.id, text=result.post.text),
        )

    error = result.error
    status_code = error.status_code if isinstance(error, ExternalPostError) else status.HTTP_422_UNPROCESSABLE_CONTENT
    message = "Post failed; claim released for retry" if result.released else "Entry claimed but post failed"
    body = DispatchOut(
        success=False,
        message=message,
        data=data,
        claimed=not result.released,
        post_error=str(error),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
