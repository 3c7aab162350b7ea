from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from postqueue.core.security import get_trigger_principal
from postqueue.schemas.posts import PostEnvelope, PostOut, PostRequest
from postqueue.services.post_client import (
    ExternalPostError,
    PostCompositionError,
    RateLimitError,
    compose_post_text,
    get_post_client,
)

router = APIRouter()


@router.post("", response_model=PostEnvelope)
async def create_post(
    payload: PostRequest,
    principal=Depends(get_trigger_principal),
    post_client=Depends(get_post_client),
):
    try:
        principal.require_scopes({"post:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        text = compose_post_text(payload.title, payload.link, payload.hashtags)
    except PostCompositionError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    try:
        result = await post_client.post(text, media_url=(payload.image_url or "").strip() or None)
    except ExternalPostError as exc:
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    return PostEnvelope(message="Tweet posted successfully", data=PostOut(tweet_id=result.id, text=result.text))


def _error_body(exc: ExternalPostError) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": exc.message}
    if exc.details:
        body["details"] = exc.details
    if isinstance(exc, RateLimitError) and exc.retry_after:
        body["retry_after"] = exc.retry_after
    return body
