from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx
from fastapi import Depends

from postqueue.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

TWEET_MAX_LENGTH = 280
LINK_PLACEHOLDER_WIDTH = 23
ELLIPSIS = "..."
PART_SEPARATOR = "\n\n"
_URL_RE = re.compile(r"https?://\S+")
_HASHTAG_SPLIT_RE = re.compile(r"[\s,]+")


class ExternalPostError(Exception):
    """Base error for a failed remote post.

    ``definitive`` is true when the remote side rejected the request, so no
    post was created; false when the outcome is unknown.
    """

    status_code = 502
    definitive = True

    def __init__(self, message: str, *, remote_status: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.remote_status = remote_status
        self.details = details


class AuthError(ExternalPostError):
    status_code = 401


class PaymentRequiredError(ExternalPostError):
    status_code = 402


class ForbiddenError(ExternalPostError):
    status_code = 403


class RateLimitError(ExternalPostError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class UnknownError(ExternalPostError):
    def __init__(self, message: str, *, status_code: int = 502, definitive: bool = False, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.definitive = definitive


class PostCompositionError(ValueError):
    """Raised when the post text cannot fit the platform limit."""


@dataclass(slots=True)
class PostResult:
    id: str
    text: str


def normalize_hashtags(raw: str | list[str] | None) -> list[str]:
    if not raw:
        return []
    chunks = raw if isinstance(raw, list) else [raw]
    tags: list[str] = []
    for chunk in chunks:
        for token in _HASHTAG_SPLIT_RE.split(str(chunk)):
            token = token.strip().lstrip("#")
            if not token:
                continue
            tag = f"#{token}"
            if tag not in tags:
                tags.append(tag)
    return tags


def weighted_length(text: str) -> int:
    """Length as the platform counts it: every link costs a fixed width."""
    return len(_URL_RE.sub("x" * LINK_PLACEHOLDER_WIDTH, text))


def compose_post_text(
    title: str,
    link: str | None = None,
    hashtags: str | list[str] | None = None,
) -> str:
    title = (title or "").strip()
    if not title:
        raise PostCompositionError("title is required")
    link = (link or "").strip() or None
    tags = " ".join(normalize_hashtags(hashtags))

    reserved = 0
    if link:
        reserved += len(PART_SEPARATOR) + LINK_PLACEHOLDER_WIDTH
    if tags:
        reserved += len(PART_SEPARATOR) + len(tags)

    if len(title) + reserved > TWEET_MAX_LENGTH:
        available = TWEET_MAX_LENGTH - reserved - len(ELLIPSIS)
        if available < 1:
            raise PostCompositionError("link and hashtags leave no room for the title")
        title = title[:available].rstrip() + ELLIPSIS

    return PART_SEPARATOR.join(part for part in (title, link, tags) if part)


class TwitterPostClient:
    def __init__(
        self,
        *,
        access_token: str | None,
        api_base_url: str = "https://api.twitter.com",
        upload_base_url: str = "https://api.x.com",
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.access_token = access_token
        self.api_base_url = api_base_url.rstrip("/")
        self.upload_base_url = upload_base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._client = client

    async def post(self, text: str, media_url: str | None = None) -> PostResult:
        if not self.access_token:
            raise AuthError("Twitter API credentials are not configured")

        if self._client is not None:
            return await self._post(self._client, text, media_url)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await self._post(client, text, media_url)

    async def _post(self, client: httpx.AsyncClient, text: str, media_url: str | None) -> PostResult:
        payload: dict[str, Any] = {"text": text}
        if media_url:
            try:
                media_id = await self._upload_media(client, media_url)
            except (ExternalPostError, httpx.HTTPError) as exc:
                logger.warning("media upload failed for %s; posting text only: %s", media_url, exc)
            else:
                payload["media"] = {"media_ids": [media_id]}

        try:
            response = await client.post(
                f"{self.api_base_url}/2/tweets",
                json=payload,
                headers=self._auth_headers(),
            )
        except httpx.TimeoutException as exc:
            raise UnknownError("timed out waiting for the post to be accepted", status_code=504) from exc
        except httpx.HTTPError as exc:
            raise UnknownError(f"post request failed: {exc.__class__.__name__}") from exc

        if response.status_code not in {200, 201}:
            raise _error_for_response(response)

        data = _json_body(response).get("data")
        post_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(post_id, str) or not post_id:
            raise UnknownError("post response did not include an id", status_code=502, details=_json_body(response))
        logger.info("posted remote id=%s", post_id)
        return PostResult(id=post_id, text=data.get("text") or text)

    async def _upload_media(self, client: httpx.AsyncClient, media_url: str) -> str:
        download = await client.get(media_url, follow_redirects=True)
        if download.status_code != 200 or not download.content:
            raise UnknownError(f"image download failed with status {download.status_code}", definitive=True)

        content_type = download.headers.get("content-type", "image/jpeg").split(";")[0].strip()
        filename = urlparse(media_url).path.rsplit("/", maxsplit=1)[-1] or "image"
        response = await client.post(
            f"{self.upload_base_url}/2/media/upload",
            files={"media": (filename, download.content, content_type)},
            data={"media_category": "tweet_image"},
            headers=self._auth_headers(),
        )
        if response.status_code not in {200, 201}:
            raise _error_for_response(response)

        body = _json_body(response)
        data = body.get("data") if isinstance(body.get("data"), dict) else body
        media_id = data.get("id") or data.get("media_id_string")
        if not media_id:
            raise UnknownError("media upload response did not include an id", definitive=True)
        return str(media_id)

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _error_for_response(response: httpx.Response) -> ExternalPostError:
    body = _json_body(response)
    detail = body.get("detail") or body.get("title")
    status_code = response.status_code

    if status_code == 401:
        return AuthError(detail or "Twitter API authentication failed", remote_status=status_code, details=body)
    if status_code == 402:
        return PaymentRequiredError(
            detail or "Twitter API requires a paid access tier for this request",
            remote_status=status_code,
            details=body,
        )
    if status_code == 403:
        return ForbiddenError(detail or "Twitter API access forbidden", remote_status=status_code, details=body)
    if status_code == 429:
        return RateLimitError(
            detail or "Twitter API rate limit exceeded",
            retry_after=response.headers.get("x-rate-limit-reset"),
            remote_status=status_code,
            details=body,
        )
    mirrored = status_code if 400 <= status_code < 600 else 502
    return UnknownError(
        detail or f"Twitter API returned status {status_code}",
        status_code=mirrored,
        definitive=400 <= status_code < 500,
        remote_status=status_code,
        details=body,
    )


def get_post_client(settings: Settings = Depends(get_settings)) -> TwitterPostClient:
    return TwitterPostClient(
        access_token=settings.twitter_user_access_token,
        api_base_url=settings.twitter_api_base_url,
        upload_base_url=settings.twitter_upload_base_url,
        timeout_seconds=settings.post_timeout_seconds,
    )
