from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from postqueue.services.post_client import (
    AuthError,
    ForbiddenError,
    PaymentRequiredError,
    PostResult,
    RateLimitError,
    TwitterPostClient,
    UnknownError,
)


def _post_with(handler, text: str = "hello", media_url: str | None = None, token: str | None = "user-token") -> PostResult:
    async def run() -> PostResult:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            post_client = TwitterPostClient(
                access_token=token,
                api_base_url="https://api.twitter.test",
                upload_base_url="https://upload.twitter.test",
                client=client,
            )
            return await post_client.post(text, media_url=media_url)

    return asyncio.run(run())


def test_post_returns_remote_id_and_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"data": {"id": "1890", "text": "hello"}}, request=request)

    result = _post_with(handler)

    assert result == PostResult(id="1890", text="hello")
    assert seen[0].url == "https://api.twitter.test/2/tweets"
    assert seen[0].headers["Authorization"] == "Bearer user-token"
    assert json.loads(seen[0].content) == {"text": "hello"}


def test_image_is_uploaded_and_attached() -> None:
    payloads: list[dict] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.example.in":
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"}, request=request)
        if request.url.path == "/2/media/upload":
            return httpx.Response(200, json={"data": {"id": "media-7"}}, request=request)
        payloads.append(json.loads(request.content))
        return httpx.Response(201, json={"data": {"id": "1891", "text": "hello"}}, request=request)

    _post_with(handler, media_url="https://cdn.example.in/cover.png")

    assert payloads == [{"text": "hello", "media": {"media_ids": ["media-7"]}}]


def test_failed_image_upload_posts_text_only() -> None:
    payloads: list[dict] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.example.in":
            return httpx.Response(404, request=request)
        payloads.append(json.loads(request.content))
        return httpx.Response(201, json={"data": {"id": "1892", "text": "hello"}}, request=request)

    result = _post_with(handler, media_url="https://cdn.example.in/missing.png")

    assert result.id == "1892"
    assert payloads == [{"text": "hello"}]


@pytest.mark.parametrize(
    ("remote_status", "error_type", "status_code"),
    [
        (401, AuthError, 401),
        (402, PaymentRequiredError, 402),
        (403, ForbiddenError, 403),
        (429, RateLimitError, 429),
    ],
)
def test_remote_errors_map_to_typed_errors(remote_status: int, error_type: type, status_code: int) -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            remote_status,
            json={"title": "Denied", "detail": "remote said no"},
            headers={"x-rate-limit-reset": "1767225600"},
            request=request,
        )

    with pytest.raises(error_type) as exc_info:
        _post_with(handler)

    assert exc_info.value.status_code == status_code
    assert exc_info.value.definitive is True
    assert exc_info.value.message == "remote said no"


def test_rate_limit_carries_reset_header() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={}, headers={"x-rate-limit-reset": "1767225600"}, request=request)

    with pytest.raises(RateLimitError) as exc_info:
        _post_with(handler)

    assert exc_info.value.retry_after == "1767225600"


def test_server_error_is_ambiguous() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"title": "Service Unavailable"}, request=request)

    with pytest.raises(UnknownError) as exc_info:
        _post_with(handler)

    assert exc_info.value.status_code == 503
    assert exc_info.value.definitive is False


def test_timeout_is_ambiguous() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(UnknownError) as exc_info:
        _post_with(handler)

    assert exc_info.value.status_code == 504
    assert exc_info.value.definitive is False


def test_missing_credentials_fail_before_any_request() -> None:
    async def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - must not be called
        raise AssertionError("no request expected")

    with pytest.raises(AuthError):
        _post_with(handler, token=None)
