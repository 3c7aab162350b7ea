from __future__ import annotations

from typing import Any

import httpx

# Ingest answers 502 when every requested category failed; the body still describes each run.
INGEST_REPORT_STATUSES = {200, 502}


class TriggerClient:
    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = {"X-API-Key": api_key} if api_key else {}
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def ingest(self, source: str, category: str = "all") -> dict[str, Any]:
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}/ingest/{source}",
                params={"category": category},
                headers=self.headers,
            )
            if response.status_code not in INGEST_REPORT_STATUSES:
                response.raise_for_status()
            return response.json()

    async def dispatch_next(self, *, publish: bool = True, hashtags: str | None = None) -> dict[str, Any]:
        params: dict[str, Any] = {"mark_as_posted": "true", "publish": "true" if publish else "false"}
        if hashtags:
            params["hashtags"] = hashtags
        async with self._client() as client:
            response = await client.get(f"{self.base_url}/dispatch/next", params=params, headers=self.headers)
            if response.status_code != 200 and not _is_post_rejection(response):
                response.raise_for_status()
            return response.json()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)


def _is_post_rejection(response: httpx.Response) -> bool:
    # A rejected post answers with the posting API's status but still reports the claimed entry.
    try:
        body = response.json()
    except ValueError:
        return False
    return isinstance(body, dict) and bool(body.get("post_error"))
