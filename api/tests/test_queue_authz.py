from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

import postqueue.core.security as security
from postqueue.core.config import get_settings
from postqueue.main import app
from postqueue.services.repository import get_repository
from postqueue.services.store import InMemoryRepository

AUTH_HEADERS = {"Authorization": "Bearer token"}
ADMIN_USER = {"id": "admin-1", "app_metadata": {"role": "admin"}}


@pytest.fixture
def repository() -> InMemoryRepository:
    repo = InMemoryRepository()
    base = datetime(2025, 3, 1, tzinfo=timezone.utc)
    for offset, title in enumerate(("oldest", "middle", "newest")):
        asyncio.run(
            repo.insert_entry(
                title=title,
                image_url="https://example.in/a.jpg",
                category="news",
                created_at=base + timedelta(hours=offset),
            )
        )
    return repo


@pytest.fixture
def admin_client(repository: InMemoryRepository) -> TestClient:
    os.environ["PQ_SUPABASE_URL"] = "https://example.supabase.co"
    os.environ["PQ_SUPABASE_ANON_KEY"] = "anon-key"
    get_settings.cache_clear()
    app.dependency_overrides[get_repository] = lambda: repository

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    os.environ.pop("PQ_SUPABASE_URL", None)
    os.environ.pop("PQ_SUPABASE_ANON_KEY", None)
    get_settings.cache_clear()


def _mock_supabase_user(monkeypatch: pytest.MonkeyPatch, user: dict[str, Any]) -> None:
    async def _fake_fetch(**_: Any) -> dict[str, Any]:
        return user

    monkeypatch.setattr(security, "_fetch_supabase_user", _fake_fetch)


def _entry_id(repository: InMemoryRepository, title: str) -> str:
    return next(entry["id"] for entry in repository.entries.values() if entry["title"] == title)


def test_queue_without_bearer_token_is_forbidden(admin_client: TestClient) -> None:
    listed = admin_client.get("/queue")
    created = admin_client.post("/queue", json={"title": "t", "image_url": "i", "category": "news"})
    updated = admin_client.put("/queue", json={"id": "x", "title": "t"})
    deleted = admin_client.delete("/queue", params={"id": "x"})

    for response in (listed, created, updated, deleted):
        assert response.status_code == 403
        assert response.json() == {"success": False, "error": "admin auth requires bearer token"}


def test_queue_with_empty_or_invalid_bearer_token_is_forbidden(
    admin_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def _reject(**_: Any) -> dict[str, Any]:
        raise HTTPException(status_code=403, detail="invalid bearer token")

    monkeypatch.setattr(security, "_fetch_supabase_user", _reject)

    empty = admin_client.get("/queue", headers={"Authorization": "Bearer   "})
    basic = admin_client.get("/queue", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    invalid = admin_client.post(
        "/queue",
        json={"title": "t", "image_url": "i", "category": "news"},
        headers={"Authorization": "Bearer expired"},
    )

    assert empty.status_code == 403
    assert basic.status_code == 403
    assert invalid.status_code == 403
    assert invalid.json() == {"success": False, "error": "invalid bearer token"}


def test_supabase_user_without_id_is_forbidden(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"app_metadata": {"role": "admin"}})

    response = admin_client.get("/queue", headers=AUTH_HEADERS)
    assert response.status_code == 403


def test_queue_list_denies_plain_user(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-1", "app_metadata": {"role": "user"}})

    response = admin_client.get("/queue", headers=AUTH_HEADERS)
    assert response.status_code == 403


def test_user_metadata_cannot_grant_admin(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "user-1", "user_metadata": {"role": "admin"}})

    response = admin_client.post(
        "/queue",
        json={"title": "t", "image_url": "i", "category": "news"},
        headers=AUTH_HEADERS,
    )
    assert response.status_code == 403


def test_editor_can_read_but_not_write(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, {"id": "editor-1", "app_metadata": {"roles": ["user", "editor"]}})

    assert admin_client.get("/queue", headers=AUTH_HEADERS).status_code == 200
    response = admin_client.delete("/queue", params={"id": "anything"}, headers=AUTH_HEADERS)
    assert response.status_code == 403


def test_list_is_newest_first_with_pagination(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)

    response = admin_client.get("/queue", params={"limit": 2, "offset": 0}, headers=AUTH_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert [entry["title"] for entry in body["data"]] == ["newest", "middle"]
    assert body["pagination"] == {"total": 3, "limit": 2, "offset": 0, "has_more": True}


def test_create_trims_fields_and_rejects_duplicates(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)
    payload = {"title": "  Monsoon session  ", "image_url": " https://example.in/m.jpg ", "category": "news"}

    created = admin_client.post("/queue", json=payload, headers=AUTH_HEADERS)
    duplicate = admin_client.post("/queue", json=payload, headers=AUTH_HEADERS)

    assert created.status_code == 201
    data = created.json()["data"]
    assert data["title"] == "Monsoon session"
    assert data["image_url"] == "https://example.in/m.jpg"
    assert data["is_posted"] is False
    assert duplicate.status_code == 409
    assert duplicate.json()["success"] is False


def test_create_validates_fields(admin_client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)

    blank = admin_client.post(
        "/queue",
        json={"title": " ", "image_url": "https://example.in/a.jpg", "category": "news"},
        headers=AUTH_HEADERS,
    )
    unknown_category = admin_client.post(
        "/queue",
        json={"title": "t", "image_url": "https://example.in/a.jpg", "category": "weather"},
        headers=AUTH_HEADERS,
    )

    assert blank.status_code == 400
    assert unknown_category.status_code == 422
    assert "category must be one of" in unknown_category.json()["error"]


def test_update_marks_posted_but_never_unposts(
    admin_client: TestClient,
    repository: InMemoryRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)
    entry_id = _entry_id(repository, "oldest")

    posted = admin_client.put("/queue", json={"id": entry_id, "is_posted": True}, headers=AUTH_HEADERS)
    reverted = admin_client.put("/queue", json={"id": entry_id, "is_posted": False}, headers=AUTH_HEADERS)

    assert posted.status_code == 200
    assert posted.json()["data"]["is_posted"] is True
    assert posted.json()["data"]["posted_at"] is not None
    assert reverted.status_code == 409
    assert repository.entries[entry_id]["is_posted"] is True


def test_update_edits_title_and_reports_missing_entry(
    admin_client: TestClient,
    repository: InMemoryRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)
    entry_id = _entry_id(repository, "middle")

    renamed = admin_client.put("/queue", json={"id": entry_id, "title": " renamed "}, headers=AUTH_HEADERS)
    clash = admin_client.put("/queue", json={"id": entry_id, "title": "newest"}, headers=AUTH_HEADERS)
    missing = admin_client.put("/queue", json={"id": "missing", "title": "x"}, headers=AUTH_HEADERS)

    assert renamed.status_code == 200
    assert renamed.json()["data"]["title"] == "renamed"
    assert clash.status_code == 409
    assert missing.status_code == 404


def test_delete_removes_entry(
    admin_client: TestClient,
    repository: InMemoryRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _mock_supabase_user(monkeypatch, ADMIN_USER)
    entry_id = _entry_id(repository, "newest")

    deleted = admin_client.delete("/queue", params={"id": entry_id}, headers=AUTH_HEADERS)
    again = admin_client.delete("/queue", params={"id": entry_id}, headers=AUTH_HEADERS)
    no_id = admin_client.delete("/queue", headers=AUTH_HEADERS)

    assert deleted.status_code == 200
    assert deleted.json() == {"success": True, "message": "Entry deleted successfully"}
    assert again.status_code == 404
    assert no_id.status_code == 400
    assert entry_id not in repository.entries
