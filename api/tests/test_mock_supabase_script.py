from __future__ import annotations

import asyncio
import importlib.util
import threading
from pathlib import Path

import pytest
from fastapi import HTTPException

from postqueue.core.security import _fetch_supabase_user, _resolve_human_role

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "mock_supabase_auth.py"


@pytest.fixture(scope="module")
def mock_supabase_url() -> str:
    spec = importlib.util.spec_from_file_location("mock_supabase_auth", SCRIPT_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    server = module.build_server("127.0.0.1", 0, anon_key="anon-key")
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}"
    server.shutdown()
    server.server_close()


def _fetch(url: str, token: str, anon_key: str = "anon-key") -> dict:
    return asyncio.run(
        _fetch_supabase_user(supabase_url=url, supabase_anon_key=anon_key, token=token, timeout_seconds=5.0)
    )


def test_mock_tokens_resolve_to_expected_roles(mock_supabase_url: str) -> None:
    assert _resolve_human_role(_fetch(mock_supabase_url, "admin-token")) == "admin"
    assert _resolve_human_role(_fetch(mock_supabase_url, "editor-token")) == "editor"
    assert _resolve_human_role(_fetch(mock_supabase_url, "user-token")) == "user"
    assert _resolve_human_role(_fetch(mock_supabase_url, "spoofed-admin-token")) == "user"


def test_unknown_token_is_rejected(mock_supabase_url: str) -> None:
    with pytest.raises(HTTPException) as exc_info:
        _fetch(mock_supabase_url, "nope")
    assert exc_info.value.status_code == 403


def test_wrong_anon_key_is_rejected(mock_supabase_url: str) -> None:
    with pytest.raises(HTTPException) as exc_info:
        _fetch(mock_supabase_url, "admin-token", anon_key="other")
    assert exc_info.value.status_code == 403
