#!/usr/bin/env python3
"""Local stand-in for Supabase's ``GET /auth/v1/user`` so the admin endpoints can run offline."""

from __future__ import annotations

import argparse
import json
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

MOCK_USERS: dict[str, dict[str, object]] = {
    "admin-token": {"id": "11111111-1111-1111-1111-111111111111", "app_metadata": {"role": "admin"}},
    "editor-token": {"id": "22222222-2222-2222-2222-222222222222", "app_metadata": {"roles": ["editor"]}},
    "user-token": {"id": "33333333-3333-3333-3333-333333333333", "app_metadata": {}},
    # Claims admin only through user-editable metadata; must stay a plain user.
    "spoofed-admin-token": {"id": "44444444-4444-4444-4444-444444444444", "user_metadata": {"role": "admin"}},
}


class MockSupabaseHandler(BaseHTTPRequestHandler):
    server_version = "MockSupabase/1.0"
    anon_key: str | None = None

    def do_GET(self) -> None:  # noqa: N802 - stdlib handler signature
        path = urlsplit(self.path).path
        if path == "/healthz":
            self._write_json(HTTPStatus.OK, {"status": "ok"})
            return
        if path != "/auth/v1/user":
            self._write_json(HTTPStatus.NOT_FOUND, {"msg": "not found"})
            return
        if self.anon_key and self.headers.get("apikey") != self.anon_key:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"msg": "invalid apikey"})
            return

        scheme, _, token = self.headers.get("Authorization", "").partition(" ")
        user = MOCK_USERS.get(token.strip()) if scheme.lower() == "bearer" else None
        if user is None:
            self._write_json(HTTPStatus.UNAUTHORIZED, {"msg": "invalid JWT"})
            return
        self._write_json(HTTPStatus.OK, {"aud": "authenticated", **user})

    def log_message(self, _: str, *args: object) -> None:
        if args:
            print("mock-supabase:", *args)

    def _write_json(self, status: HTTPStatus, payload: dict[str, object]) -> None:
        raw = json.dumps(payload).encode("utf-8")
        self.send_response(status.value)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(raw)))
        self.end_headers()
        self.wfile.write(raw)


def build_server(host: str, port: int, anon_key: str | None = None) -> ThreadingHTTPServer:
    handler = type("ConfiguredMockSupabaseHandler", (MockSupabaseHandler,), {"anon_key": anon_key})
    return ThreadingHTTPServer((host, port), handler)


def main() -> None:
    parser = argparse.ArgumentParser(description="Mock Supabase auth /auth/v1/user endpoint.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=54321)
    parser.add_argument("--anon-key", default=None, help="Require this apikey header when set")
    args = parser.parse_args()

    server = build_server(args.host, args.port, args.anon_key)
    print(f"mock-supabase listening on http://{args.host}:{args.port}", flush=True)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()


if __name__ == "__main__":
    main()
