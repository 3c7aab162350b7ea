#!/usr/bin/env python3
"""Emit SQL that grants (or revokes) a postqueue queue role to a Supabase user."""

from __future__ import annotations

import argparse

ROLES = ("user", "editor", "admin")


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _target_where(*, user_id: str | None, email: str | None) -> str:
    if user_id:
        return f"id = {_quote_sql(user_id)}::uuid"
    if not email:
        raise ValueError("either user_id or email is required")
    return f"email = {_quote_sql(email)}"


def render_sql(*, role: str, user_id: str | None = None, email: str | None = None, revoke: bool = False) -> str:
    where = _target_where(user_id=user_id, email=email)
    if revoke:
        assignment = "coalesce(raw_app_meta_data, '{}'::jsonb) - 'role' - 'roles'"
        action = "revoke queue role"
    else:
        assignment = (
            "coalesce(raw_app_meta_data, '{}'::jsonb) - 'roles' "
            f"|| jsonb_build_object('role', {_quote_sql(role)})"
        )
        action = f"grant queue role {role}"

    return f"""-- postqueue: {action}
-- Run in the Supabase SQL editor or another privileged Postgres session.
-- Only app_metadata is trusted for roles; user_metadata is ignored.

update auth.users
set raw_app_meta_data = {assignment}
where {where};

select id, email, raw_app_meta_data -> 'role' as role
from auth.users
where {where};
"""


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL to grant a postqueue role through Supabase app_metadata.")
    parser.add_argument("--role", choices=ROLES, default="admin", help="Role stored in raw_app_meta_data.role")
    identity_group = parser.add_mutually_exclusive_group(required=True)
    identity_group.add_argument("--user-id", help="Supabase auth.users id (UUID)")
    identity_group.add_argument("--email", help="Supabase auth.users email")
    parser.add_argument("--revoke", action="store_true", help="Remove any role instead of granting one")
    args = parser.parse_args()

    print(render_sql(role=args.role, user_id=args.user_id, email=args.email, revoke=args.revoke))


if __name__ == "__main__":
    main()
