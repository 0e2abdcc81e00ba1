#!/usr/bin/env python3
"""
CommitStreams -- operator CLI.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py create-admin --username admin@example.com --password '...'
  python main.py purge-sessions

Configuration comes from the environment (.env supported); see core/config.py.
SECRET_KEY is required unless DEBUG=true.
"""

import argparse
import getpass
import sys
from typing import Optional

import uvicorn
from sqlalchemy.exc import IntegrityError

from auth.credentials import PASSWORD_MAX_BYTES, hash_password
from auth.models import User
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.logs import configure_logging


def _serve(args: argparse.Namespace) -> int:
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _create_admin(args: argparse.Namespace) -> int:
    """Create an admin account, or promote an existing local account.

    The password is read from --password or prompted for; it must be 8..72
    bytes, the same rule POST /api/register applies.
    """
    password: Optional[str] = args.password or getpass.getpass("Password: ")
    size = len(password.encode("utf-8"))
    if size < 8 or size > PASSWORD_MAX_BYTES:
        print(f"  [!] Password must be 8 to {PASSWORD_MAX_BYTES} bytes.", file=sys.stderr)
        return 2

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        existing = store.get_by_username(args.username)
        if existing is not None:
            store.update_user(existing.id, is_admin=True, hashed_password=hash_password(password))
            print(f"  Promoted existing user '{args.username}' (id={existing.id}) to admin.")
            return 0
        try:
            user_id = store.create_user(
                User(username=args.username, hashed_password=hash_password(password), is_admin=True, is_verified=True)
            )
        except IntegrityError:
            print(f"  [!] Could not create '{args.username}': username already taken.", file=sys.stderr)
            return 1
        print(f"  Created admin '{args.username}' (id={user_id}).")
        return 0
    finally:
        store.close()


def _purge_sessions(args: argparse.Namespace) -> int:
    settings = get_settings()
    sessions = SessionStore(settings.database_url, ttl_seconds=settings.session_ttl_seconds)
    try:
        purged = sessions.purge_expired()
    finally:
        sessions.close()
    print(f"  Purged {purged} expired session(s).")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="commitstreams",
        description="CommitStreams API server and maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve --reload
  python main.py create-admin --username admin@example.com
  python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the API under uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    admin = sub.add_parser("create-admin", help="Create or promote an admin account")
    admin.add_argument("--username", required=True, help="Login name (an email for local accounts)")
    admin.add_argument("--password", default=None, help="Password; prompted for when omitted")
    admin.set_defaults(func=_create_admin)

    purge = sub.add_parser("purge-sessions", help="Delete expired sessions now")
    purge.set_defaults(func=_purge_sessions)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0

    configure_logging(get_settings().log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
