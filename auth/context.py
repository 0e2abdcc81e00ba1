"""
auth/context.py -- The authentication context handed to every request.

create_app() builds exactly one AuthContext in its lifespan and stores it on
app.state.auth. Routes and dependencies read it from there; nothing in auth/
keeps process-wide mutable state, so two apps (e.g. two test clients) can
run side by side with different stores and settings.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.crypto import TokenCodec
from auth.oauth import GitHubOAuth
from auth.roles import RoleStore
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import Settings


@dataclass
class AuthContext:
    settings: Settings
    users: UserStore
    sessions: SessionStore
    roles: RoleStore
    codec: TokenCodec
    github: GitHubOAuth | None = None  # None when GitHub credentials are not configured

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthContext":
        return cls(
            settings=settings,
            users=UserStore(settings.database_url),
            sessions=SessionStore(settings.database_url, ttl_seconds=settings.session_ttl_seconds),
            roles=RoleStore(settings.database_url),
            codec=TokenCodec.from_secret(settings.effective_token_key),
            github=GitHubOAuth(settings) if settings.github_enabled else None,
        )

    def close(self) -> None:
        self.users.close()
        self.sessions.close()
        self.roles.close()
