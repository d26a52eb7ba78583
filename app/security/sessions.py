from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.auth import Principal
from app.config import settings


AUTH_EXEMPT_PATHS = {'/login', '/robots.txt', '/health'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass(frozen=True)
class WebSession:
    token: str
    principal: Principal
    ip: str | None
    user_agent: str | None
    expires_at: datetime
    last_seen_at: datetime


class SessionRegistry:
    """Opaque session tokens with a sliding expiry."""

    def __init__(self, ttl_minutes: int | None = None) -> None:
        self.ttl = timedelta(minutes=ttl_minutes if ttl_minutes is not None else settings.session_ttl_minutes)
        self._sessions: dict[str, WebSession] = {}
        self._lock = threading.Lock()

    def create(self, principal: Principal, ip: str | None = None, user_agent: str | None = None) -> str:
        token = secrets.token_urlsafe(48)
        now = _now()
        with self._lock:
            self._sweep(now)
            self._sessions[token] = WebSession(
                token=token,
                principal=principal,
                ip=ip,
                user_agent=user_agent,
                expires_at=now + self.ttl,
                last_seen_at=now,
            )
        return token

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _sweep(self, now: datetime) -> None:
        expired = [token for token, session in self._sessions.items() if session.expires_at <= now]
        for token in expired:
            del self._sessions[token]

    def revoke(self, token: str | None) -> Principal | None:
        if not token:
            return None
        with self._lock:
            session = self._sessions.pop(token, None)
        return session.principal if session else None

    def lookup(self, token: str | None) -> Principal | None:
        if not token:
            return None
        now = _now()
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if session.expires_at <= now:
                del self._sessions[token]
                return None
            self._sessions[token] = replace(session, last_seen_at=now, expires_at=now + self.ttl)
        return session.principal

    def refresh_principal(self, principal: Principal) -> None:
        email = principal.email.lower()
        with self._lock:
            for token, session in list(self._sessions.items()):
                if session.principal.email.lower() == email:
                    self._sessions[token] = replace(session, principal=principal)


def install_auth_session_middleware(app: FastAPI, registry: SessionRegistry) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        request.state.principal = registry.lookup(token)

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return JSONResponse({'error': 'AUTHENTICATION_REQUIRED', 'detail': 'Sign in required'}, status_code=401)

        return await call_next(request)
