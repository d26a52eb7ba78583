from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol

from app.auth import Principal
from app.errors import AuthenticationFailed
from app.security.passwords import verify_password
from app.security.sessions import SessionRegistry
from app.services.inventory_store import InventoryStore
from app.services.user_service import resolve_principal

logger = logging.getLogger(__name__)

AuthListener = Callable[[Principal | None], None]


class IdentityProvider(Protocol):
    async def sign_in(
        self,
        email: str,
        password: str,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[str, Principal]: ...

    async def sign_out(self, token: str | None) -> None: ...

    def current(self, token: str | None) -> Principal | None: ...

    def subscribe(self, listener: AuthListener) -> Callable[[], None]: ...


class LocalIdentityProvider:
    """Password sign-in against directory users held in the inventory store."""

    def __init__(self, store: InventoryStore, sessions: SessionRegistry) -> None:
        self.store = store
        self.sessions = sessions
        self._listeners: list[AuthListener] = []

    def _emit(self, principal: Principal | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(principal)
            except Exception:
                logger.exception('auth state listener failed')

    async def sign_in(
        self,
        email: str,
        password: str,
        *,
        ip: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[str, Principal]:
        email = email.strip()
        user = await self.store.find_user(email) if email else None
        if user is None:
            logger.info('sign-in rejected email=%s reason=UNKNOWN_EMAIL ip=%s', email, ip)
            raise AuthenticationFailed('Invalid email or password')
        if not user.active:
            logger.info('sign-in rejected email=%s reason=INACTIVE_USER ip=%s', email, ip)
            raise AuthenticationFailed('Invalid email or password')
        if not verify_password(password, user.password_hash):
            logger.info('sign-in rejected email=%s reason=BAD_PASSWORD ip=%s', email, ip)
            raise AuthenticationFailed('Invalid email or password')

        principal = await resolve_principal(self.store, user.email)
        token = self.sessions.create(principal, ip=ip, user_agent=user_agent)
        logger.info('sign-in email=%s role=%s ip=%s', principal.email, principal.role.value, ip)
        self._emit(principal)
        return token, principal

    async def sign_out(self, token: str | None) -> None:
        principal = self.sessions.revoke(token)
        if principal is not None:
            logger.info('sign-out email=%s', principal.email)
            self._emit(None)

    def current(self, token: str | None) -> Principal | None:
        return self.sessions.lookup(token)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe
