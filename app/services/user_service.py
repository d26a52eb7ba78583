from __future__ import annotations

import logging
from typing import Any

from app.auth import Principal, Role
from app.errors import NotFound, ValidationFailed
from app.security.passwords import hash_password
from app.services.inventory_store import InventoryStore, UserRecord
from app.services.role_policy import Capability, require_capability

logger = logging.getLogger(__name__)


async def resolve_principal(store: InventoryStore, email: str) -> Principal:
    """Map a signed-in identity onto its directory entry.

    An identity with no directory record gets the least-privileged role and
    is flagged; it is never upgraded to a working role.
    """
    user = await store.find_user(email)
    if user is None:
        logger.warning('signed-in identity has no directory record email=%s; using guest role', email)
        return Principal(email=email, display_name=email, role=Role.GUEST, active=True, directory_miss=True)
    return Principal(
        email=user.email,
        display_name=user.display_name or user.email,
        role=user.role,
        active=user.active,
    )


async def list_users(store: InventoryStore, principal: Principal) -> list[UserRecord]:
    require_capability(principal, Capability.MANAGE_USERS)
    return sorted(await store.list_users(), key=lambda user: user.email.lower())


def _parse_role(value: Any) -> Role:
    try:
        return Role(str(value or Role.GUEST.value).strip().lower())
    except ValueError as exc:
        raise ValidationFailed(f'Unknown role: {value}') from exc


async def save_user(
    store: InventoryStore,
    principal: Principal,
    data: dict[str, Any],
    *,
    existing_email: str | None = None,
) -> UserRecord:
    require_capability(principal, Capability.MANAGE_USERS)
    email = str(data.get('email') or '').strip()
    display_name = str(data.get('displayName') or data.get('name') or '').strip()
    if not email or not display_name:
        raise ValidationFailed('Email and display name are required')

    existing = await store.find_user(existing_email or email)
    if existing_email and existing is None:
        raise NotFound('User not found')

    password = str(data.get('password') or '')
    if existing is None and not password:
        raise ValidationFailed('A password is required for new users')

    user = UserRecord(
        id=existing.id if existing and existing.email.lower() == email.lower() else None,
        email=email,
        display_name=display_name,
        role=_parse_role(data.get('role')),
        active=bool(data.get('active', True)),
        password_hash=hash_password(password) if password else (existing.password_hash if existing else None),
    )
    saved = await store.save_user(user)
    if existing is not None and existing.email.lower() != email.lower():
        await store.delete_user(existing.email)
    logger.info('directory user saved email=%s role=%s actor=%s', saved.email, saved.role.value, principal.email)
    return saved


async def delete_user(store: InventoryStore, principal: Principal, email: str, *, confirmed: bool) -> None:
    require_capability(principal, Capability.MANAGE_USERS)
    if email.strip().lower() == principal.email.strip().lower():
        raise ValidationFailed('You cannot delete your own user')
    if not confirmed:
        raise ValidationFailed('Deleting a user must be confirmed')
    await store.delete_user(email)
